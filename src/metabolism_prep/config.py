"""Run configuration for the metabolism conditioning pipeline."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Tuple

from metabolism_prep.exceptions import ConfigurationError
from metabolism_prep.output import OutputKind, resolve_output_kind
from metabolism_prep.preprocessing.gap_fill import FILL_METHODS
from metabolism_prep.preprocessing.intervals import parse_interval
from metabolism_prep.preprocessing.records import parse_flag_selection
from metabolism_prep.preprocessing.unification import LEVEL_DEPTH_POLICIES, SOURCE_POLICIES
from metabolism_prep.stats.rating_curve import RatingCurveSpec

__all__ = [
    "PrepConfig",
    "load_prep_config",
    "prep_config_from_mapping",
]

_DEFAULT_CONFIG_PATH = Path("config") / "prep_metabolism.json"


@dataclass(frozen=True)
class PrepConfig:
    """Options recognised by :func:`~metabolism_prep.pipeline.prep_metabolism`."""

    model: str = "streamMetabolizer"
    type: str = "bayes"
    interval: str | None = None
    rm_flagged: Tuple[str, ...] = ("Bad Data", "Questionable")
    fillgaps: str = "interpolation"
    maxhours: float = 3.0
    rating_curve: RatingCurveSpec = field(default_factory=RatingCurveSpec)
    estimate_areal_depth: bool = False
    estimate_par: bool = True
    retrieve_pressure: bool = False
    level_depth_policy: str = "prefer_depth"
    source_policy: str = "prefer_local"
    max_alignment_attempts: int = 10
    nonpositive_floor: float = 0.01
    random_seed: int | None = None

    def __post_init__(self) -> None:
        resolve_output_kind(self.model, self.type)
        if self.interval is not None:
            parse_interval(self.interval)
        parse_flag_selection(self.rm_flagged)
        if self.fillgaps not in (*FILL_METHODS, "none"):
            raise ConfigurationError(
                "fillgaps must be one of 'interpolation', 'locf', 'mean', "
                "'random', 'kalman', 'ma', or 'none'."
            )
        if not math.isfinite(self.maxhours) or self.maxhours <= 0:
            raise ConfigurationError("maxhours must be a positive number.")
        if self.level_depth_policy not in LEVEL_DEPTH_POLICIES:
            raise ConfigurationError(f"level_depth_policy must be one of {LEVEL_DEPTH_POLICIES}.")
        if self.source_policy not in SOURCE_POLICIES:
            raise ConfigurationError(f"source_policy must be one of {SOURCE_POLICIES}.")
        if self.max_alignment_attempts < 1:
            raise ConfigurationError("max_alignment_attempts must be at least 1.")
        if self.nonpositive_floor <= 0:
            raise ConfigurationError("nonpositive_floor must be positive.")

    @property
    def output_kind(self) -> OutputKind:
        return resolve_output_kind(self.model, self.type)

    @property
    def uses_rating_curve(self) -> bool:
        return not self.rating_curve.is_empty


def _flag(payload: Mapping[str, object], key: str, default: bool) -> bool:
    value = payload.get(key, default)
    if not isinstance(value, bool):
        raise ConfigurationError(f"{key} must be true or false, got {value!r}.")
    return value


def _flag_tuple(value: object) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, (list, tuple)):
        return tuple(str(item) for item in value)
    raise ConfigurationError("rm_flagged must be a string or a list of strings.")


def prep_config_from_mapping(payload: Mapping[str, object]) -> PrepConfig:
    """Build a :class:`PrepConfig` from a JSON-like mapping, keeping defaults for absent keys."""

    base = PrepConfig()
    interval = payload.get("interval", base.interval)
    seed = payload.get("random_seed", base.random_seed)
    try:
        return PrepConfig(
            model=str(payload.get("model", base.model)),
            type=str(payload.get("type", base.type)),
            interval=str(interval) if interval is not None else None,
            rm_flagged=_flag_tuple(payload.get("rm_flagged", list(base.rm_flagged))),
            fillgaps=str(payload.get("fillgaps", base.fillgaps)).lower(),
            maxhours=float(payload.get("maxhours", base.maxhours)),  # type: ignore[arg-type]
            rating_curve=RatingCurveSpec.from_mapping(
                payload.get("rating_curve", payload.get("zq_curve"))  # type: ignore[arg-type]
            ),
            estimate_areal_depth=_flag(payload, "estimate_areal_depth", base.estimate_areal_depth),
            estimate_par=_flag(payload, "estimate_par", base.estimate_par),
            retrieve_pressure=_flag(payload, "retrieve_pressure", base.retrieve_pressure),
            level_depth_policy=str(payload.get("level_depth_policy", base.level_depth_policy)),
            source_policy=str(payload.get("source_policy", base.source_policy)),
            max_alignment_attempts=int(
                payload.get("max_alignment_attempts", base.max_alignment_attempts)  # type: ignore[arg-type]
            ),
            nonpositive_floor=float(payload.get("nonpositive_floor", base.nonpositive_floor)),  # type: ignore[arg-type]
            random_seed=int(seed) if seed is not None else None,  # type: ignore[arg-type]
        )
    except ConfigurationError:
        raise
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid preparation configuration: {exc}") from exc


def load_prep_config(path: Path | str | None = None) -> PrepConfig:
    """Load pipeline options from JSON, falling back to defaults when the file is absent."""

    target_path = Path(path) if path is not None else _DEFAULT_CONFIG_PATH
    if not target_path.exists():
        return PrepConfig()

    try:
        payload = json.loads(target_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in preparation configuration: {target_path}") from exc

    if not isinstance(payload, Mapping):
        raise ConfigurationError(f"Preparation configuration must be a JSON object: {target_path}")
    return prep_config_from_mapping(payload)
