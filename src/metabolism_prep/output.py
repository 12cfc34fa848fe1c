"""Model-specific output schemas and the run specification record."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Mapping, Tuple

import pandas as pd

from metabolism_prep.exceptions import ConfigurationError, DataSufficiencyError

__all__ = [
    "MODEL_VARIABLES",
    "OutputKind",
    "PrepSpecification",
    "format_model_input",
    "resolve_output_kind",
]


class OutputKind(str, Enum):
    """Closed set of downstream model input layouts."""

    STREAM_METABOLIZER_BAYES = "streamMetabolizer-bayes"
    STREAM_METABOLIZER_MLE = "streamMetabolizer-mle"
    BASE = "BASE"

    @property
    def model(self) -> str:
        return "BASE" if self is OutputKind.BASE else "streamMetabolizer"


_STREAM_METABOLIZER_VARIABLES = ("solar_time", "DO_obs", "DO_sat", "depth", "temp_water", "light")
_BASE_VARIABLES = ("solar_time", "DO_obs", "temp_water", "light", "atmo_pressure")

MODEL_VARIABLES: Mapping[OutputKind, Tuple[str, ...]] = {
    OutputKind.STREAM_METABOLIZER_BAYES: _STREAM_METABOLIZER_VARIABLES,
    OutputKind.STREAM_METABOLIZER_MLE: _STREAM_METABOLIZER_VARIABLES,
    OutputKind.BASE: _BASE_VARIABLES,
}


def resolve_output_kind(model: str, type: str) -> OutputKind:
    """Map the ``(model, type)`` options to an :class:`OutputKind`.

    Only the Bayesian streamMetabolizer layout is currently produced; the
    other members are rejected with the messages users of the routine
    expect.
    """

    if model == "BASE":
        raise ConfigurationError("BASE not yet supported")
    if model != "streamMetabolizer":
        raise ConfigurationError("model must be either 'streamMetabolizer' or 'BASE'.")
    if type == "mle":
        raise ConfigurationError('MLE mode is not currently available. Please use type="bayes".')
    if type != "bayes":
        raise ConfigurationError("type must be either 'bayes' or 'mle'.")
    return OutputKind.STREAM_METABOLIZER_BAYES


def _require(table: pd.DataFrame, kind: OutputKind) -> None:
    missing = [name for name in MODEL_VARIABLES[kind] if name not in table.columns]
    if missing:
        raise DataSufficiencyError(
            f"Insufficient data to fit this model. Missing variable(s): {', '.join(missing)}"
        )


def _format_stream_metabolizer(table: pd.DataFrame, kind: OutputKind) -> pd.DataFrame:
    _require(table, kind)
    columns = list(MODEL_VARIABLES[kind])
    if "discharge" in table.columns:
        columns.append("discharge")
    return table.loc[:, columns].reset_index(drop=True)


def _format_base(table: pd.DataFrame, kind: OutputKind) -> pd.DataFrame:
    _require(table, kind)
    solar = pd.to_datetime(table["solar_time"])
    return pd.DataFrame(
        {
            "Date": solar.dt.date.to_numpy(),
            "Time": solar.dt.strftime("%H:%M:%S").to_numpy(),
            "I": table["light"].to_numpy(dtype=float),
            "tempC": table["temp_water"].to_numpy(dtype=float),
            "DO_meas": table["DO_obs"].to_numpy(dtype=float),
            "atmo_pressure": table["atmo_pressure"].to_numpy(dtype=float),
            "salinity": 0.0,
        }
    )


_FORMATTERS: Dict[OutputKind, Callable[[pd.DataFrame, OutputKind], pd.DataFrame]] = {
    OutputKind.STREAM_METABOLIZER_BAYES: _format_stream_metabolizer,
    OutputKind.STREAM_METABOLIZER_MLE: _format_stream_metabolizer,
    OutputKind.BASE: _format_base,
}


def format_model_input(table: pd.DataFrame, kind: OutputKind) -> pd.DataFrame:
    """Select and rename the columns expected by the model behind *kind*.

    Raises
    ------
    DataSufficiencyError
        When a variable required by the layout is missing from *table*.
    """

    return _FORMATTERS[OutputKind(kind)](table, OutputKind(kind))


@dataclass(frozen=True)
class PrepSpecification:
    """Record of the options a prepared dataset was produced with."""

    model: str
    type: str
    interval: str
    requested_interval: str | None
    rm_flagged: Tuple[str, ...]
    fillgaps: str
    maxhours: float
    used_rating_curve: bool
    estimate_areal_depth: bool
    estimate_par: bool
    pressure_source: str | None = None
    site: str | None = None
    extras: Mapping[str, object] = field(default_factory=dict)

    def to_mapping(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "model": self.model,
            "type": self.type,
            "interval": self.interval,
            "requested_interval": self.requested_interval,
            "rm_flagged": ",".join(self.rm_flagged) if self.rm_flagged else "none",
            "fillgaps": self.fillgaps,
            "maxhours": self.maxhours,
            "used_rating_curve": self.used_rating_curve,
            "estimate_areal_depth": self.estimate_areal_depth,
            "estimate_par": self.estimate_par,
            "pressure_source": self.pressure_source,
            "site": self.site,
        }
        payload.update(self.extras)
        return payload
