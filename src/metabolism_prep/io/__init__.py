"""IO contracts for the metabolism conditioning workflow.

This module gathers the data-access primitives shared by every stage: the
flag vocabulary of the acquisition layer, site metadata, temporal windows,
gap reports, and the call signatures of the external collaborators the
pipeline depends on (air-pressure retrieval, value imputation and rating
curve plotting). It also offers thin readers/writers so a run can be driven
from files on disk.

Collaborator assumptions
------------------------
* Pressure sources are synchronous callables returning a
  :class:`PressureRetrieval`. A failed retrieval is expressed as a result
  with ``series=None`` and an ``error`` message rather than by raising.
* Gap fillers receive the wide table, the imputation method name and the
  maximum run of consecutive missing steps that may be imputed.
* No network wire format is owned here; records are consumed already parsed.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import (
    Callable,
    Mapping,
    MutableMapping,
    Protocol,
    Tuple,
    runtime_checkable,
    TYPE_CHECKING,
)

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from metabolism_prep.exceptions import InputContractError

from .schema_registry import ObservationRecordSchema

if TYPE_CHECKING:  # pragma: no cover - used purely for typing
    from metabolism_prep.stats.rating_curve import RatingCurveResult

__all__ = [
    "FilePressureSource",
    "FlagType",
    "GapDescriptor",
    "GapFiller",
    "GapReport",
    "PressureRetrieval",
    "PressureSource",
    "RatingCurvePlotter",
    "SiteMetadata",
    "TimeWindow",
    "load_observation_records",
    "load_site_metadata",
    "write_prepared_table",
]


class FlagType(str, Enum):
    """QA/QC flag labels attached to raw observations."""

    INTERESTING = "Interesting"
    QUESTIONABLE = "Questionable"
    BAD_DATA = "Bad Data"

    @classmethod
    def parse(cls, label: object) -> "FlagType":
        """Return the canonical flag for *label*, tolerating common aliases."""

        if isinstance(label, FlagType):
            return label
        text = str(label).strip()
        key = text.lower().replace("_", " ").replace("-", " ")
        key = _FLAG_ALIASES.get(key, key)
        for member in cls:
            if member.value.lower() == key:
                return member
        raise ValueError(f"Unknown flag type: {label!r}")


_FLAG_ALIASES = {
    "baddata": "bad data",
    "bad": "bad data",
    "questionable data": "questionable",
    "interesting data": "interesting",
}


@dataclass(frozen=True)
class SiteMetadata:
    """Location and identity of the monitoring site."""

    lat: float
    lon: float
    region: str | None = None
    site: str | None = None
    name: str | None = None

    def __post_init__(self) -> None:
        if not -90.0 <= self.lat <= 90.0:
            raise ValueError(f"lat must lie within [-90, 90]; received {self.lat!r}")
        if not -180.0 <= self.lon <= 180.0:
            raise ValueError(f"lon must lie within [-180, 180]; received {self.lon!r}")

    @property
    def sitecode(self) -> str | None:
        if self.region and self.site:
            return f"{self.region}_{self.site}"
        return self.site

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> "SiteMetadata":
        try:
            lat = float(payload["lat"])  # type: ignore[arg-type]
            lon = float(payload["lon"])  # type: ignore[arg-type]
        except KeyError as exc:
            raise InputContractError(f"Site metadata is missing {exc.args[0]!r}") from exc
        return cls(
            lat=lat,
            lon=lon,
            region=_optional_str(payload.get("region")),
            site=_optional_str(payload.get("site")),
            name=_optional_str(payload.get("name")),
        )


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    return str(value)


@dataclass(frozen=True)
class TimeWindow:
    """Represents an inclusive temporal window in UTC."""

    start: datetime
    end: datetime

    def contains(self, instant: datetime) -> bool:
        """Return True when *instant* lies within the window boundaries."""
        return self.start <= instant <= self.end

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


@dataclass(frozen=True)
class GapDescriptor:
    """Runs of grid timestamps for which a variable has no record."""

    variable: str
    step: timedelta
    missing_windows: Tuple[TimeWindow, ...]

    @property
    def missing_steps(self) -> int:
        return sum(int(window.duration // self.step) + 1 for window in self.missing_windows)


@dataclass
class GapReport:
    """Aggregates gap information for later inspection."""

    descriptors: MutableMapping[str, GapDescriptor]

    def register(self, descriptor: GapDescriptor) -> None:
        """Store or replace the descriptor of ``descriptor.variable``."""
        self.descriptors[descriptor.variable] = descriptor

    def summarise(self) -> Mapping[str, GapDescriptor]:
        """Return an immutable view of the collected gap descriptors."""
        return dict(self.descriptors)


@dataclass(frozen=True)
class PressureRetrieval:
    """Outcome of a single air-pressure retrieval attempt.

    ``series`` holds barometric pressure in kPa indexed by UTC timestamps.
    """

    source: str
    series: pd.Series | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.series is not None and not self.series.dropna().empty

    @classmethod
    def failure(cls, source: str, error: str) -> "PressureRetrieval":
        return cls(source=source, series=None, error=error)


@runtime_checkable
class PressureSource(Protocol):
    """Retrieves barometric pressure for a site and time window."""

    def __call__(self, site: SiteMetadata, window: TimeWindow) -> PressureRetrieval:
        """Return pressure values covering *window* at *site*."""


@runtime_checkable
class RatingCurvePlotter(Protocol):
    """Renders the fitted rating curve and the predicted discharge."""

    def __call__(self, result: "RatingCurveResult") -> None:
        """Display or persist a diagnostic plot of *result*."""


GapFiller = Callable[[pd.DataFrame, str, int], pd.DataFrame]


@dataclass(frozen=True)
class FilePressureSource:
    """Pressure source backed by a local CSV or Parquet extract.

    The file must expose ``DateTime_UTC`` and ``AirPres_kPa`` columns, e.g.
    a station export downloaded ahead of the run.
    """

    path: Path
    name: str = "file"

    def __call__(self, site: SiteMetadata, window: TimeWindow) -> PressureRetrieval:
        if not self.path.exists():
            return PressureRetrieval.failure(self.name, f"pressure file not found: {self.path}")
        if self.path.suffix.lower() == ".parquet":
            frame = pq.read_table(self.path).to_pandas()
        else:
            frame = pd.read_csv(self.path)
        if not {"DateTime_UTC", "AirPres_kPa"}.issubset(frame.columns):
            return PressureRetrieval.failure(
                self.name, "pressure file must contain DateTime_UTC and AirPres_kPa columns"
            )
        index = pd.to_datetime(frame["DateTime_UTC"], utc=True)
        series = pd.Series(
            pd.to_numeric(frame["AirPres_kPa"], errors="coerce").to_numpy(dtype=float),
            index=pd.DatetimeIndex(index),
            name="AirPres_kPa",
        ).sort_index()
        series = series[(series.index >= window.start) & (series.index <= window.end)]
        if series.dropna().empty:
            return PressureRetrieval.failure(self.name, "no pressure values inside the requested window")
        return PressureRetrieval(source=self.name, series=series)


def load_observation_records(path: Path | str) -> pd.DataFrame:
    """Read long-format observation records from Parquet or CSV.

    Parameters
    ----------
    path:
        ``.parquet`` or ``.csv`` file exposing the columns declared in
        :class:`~metabolism_prep.io.schema_registry.ObservationRecordSchema`.

    Returns
    -------
    pandas.DataFrame
        Records with ``DateTime_UTC`` parsed as tz-aware UTC timestamps.
    """

    target = Path(path)
    if target.suffix.lower() == ".parquet":
        frame = pq.read_table(target).to_pandas()
    else:
        frame = pd.read_csv(target)

    schema = ObservationRecordSchema()
    missing = set(schema.required_columns()).difference(frame.columns)
    if missing:
        raise InputContractError(f"Records are missing required columns: {sorted(missing)}")

    frame["DateTime_UTC"] = pd.to_datetime(frame["DateTime_UTC"], utc=True)
    frame["value"] = pd.to_numeric(frame["value"], errors="coerce")
    return frame


def load_site_metadata(path: Path | str) -> SiteMetadata:
    """Read site metadata from JSON (a mapping or a one-element list)."""

    target = Path(path)
    try:
        payload = json.loads(target.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in site metadata: {target}") from exc

    if isinstance(payload, list):
        if not payload:
            raise InputContractError(f"Site metadata file is empty: {target}")
        payload = payload[0]
    if not isinstance(payload, Mapping):
        raise InputContractError(f"Site metadata must be a JSON object: {target}")
    return SiteMetadata.from_mapping(payload)


def write_prepared_table(frame: pd.DataFrame, path: Path | str) -> Path:
    """Persist a prepared model-input table as Parquet or CSV."""

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    if target.suffix.lower() == ".parquet":
        table = pa.Table.from_pandas(frame, preserve_index=False)
        pq.write_table(table, target)
    else:
        frame.to_csv(target, index=False)
    return target
