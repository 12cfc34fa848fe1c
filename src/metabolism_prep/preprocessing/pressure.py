"""Air-pressure reconciliation against externally retrieved barometric data.

Barometric pressure is needed to derive DO saturation when no saturation
series was logged and, for some sites, to support stage conversions.
Sensors often lack it altogether or carry it with long holes. This module
asks the configured pressure sources for the span of the dataset, merges the
answer without ever replacing measured values, and closes small remaining
holes by time-weighted interpolation between existing neighbours.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Tuple

import pandas as pd

from metabolism_prep.io import PressureRetrieval, PressureSource, SiteMetadata, TimeWindow
from metabolism_prep.io.schema_registry import AIR_PRESSURE

from .records import VariablePresence

__all__ = [
    "PressureReconciliation",
    "MIN_PRESSURE_COVERAGE",
    "reconcile_pressure",
]

logger = logging.getLogger(__name__)

MIN_PRESSURE_COVERAGE = 0.5


@dataclass(frozen=True)
class PressureReconciliation:
    """Outcome of the pressure reconciliation stage.

    ``degradations`` hold retrieval problems (category
    :class:`~metabolism_prep.exceptions.RetrievalDegradation`) while
    ``warnings`` hold data-quality problems that remain after merging.
    """

    table: pd.DataFrame
    presence: VariablePresence
    retrieval_requested: bool
    attempts: Tuple[PressureRetrieval, ...]
    source_used: str | None
    filled_from_source: int
    interpolated: int
    coverage: float
    notes: Tuple[str, ...]
    warnings: Tuple[str, ...]
    degradations: Tuple[str, ...]


def _attempt(source: PressureSource, site: SiteMetadata, window: TimeWindow) -> PressureRetrieval:
    name = getattr(source, "__name__", type(source).__name__)
    try:
        retrieval = source(site, window)
    except Exception as exc:  # remote failures degrade to the next source
        logger.warning("Pressure source %s raised %s: %s", name, type(exc).__name__, exc)
        return PressureRetrieval.failure(name, f"{type(exc).__name__}: {exc}")
    if not isinstance(retrieval, PressureRetrieval):
        return PressureRetrieval.failure(name, "source returned an unexpected object")
    return retrieval


def _project_onto_grid(series: pd.Series, grid: pd.DatetimeIndex) -> pd.Series:
    """Interpolate a retrieved series onto the grid timestamps without extrapolating."""

    values = pd.to_numeric(series, errors="coerce").astype(float)
    values.index = pd.to_datetime(values.index, utc=True)
    values = values[~values.index.duplicated(keep="first")].sort_index()
    union = values.index.union(grid)
    projected = values.reindex(union).interpolate(method="time", limit_area="inside")
    return projected.reindex(grid)


def reconcile_pressure(
    table: pd.DataFrame,
    presence: VariablePresence,
    site: SiteMetadata | None,
    *,
    need_for_saturation: bool,
    need_for_discharge: bool,
    force_retrieve: bool = False,
    primary: PressureSource | None = None,
    secondary: PressureSource | None = None,
) -> PressureReconciliation:
    """Merge measured and retrieved air pressure on the aligned grid.

    Parameters
    ----------
    table:
        Grid-aligned wide table.
    presence:
        Variables currently available in *table*.
    site:
        Location used to query the pressure sources.
    need_for_saturation, need_for_discharge:
        Whether downstream stages require pressure because it is absent and
        DO saturation or a stage conversion depends on it.
    force_retrieve:
        Query the sources even when pressure is not strictly needed, for
        instance to patch holes in a measured series.
    primary, secondary:
        Pressure sources attempted in order; the secondary one is only
        queried when the primary fails.

    Returns
    -------
    PressureReconciliation
        Table with the merged ``AirPres_kPa`` column (when any pressure is
        available) together with coverage diagnostics.
    """

    frame = table.copy()
    notes: list[str] = []
    warnings: list[str] = []
    degradations: list[str] = []
    attempts: list[PressureRetrieval] = []
    source_used: str | None = None
    filled_from_source = 0
    interpolated = 0

    retrieval_requested = need_for_saturation or need_for_discharge or force_retrieve
    if retrieval_requested:
        sources = [source for source in (primary, secondary) if source is not None]
        if site is None or not sources or frame.empty:
            degradations.append(
                "Air pressure retrieval requested but no site metadata or pressure source is available."
            )
        else:
            window = TimeWindow(
                start=frame.index[0].to_pydatetime(),
                end=frame.index[-1].to_pydatetime(),
            )
            retrieval: PressureRetrieval | None = None
            for source in sources:
                candidate = _attempt(source, site, window)
                attempts.append(candidate)
                if candidate.succeeded:
                    retrieval = candidate
                    break
                notes.append(
                    f"Failed to retrieve air pressure data from {candidate.source}: "
                    f"{candidate.error or 'no values returned'}."
                )

            if retrieval is None or retrieval.series is None:
                degradations.append(
                    "Failed to retrieve air pressure data. Continuing without it; "
                    "downstream modelling may fail if pressure is required."
                )
            else:
                source_used = retrieval.source
                fetched = _project_onto_grid(retrieval.series, frame.index)
                if AIR_PRESSURE not in presence:
                    frame[AIR_PRESSURE] = fetched
                    presence = presence.with_added(AIR_PRESSURE)
                    filled_from_source = int(fetched.notna().sum())
                else:
                    holes = frame[AIR_PRESSURE].isna()
                    fill = holes & fetched.notna()
                    frame.loc[fill, AIR_PRESSURE] = fetched[fill]
                    filled_from_source = int(fill.sum())
                notes.append(
                    f"Filled {filled_from_source} air pressure value(s) from {source_used}."
                )
                uncovered = int(frame[AIR_PRESSURE].isna().sum())
                if uncovered:
                    degradations.append(
                        f"Air pressure from {source_used} only partially covers the dataset "
                        f"({uncovered} timestamp(s) still missing)."
                    )

    if AIR_PRESSURE in presence:
        before = int(frame[AIR_PRESSURE].isna().sum())
        frame[AIR_PRESSURE] = frame[AIR_PRESSURE].interpolate(method="time", limit_area="inside")
        interpolated = before - int(frame[AIR_PRESSURE].isna().sum())
        if interpolated:
            notes.append(f"Interpolated {interpolated} air pressure value(s) between neighbours.")
        coverage = float(frame[AIR_PRESSURE].notna().mean()) if len(frame) else 0.0
    else:
        coverage = 0.0

    if not retrieval_requested and coverage < MIN_PRESSURE_COVERAGE:
        warnings.append(
            f"Air pressure coverage is {coverage * 100:.1f}%. Downstream modelling may fail; "
            "consider enabling air pressure retrieval."
        )

    return PressureReconciliation(
        table=frame,
        presence=presence,
        retrieval_requested=retrieval_requested,
        attempts=tuple(attempts),
        source_used=source_used,
        filled_from_source=filled_from_source,
        interpolated=interpolated,
        coverage=coverage,
        notes=tuple(notes),
        warnings=tuple(warnings),
        degradations=tuple(degradations),
    )
