"""Regular-grid construction with phase search for offset sensor records.

The working table produced by the ingestion stage is irregular: rows exist
only where at least one variable reported a value, and records may start
mid-cycle relative to the desired grid. Naively anchoring the grid on the
first row can therefore alias the whole dataset onto timestamps that carry
almost no data. :func:`align_to_grid` anchors the grid on successive rows
until the share of mostly-missing columns becomes acceptable, then
left-joins the data onto the grid so that missing records become explicit
rows of missing values.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import timedelta
from typing import Mapping, Tuple

import pandas as pd

from metabolism_prep.exceptions import AlignmentFailure, DataSufficiencyError
from metabolism_prep.io import GapDescriptor, GapReport, TimeWindow

from .cadence import run_length_encode

__all__ = [
    "Grid",
    "GridAlignment",
    "align_to_grid",
    "build_gap_report",
]

DEFAULT_MAX_ATTEMPTS = 10
MOSTLY_MISSING_THRESHOLD = 0.8
MAX_MOSTLY_MISSING_SHARE = 0.4


@dataclass(frozen=True)
class Grid:
    """Canonical regular timeline."""

    start: pd.Timestamp
    end: pd.Timestamp
    step: timedelta

    def __post_init__(self) -> None:
        if self.step <= timedelta(0):
            raise ValueError("step must be positive")
        if self.end < self.start:
            raise ValueError("end must not precede start")

    @property
    def step_minutes(self) -> float:
        return self.step.total_seconds() / 60.0

    @property
    def row_count(self) -> int:
        return int((self.end - self.start) // pd.Timedelta(self.step)) + 1

    def timestamps(self) -> pd.DatetimeIndex:
        index = pd.date_range(self.start, periods=self.row_count, freq=pd.Timedelta(self.step))
        index.name = "DateTime_UTC"
        return index

    @property
    def window(self) -> TimeWindow:
        last = self.start + pd.Timedelta(self.step) * (self.row_count - 1)
        return TimeWindow(start=self.start.to_pydatetime(), end=last.to_pydatetime())


@dataclass(frozen=True)
class GridAlignment:
    """Outcome of the grid phase search."""

    table: pd.DataFrame
    grid: Grid
    starting_row: int
    attempts: int
    missing_proportions: Mapping[str, float]
    mostly_missing_share: float
    gap_report: GapReport
    notes: Tuple[str, ...]


def _as_timedelta(step: timedelta | float | int) -> timedelta:
    if isinstance(step, timedelta):
        return step
    minutes = float(step)
    if not math.isfinite(minutes) or minutes <= 0:
        raise ValueError(f"step must be a positive number of minutes; received {step!r}")
    return timedelta(minutes=minutes)


def _mostly_missing_share(missing: pd.Series, threshold: float) -> float:
    if missing.empty:
        return 0.0
    return float((missing > threshold).sum()) / float(len(missing))


def align_to_grid(
    table: pd.DataFrame,
    step: timedelta | float | int,
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    missing_threshold: float = MOSTLY_MISSING_THRESHOLD,
    max_mostly_missing_share: float = MAX_MOSTLY_MISSING_SHARE,
) -> GridAlignment:
    """Left-join *table* onto a regular grid, searching for the right phase.

    Parameters
    ----------
    table:
        Wide table indexed by sorted UTC timestamps.
    step:
        Grid spacing as a ``timedelta`` or a number of minutes.
    max_attempts:
        Number of candidate starting rows (1-based) tried before giving up.
    missing_threshold:
        Missing proportion above which a column counts as mostly missing.
    max_mostly_missing_share:
        Largest acceptable share of mostly-missing columns.

    Returns
    -------
    GridAlignment
        The aligned table together with the accepted grid and the 1-based
        ``starting_row`` the grid was anchored on.

    Raises
    ------
    AlignmentFailure
        If none of the candidate starting rows satisfies the heuristic.
    """

    if table.empty:
        raise DataSufficiencyError("Cannot align an empty table to a regular grid.")
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    step_delta = _as_timedelta(step)
    rows = table.index.sort_values()
    end = rows[-1]
    attempts = 0

    for starting_row in range(1, max_attempts + 1):
        if starting_row > len(rows):
            break
        attempts = starting_row
        grid = Grid(start=rows[starting_row - 1], end=end, step=step_delta)
        candidate = table.reindex(grid.timestamps())
        missing = candidate.isna().mean()
        share = _mostly_missing_share(missing, missing_threshold)
        if share > max_mostly_missing_share:
            continue

        notes: list[str] = []
        if starting_row > 1:
            notes.append(
                f"Grid anchored on row {starting_row}; earlier rows were off-phase "
                f"relative to the {step_delta.total_seconds() / 60:g} min grid."
            )
        dropped = int(len(rows) - table.index.isin(candidate.index).sum())
        if dropped:
            notes.append(f"{dropped} off-grid row(s) discarded during alignment.")
        inserted = int(len(candidate) - candidate.index.isin(table.index).sum())
        if inserted:
            notes.append(f"{inserted} missing record(s) inserted as empty rows.")

        return GridAlignment(
            table=candidate,
            grid=grid,
            starting_row=starting_row,
            attempts=attempts,
            missing_proportions={str(col): float(value) for col, value in missing.items()},
            mostly_missing_share=share,
            gap_report=build_gap_report(candidate, step_delta),
            notes=tuple(notes),
        )

    raise AlignmentFailure(
        f"Unable to coerce data to desired time interval ({step_delta.total_seconds() / 60:g} min) "
        f"after {attempts} attempt(s). Try specifying a different interval."
    )


def build_gap_report(table: pd.DataFrame, step: timedelta) -> GapReport:
    """Collect the runs of missing values of each column of a gridded *table*."""

    report = GapReport(descriptors={})
    index = table.index
    for column in table.columns:
        missing = table[column].isna().to_numpy()
        run_values, run_lengths = run_length_encode(missing)
        windows: list[TimeWindow] = []
        position = 0
        for is_missing, length in zip(run_values, run_lengths):
            if is_missing:
                windows.append(
                    TimeWindow(
                        start=index[position].to_pydatetime(),
                        end=index[position + int(length) - 1].to_pydatetime(),
                    )
                )
            position += int(length)
        if windows:
            report.register(
                GapDescriptor(variable=str(column), step=step, missing_windows=tuple(windows))
            )
    return report
