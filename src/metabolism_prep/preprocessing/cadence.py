"""Native sampling-interval inference for individual sensor variables.

Sensor series routinely contain dropped samples (whole missing rows) and
occasionally change their logging interval mid-deployment. This module
recovers the native interval of each variable from its timestamps alone by
run-length encoding the successive differences and selecting the spacing
that covers the largest share of the record. Counting the summed run
lengths instead of the number of runs keeps a single long anomalous run
from being mistaken for the dominant interval.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from fractions import Fraction
from typing import Dict, Iterable, Mapping, Tuple

import numpy as np
import pandas as pd

from metabolism_prep.exceptions import DataSufficiencyError, InputContractError

__all__ = [
    "IntervalEstimate",
    "infer_sampling_interval",
    "infer_variable_intervals",
    "run_length_encode",
]


@dataclass(frozen=True)
class IntervalEstimate:
    """Describes the inferred sampling interval of one variable."""

    variable: str
    interval_seconds: int
    gap_count: int
    irregular: bool
    run_count: int
    distinct_intervals_seconds: Tuple[int, ...]
    sample_count: int
    notes: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()

    @property
    def interval_minutes(self) -> float:
        return self.interval_seconds / 60.0

    @property
    def interval_fraction(self) -> Fraction:
        """Interval in minutes as an exact rational number."""

        return Fraction(self.interval_seconds, 60)

    @property
    def interval(self) -> timedelta:
        return timedelta(seconds=self.interval_seconds)


def run_length_encode(values: Iterable[int]) -> tuple[np.ndarray, np.ndarray]:
    """Return ``(run_values, run_lengths)`` for consecutive repeats in *values*."""

    arr = np.asarray(list(values))
    if arr.size == 0:
        return arr, np.asarray([], dtype=int)
    boundaries = np.flatnonzero(arr[1:] != arr[:-1]) + 1
    starts = np.concatenate(([0], boundaries))
    lengths = np.diff(np.concatenate((starts, [arr.size])))
    return arr[starts], lengths


def _normalise_timestamps(timestamps: Iterable[object] | pd.Series | pd.DatetimeIndex) -> pd.DatetimeIndex:
    index = pd.DatetimeIndex(pd.to_datetime(pd.Series(list(timestamps), dtype="object"), utc=True))
    index = index.dropna().unique().sort_values()
    return index


def infer_sampling_interval(
    timestamps: Iterable[object] | pd.Series | pd.DatetimeIndex,
    variable: str = "series",
) -> IntervalEstimate:
    """Infer the native sampling interval of one variable.

    Parameters
    ----------
    timestamps:
        Observation instants for a single variable. Duplicates are collapsed
        and the values sorted before differencing.
    variable:
        Name used in notes and warnings.

    Returns
    -------
    IntervalEstimate
        Modal interval (duration weighted), the number of gaps (successive
        differences longer than the interval), and whether the distinct
        spacings fail to be integer multiples of the smallest one.

    Raises
    ------
    DataSufficiencyError
        When fewer than two distinct timestamps are available.
    """

    index = _normalise_timestamps(timestamps)
    if len(index) < 2:
        raise DataSufficiencyError(
            f"At least two distinct timestamps are needed to infer the interval of {variable!r}"
        )

    deltas = index.to_series().diff().iloc[1:]
    seconds = np.rint(deltas.dt.total_seconds().to_numpy()).astype(np.int64)

    notes: list[str] = []
    warnings: list[str] = []

    # spacings below half a second round to zero and carry no interval information
    sub_second = int((seconds <= 0).sum())
    if sub_second:
        seconds = seconds[seconds > 0]
        if seconds.size == 0:
            raise InputContractError(
                f"All timestamps of {variable!r} are less than one second apart; "
                "no sampling interval can be inferred"
            )
        warnings.append(
            f"Ignored {sub_second} sub-second timestamp spacing(s) in {variable}."
        )

    run_values, run_lengths = run_length_encode(seconds)
    distinct = tuple(int(value) for value in sorted(set(int(v) for v in run_values)))

    if len(run_values) == 1:
        interval_seconds = int(run_values[0])
        irregular = False
        gap_count = 0
    else:
        totals = pd.Series(run_lengths).groupby(run_values).sum()
        # groupby sorts the keys, so ties resolve to the shortest spacing
        interval_seconds = int(totals.idxmax())
        smallest = distinct[0]
        irregular = any(value % smallest != 0 for value in distinct)
        gap_count = int((seconds > interval_seconds).sum())
        if irregular:
            warnings.append(
                f"Sample interval is not consistent for {variable}. Gaps will be introduced! "
                f"Using the most common interval: {interval_seconds / 60:g} mins."
            )
        else:
            notes.append(f"{gap_count} sample gap(s) detected in {variable}.")

    if interval_seconds <= 0:
        raise InputContractError(f"Non-positive sampling interval inferred for {variable!r}")

    return IntervalEstimate(
        variable=variable,
        interval_seconds=interval_seconds,
        gap_count=gap_count,
        irregular=irregular,
        run_count=len(run_values),
        distinct_intervals_seconds=distinct,
        sample_count=len(index),
        notes=tuple(notes),
        warnings=tuple(warnings),
    )


def infer_variable_intervals(
    records: pd.DataFrame,
    variable_column: str = "variable",
    timestamp_column: str = "DateTime_UTC",
) -> Mapping[str, IntervalEstimate]:
    """Apply :func:`infer_sampling_interval` to every variable of a long table.

    Variables keep their order of first appearance in *records*.
    """

    required_columns = {variable_column, timestamp_column}
    missing_columns = required_columns.difference(records.columns)
    if missing_columns:
        raise InputContractError(f"Records are missing required columns: {sorted(missing_columns)}")

    estimates: Dict[str, IntervalEstimate] = {}
    for variable in pd.unique(records[variable_column]):
        timestamps = records.loc[records[variable_column] == variable, timestamp_column]
        estimates[str(variable)] = infer_sampling_interval(timestamps, variable=str(variable))
    return estimates
