"""Imputation of short runs of missing values on the regular grid.

Only runs of consecutive missing steps no longer than ``window`` are
imputed; longer outages stay missing so that downstream models do not fit
fabricated data. Every method produces a candidate series for the whole
column, which is then written back only at the eligible positions.
"""

from __future__ import annotations

import math
import warnings
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Mapping, Tuple

import numpy as np
import pandas as pd
from statsmodels.tools.sm_exceptions import ConvergenceWarning
from statsmodels.tsa.statespace.structural import UnobservedComponents

from metabolism_prep.exceptions import ConfigurationError

from .cadence import run_length_encode

__all__ = [
    "FILL_METHODS",
    "GapFillResult",
    "default_gap_filler",
    "fill_gaps",
    "fillable_mask",
    "window_from_hours",
]

FILL_METHODS: Tuple[str, ...] = ("interpolation", "locf", "mean", "random", "kalman", "ma")
MOVING_AVERAGE_HALF_WIDTH = 4


@dataclass(frozen=True)
class GapFillResult:
    """Imputed table with per-column counts of filled values."""

    table: pd.DataFrame
    method: str
    window: int
    filled: Mapping[str, int]
    fallbacks: Tuple[str, ...]
    warnings: Tuple[str, ...]

    @property
    def total_filled(self) -> int:
        return sum(self.filled.values())


def window_from_hours(maxhours: float, step_minutes: float) -> int:
    """Convert a maximum imputable span in hours into a number of grid steps."""

    if maxhours <= 0 or not math.isfinite(maxhours):
        raise ConfigurationError(f"maxhours must be a positive number; received {maxhours!r}")
    if step_minutes <= 0:
        raise ValueError("step_minutes must be positive")
    return int(math.floor(maxhours * 60.0 / step_minutes))


def fillable_mask(series: pd.Series, window: int) -> pd.Series:
    """Flag missing values belonging to runs of at most *window* steps."""

    missing = series.isna().to_numpy()
    mask = np.zeros(missing.size, dtype=bool)
    run_values, run_lengths = run_length_encode(missing)
    position = 0
    for is_missing, length in zip(run_values, run_lengths):
        if is_missing and length <= window:
            mask[position : position + int(length)] = True
        position += int(length)
    return pd.Series(mask, index=series.index)


def _interpolate(series: pd.Series, rng: np.random.Generator) -> pd.Series:
    if isinstance(series.index, pd.DatetimeIndex):
        return series.interpolate(method="time", limit_direction="both")
    return series.interpolate(method="linear", limit_direction="both")


def _locf(series: pd.Series, rng: np.random.Generator) -> pd.Series:
    # leading gaps take the next observation
    return series.ffill().bfill()


def _mean(series: pd.Series, rng: np.random.Generator) -> pd.Series:
    return series.fillna(series.mean())


def _random(series: pd.Series, rng: np.random.Generator) -> pd.Series:
    observed = series.dropna()
    draws = rng.uniform(observed.min(), observed.max(), size=series.size)
    return series.fillna(pd.Series(draws, index=series.index))


def _moving_average(series: pd.Series, rng: np.random.Generator) -> pd.Series:
    values = series.to_numpy(dtype=float)
    result = values.copy()
    observed = ~np.isnan(values)
    for position in np.flatnonzero(~observed):
        half_width = MOVING_AVERAGE_HALF_WIDTH
        while True:
            low = max(position - half_width, 0)
            high = min(position + half_width, values.size - 1)
            neighbours = np.arange(low, high + 1)
            neighbours = neighbours[observed[neighbours]]
            if neighbours.size or (low == 0 and high == values.size - 1):
                break
            half_width += 1
        if neighbours.size:
            weights = 0.5 ** np.abs(neighbours - position)
            result[position] = float(np.sum(values[neighbours] * weights) / np.sum(weights))
    return pd.Series(result, index=series.index)


def _kalman(series: pd.Series, rng: np.random.Generator) -> pd.Series:
    endog = series.to_numpy(dtype=float)
    model = UnobservedComponents(endog, level="local level")
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", category=ConvergenceWarning)
        warnings.simplefilter("ignore", category=RuntimeWarning)
        fitted = model.fit(disp=False)
    smoothed = np.asarray(fitted.smoothed_state[0], dtype=float)
    return series.fillna(pd.Series(smoothed, index=series.index))


_METHODS: Dict[str, Callable[[pd.Series, np.random.Generator], pd.Series]] = {
    "interpolation": _interpolate,
    "locf": _locf,
    "mean": _mean,
    "random": _random,
    "kalman": _kalman,
    "ma": _moving_average,
}


def fill_gaps(
    table: pd.DataFrame,
    method: str,
    window: int,
    *,
    seed: int | None = None,
    columns: Iterable[str] | None = None,
) -> GapFillResult:
    """Impute short runs of missing values in every numeric column.

    Parameters
    ----------
    table:
        Grid-aligned wide table.
    method:
        One of :data:`FILL_METHODS`.
    window:
        Longest run of consecutive missing steps that may be imputed.
    seed:
        Seed of the generator used by the ``random`` method.
    columns:
        Restrict imputation to these columns.

    Returns
    -------
    GapFillResult
        Imputed table. Columns for which *method* raised are imputed by
        linear interpolation instead and listed in ``fallbacks``.
    """

    if method not in _METHODS:
        raise ConfigurationError(
            f"fillgaps must be one of {', '.join(repr(name) for name in FILL_METHODS)} or 'none'."
        )
    if window < 0:
        raise ValueError("window must not be negative")

    frame = table.copy()
    rng = np.random.default_rng(seed)
    targets = list(columns) if columns is not None else list(frame.columns)
    filled: dict[str, int] = {}
    fallbacks: list[str] = []
    messages: list[str] = []

    for column in targets:
        if column not in frame.columns or not pd.api.types.is_numeric_dtype(frame[column]):
            continue
        series = frame[column].astype(float)
        eligible = fillable_mask(series, window)
        if not eligible.any() or series.notna().sum() == 0:
            continue
        try:
            candidate = _METHODS[method](series, rng)
        except (ValueError, np.linalg.LinAlgError) as exc:
            fallbacks.append(column)
            messages.append(
                f"Gap filling with method {method!r} failed for {column} ({exc}); "
                "using linear interpolation instead."
            )
            candidate = _interpolate(series, rng)
        update = eligible & candidate.notna()
        frame.loc[update, column] = candidate[update]
        if update.any():
            filled[column] = int(update.sum())

    return GapFillResult(
        table=frame,
        method=method,
        window=window,
        filled=filled,
        fallbacks=tuple(fallbacks),
        warnings=tuple(messages),
    )


def default_gap_filler(table: pd.DataFrame, method: str, window: int) -> pd.DataFrame:
    """:data:`~metabolism_prep.io.GapFiller` adapter around :func:`fill_gaps`."""

    return fill_gaps(table, method, window).table
