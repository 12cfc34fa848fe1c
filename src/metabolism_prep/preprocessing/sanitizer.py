"""Physically-invalid value replacement and unit conversions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Tuple, TypeVar

import numpy as np
import pandas as pd

from metabolism_prep.io.schema_registry import DEPTH, DISCHARGE

__all__ = [
    "DEFAULT_FLOOR",
    "FloorResult",
    "SanitizationResult",
    "STANDARD_ATMOSPHERE_KPA",
    "floor_nonpositive",
    "kpa_to_atm",
    "kpa_to_mbar",
    "lux_to_par",
    "sanitize_table",
]

DEFAULT_FLOOR = 0.01
STANDARD_ATMOSPHERE_KPA = 101.325
# Daylight conversion, umol m-2 s-1 per lux.
LUX_TO_PAR_FACTOR = 0.0185

_FLOORED_COLUMNS: Mapping[str, str] = {
    DEPTH: "Depth values <= 0 detected",
    DISCHARGE: "Discharge values <= 0 detected",
}

Numeric = TypeVar("Numeric", float, np.ndarray, pd.Series)


@dataclass(frozen=True)
class FloorResult:
    series: pd.Series
    replaced: int
    floor: float


def floor_nonpositive(series: pd.Series, floor: float = DEFAULT_FLOOR) -> FloorResult:
    """Replace values ``<= 0`` with *floor*; missing values are left alone."""

    if floor <= 0:
        raise ValueError("floor must be positive")
    values = pd.to_numeric(series, errors="coerce").astype(float)
    mask = values <= 0
    replaced = int(mask.sum())
    if replaced:
        values = values.mask(mask, floor)
    return FloorResult(series=values, replaced=replaced, floor=floor)


def kpa_to_atm(value: Numeric) -> Numeric:
    """Convert pressure from kilopascal to standard atmospheres."""

    return value / STANDARD_ATMOSPHERE_KPA


def kpa_to_mbar(value: Numeric) -> Numeric:
    """Convert pressure from kilopascal to millibar (hPa)."""

    return value * 10.0


def lux_to_par(value: Numeric) -> Numeric:
    """Approximate photosynthetically active radiation from illuminance."""

    return value * LUX_TO_PAR_FACTOR


@dataclass(frozen=True)
class SanitizationResult:
    table: pd.DataFrame
    replaced: Mapping[str, int]
    warnings: Tuple[str, ...]


def sanitize_table(
    table: pd.DataFrame,
    columns: Iterable[str] | None = None,
    floor: float = DEFAULT_FLOOR,
) -> SanitizationResult:
    """Floor non-positive depth and discharge values of *table*.

    Parameters
    ----------
    table:
        Wide table produced by the previous stages.
    columns:
        Columns to sanitise; defaults to ``Depth_m`` and ``Discharge_m3s``.
        Columns absent from *table* are skipped.
    floor:
        Positive replacement value.
    """

    frame = table.copy()
    targets = tuple(columns) if columns is not None else tuple(_FLOORED_COLUMNS)
    replaced: dict[str, int] = {}
    warnings: list[str] = []
    for column in targets:
        if column not in frame.columns:
            continue
        result = floor_nonpositive(frame[column], floor=floor)
        frame[column] = result.series
        if result.replaced:
            replaced[column] = result.replaced
            label = _FLOORED_COLUMNS.get(column, f"{column} values <= 0 detected")
            warnings.append(f"{label} ({result.replaced} value(s)). Replacing with {floor:g}.")
    return SanitizationResult(table=frame, replaced=replaced, warnings=tuple(warnings))
