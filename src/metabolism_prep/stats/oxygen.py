"""Dissolved-oxygen saturation and hydraulic depth estimates."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np
import pandas as pd

__all__ = [
    "PercentSaturation",
    "calc_areal_depth",
    "do_sat_from_percent",
    "o2_at_saturation",
]

# Garcia & Gordon (1992) refit of Benson & Krause, mL/L form.
_GB_A = (2.00907, 3.22014, 4.0501, 4.94457, -0.256847, 3.88767)
_GB_B = (-6.24523e-3, -7.37614e-3, -1.03410e-2, -8.17083e-3)
_GB_C0 = -4.88682e-7
_ML_TO_MG = 1.42905
_STANDARD_PRESSURE_MMHG = 760.0
_MBAR_TO_MMHG = 0.750062


def o2_at_saturation(
    temp_c: np.ndarray | pd.Series | float,
    baro_mbar: np.ndarray | pd.Series | float,
    salinity: float = 0.0,
) -> np.ndarray:
    """Equilibrium DO concentration (mg/L) following Garcia-Benson.

    Parameters
    ----------
    temp_c:
        Water temperature in degrees Celsius.
    baro_mbar:
        Barometric pressure in millibar.
    salinity:
        Practical salinity; freshwater by default.
    """

    temp = np.asarray(temp_c, dtype=float)
    baro = np.asarray(baro_mbar, dtype=float)
    with np.errstate(invalid="ignore", divide="ignore"):
        ts = np.log((298.15 - temp) / (273.15 + temp))
        ln_c = sum(coef * ts**power for power, coef in enumerate(_GB_A))
        ln_c = ln_c + salinity * sum(coef * ts**power for power, coef in enumerate(_GB_B))
        ln_c = ln_c + _GB_C0 * salinity**2
        saturation = np.exp(ln_c) * _ML_TO_MG
        vapour = 10.0 ** (8.10765 - 1750.286 / (235.0 + temp))
        correction = (baro * _MBAR_TO_MMHG - vapour) / (_STANDARD_PRESSURE_MMHG - vapour)
    return saturation * correction


@dataclass(frozen=True)
class PercentSaturation:
    do_sat: pd.Series
    scale: float
    notes: Tuple[str, ...]


def do_sat_from_percent(do_obs: pd.Series, pct: pd.Series) -> PercentSaturation:
    """Back out saturation concentration from observed DO and % saturation.

    Percent values are detected when the 90th percentile exceeds 10;
    otherwise the series is taken as a fraction. Zero saturation is nudged
    to a tiny positive number to avoid division by zero.
    """

    percent = pct.astype(float)
    scale = 0.01 if float(percent.quantile(0.9)) > 10 else 1.0
    notes: list[str] = []
    zeros = int((percent == 0).sum())
    if zeros:
        percent = percent.mask(percent == 0, 1e-6)
        notes.append(f"{zeros} zero DO saturation value(s) replaced to avoid division by zero.")
    do_sat = do_obs.astype(float) / (percent * scale)
    return PercentSaturation(do_sat=do_sat, scale=scale, notes=tuple(notes))


def calc_areal_depth(
    discharge: np.ndarray | pd.Series | float,
    c: float = 0.409,
    f: float = 0.294,
) -> np.ndarray:
    """Reach-averaged depth (m) from discharge (m3/s) by hydraulic geometry ``c * Q ** f``."""

    with np.errstate(invalid="ignore"):
        return c * np.power(np.asarray(discharge, dtype=float), f)
