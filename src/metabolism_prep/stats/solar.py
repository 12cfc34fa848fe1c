"""Solar time and clear-sky light estimates."""

from __future__ import annotations

from typing import Iterable, Literal

import numpy as np
import pandas as pd

__all__ = [
    "MAX_PAR_INSOLATION",
    "calc_declination_angle",
    "calc_solar_insolation",
    "convert_utc_to_solar_time",
    "equation_of_time_minutes",
]

# Peak shortwave (W m-2) expressed as PAR (umol m-2 s-1) using 2.114 umol per joule.
MAX_PAR_INSOLATION = 2326.0 * 2.114


def _as_utc_index(times: Iterable[object] | pd.Series | pd.DatetimeIndex) -> pd.DatetimeIndex:
    if isinstance(times, pd.DatetimeIndex):
        index = times
    else:
        index = pd.DatetimeIndex(pd.to_datetime(pd.Series(list(times), dtype="object"), utc=True))
    if index.tz is None:
        index = index.tz_localize("UTC")
    return index.tz_convert("UTC")


def equation_of_time_minutes(day_of_year: np.ndarray) -> np.ndarray:
    """Difference between apparent and mean solar time, in minutes."""

    b = 2.0 * np.pi * (np.asarray(day_of_year, dtype=float) - 81.0) / 364.0
    return 9.87 * np.sin(2.0 * b) - 7.53 * np.cos(b) - 1.5 * np.sin(b)


def convert_utc_to_solar_time(
    times: Iterable[object] | pd.Series | pd.DatetimeIndex,
    longitude: float,
    kind: Literal["mean", "apparent"] = "mean",
) -> pd.DatetimeIndex:
    """Convert UTC instants to local solar time at *longitude*.

    Parameters
    ----------
    times:
        UTC timestamps; naive values are interpreted as UTC.
    longitude:
        Decimal degrees east.
    kind:
        ``"mean"`` shifts by four minutes per degree of longitude;
        ``"apparent"`` additionally applies the equation of time.

    Returns
    -------
    pandas.DatetimeIndex
        Tz-naive solar clock times.
    """

    if kind not in ("mean", "apparent"):
        raise ValueError("kind must be either 'mean' or 'apparent'")
    index = _as_utc_index(times).tz_localize(None)
    solar = index + pd.to_timedelta(longitude / 15.0, unit="h")
    if kind == "apparent":
        correction = equation_of_time_minutes(solar.dayofyear.to_numpy())
        solar = solar + pd.to_timedelta(correction, unit="m")
    return pd.DatetimeIndex(solar, name="solar_time")


def calc_declination_angle(day_of_year: np.ndarray) -> np.ndarray:
    """Solar declination in degrees."""

    jday = np.asarray(day_of_year, dtype=float)
    return 23.439 * np.sin(np.radians((360.0 / 365.0) * (283.0 + jday)))


def calc_solar_insolation(
    apparent_solar_time: pd.DatetimeIndex | pd.Series,
    latitude: float,
    max_insolation: float = MAX_PAR_INSOLATION,
) -> np.ndarray:
    """Clear-sky PAR from solar geometry.

    The zenith angle follows from the declination, the latitude and the
    hour angle of the apparent solar time; insolation is
    ``max_insolation * cos(zenith)`` clipped at zero during the night.
    """

    index = pd.DatetimeIndex(apparent_solar_time)
    if index.tz is not None:
        index = index.tz_localize(None)
    hours = (
        index.hour.to_numpy(dtype=float)
        + index.minute.to_numpy(dtype=float) / 60.0
        + index.second.to_numpy(dtype=float) / 3600.0
    )
    hour_angle = np.radians((hours - 12.0) * 15.0)
    declination = np.radians(calc_declination_angle(index.dayofyear.to_numpy()))
    lat = np.radians(latitude)
    cos_zenith = np.sin(lat) * np.sin(declination) + np.cos(lat) * np.cos(declination) * np.cos(
        hour_angle
    )
    return np.clip(max_insolation * np.clip(cos_zenith, -1.0, 1.0), 0.0, None)
