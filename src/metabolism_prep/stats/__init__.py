"""Physical and statistical helpers used to derive model inputs."""

from __future__ import annotations

from .oxygen import (
    PercentSaturation,
    calc_areal_depth,
    do_sat_from_percent,
    o2_at_saturation,
)
from .rating_curve import (
    RATING_CURVE_FORMS,
    RatingCurveFit,
    RatingCurveResolution,
    RatingCurveResult,
    RatingCurveSpec,
    apply_rating_curve,
    estimate_discharge,
    fit_rating_curve,
    resolve_rating_curve,
)
from .solar import (
    MAX_PAR_INSOLATION,
    calc_declination_angle,
    calc_solar_insolation,
    convert_utc_to_solar_time,
    equation_of_time_minutes,
)

__all__ = [
    "PercentSaturation",
    "calc_areal_depth",
    "do_sat_from_percent",
    "o2_at_saturation",
    "RATING_CURVE_FORMS",
    "RatingCurveFit",
    "RatingCurveResolution",
    "RatingCurveResult",
    "RatingCurveSpec",
    "apply_rating_curve",
    "estimate_discharge",
    "fit_rating_curve",
    "resolve_rating_curve",
    "MAX_PAR_INSOLATION",
    "calc_declination_angle",
    "calc_solar_insolation",
    "convert_utc_to_solar_time",
    "equation_of_time_minutes",
]
