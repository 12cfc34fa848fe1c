"""Stage-discharge rating curves.

A rating curve predicts discharge ``Q`` from a stage measurement ``Z``
(level or depth). It is either supplied directly as coefficients ``(a, b)``
or fitted from paired field measurements. Three functional forms are
supported:

* ``power``        ``Q = a * Z ** b``
* ``exponential``  ``Q = a * exp(b * Z)``
* ``linear``       ``Q = a * Z + b``

The power and exponential forms are fitted by ordinary least squares in log
space, the linear form directly. Predicted discharge is not floored here;
non-positive values are handled by the sanitising stage.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Literal, Mapping, Sequence, Tuple

import numpy as np
import pandas as pd

from metabolism_prep.exceptions import ConfigurationError, DataSufficiencyError
from metabolism_prep.io import RatingCurvePlotter
from metabolism_prep.io.schema_registry import DEPTH, DISCHARGE, LEVEL
from metabolism_prep.preprocessing.records import VariablePresence

__all__ = [
    "RATING_CURVE_FORMS",
    "RatingCurveFit",
    "RatingCurveResolution",
    "RatingCurveResult",
    "RatingCurveSpec",
    "apply_rating_curve",
    "estimate_discharge",
    "fit_rating_curve",
    "resolve_rating_curve",
]

RatingCurveForm = Literal["power", "exponential", "linear"]
RATING_CURVE_FORMS: Tuple[str, ...] = ("power", "exponential", "linear")
_REFERENCES = ("level", "depth")


def _float_tuple(values: object, label: str) -> Tuple[float, ...] | None:
    if values is None:
        return None
    if isinstance(values, (str, bytes)) or not isinstance(values, Sequence):
        raise ConfigurationError(f"Rating curve {label} must be a sequence of numbers.")
    try:
        return tuple(float(value) for value in values)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Rating curve {label} must contain only numbers.") from exc


def _optional_float(value: object, label: str) -> float | None:
    if value is None:
        return None
    try:
        result = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Rating curve parameter {label} must be numeric.") from exc
    if not math.isfinite(result):
        raise ConfigurationError(f"Rating curve parameter {label} must be finite.")
    return result


def _optional_bool(value: object, label: str) -> bool | None:
    if value is None or isinstance(value, bool):
        return value
    raise ConfigurationError(f"Rating curve option {label} must be true or false, got {value!r}.")


@dataclass(frozen=True)
class RatingCurveSpec:
    """User description of a rating curve.

    Either calibration pairs (``z``, ``q``) or coefficients (``a``, ``b``)
    must be supplied. ``calibration_reference`` states whether the
    calibration ``z`` values were measured as level or depth; ``None`` means
    they share the reference of the continuous stage series.
    """

    z: Tuple[float, ...] | None = None
    q: Tuple[float, ...] | None = None
    a: float | None = None
    b: float | None = None
    form: str = "power"
    sensor_height: float | None = None
    ignore_out_of_range: bool = True
    plot: bool = False
    calibration_reference: str | None = None

    def __post_init__(self) -> None:
        if self.form not in RATING_CURVE_FORMS:
            raise ConfigurationError(
                'Argument to "fit" must be one of: "power", "exponential", "linear".'
            )
        if self.z is not None and self.q is not None and len(self.z) != len(self.q):
            raise ConfigurationError("Rating curve Z and Q must have the same length.")
        if self.sensor_height is not None and not math.isfinite(self.sensor_height):
            raise ConfigurationError("sensor_height must be finite.")
        if self.calibration_reference not in (None, *_REFERENCES):
            raise ConfigurationError("calibration_reference must be 'level', 'depth' or None.")

    @property
    def has_pairs(self) -> bool:
        return (
            self.z is not None
            and self.q is not None
            and len(self.z) > 1
            and len(self.q) > 1
        )

    @property
    def has_coefficients(self) -> bool:
        return self.a is not None and self.b is not None

    @property
    def is_empty(self) -> bool:
        """True when no curve parameter at all was given."""

        return all(
            value is None for value in (self.sensor_height, self.a, self.b, self.z, self.q)
        )

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object] | None) -> "RatingCurveSpec":
        """Build a spec from a JSON-like mapping.

        Accepts ``Z``/``z``, ``Q``/``q``, ``a``, ``b``, ``form``/``fit``,
        ``sensor_height``, ``ignore_out_of_range``/``ignore_oob_Z``, ``plot``
        and ``calibration_reference``.
        """

        if payload is None:
            return cls()
        if not isinstance(payload, Mapping):
            raise ConfigurationError("rating_curve must be a mapping.")

        def pick(*keys: str) -> object:
            for key in keys:
                if key in payload and payload[key] is not None:
                    return payload[key]
            return None

        form = pick("form", "fit")
        ignore = _optional_bool(pick("ignore_out_of_range", "ignore_oob_Z"), "ignore_out_of_range")
        reference = pick("calibration_reference")
        return cls(
            z=_float_tuple(pick("z", "Z"), "Z"),
            q=_float_tuple(pick("q", "Q"), "Q"),
            a=_optional_float(pick("a"), "a"),
            b=_optional_float(pick("b"), "b"),
            form=str(form).lower() if form is not None else "power",
            sensor_height=_optional_float(pick("sensor_height"), "sensor_height"),
            ignore_out_of_range=ignore if ignore is not None else True,
            plot=bool(_optional_bool(pick("plot"), "plot")),
            calibration_reference=str(reference).lower() if reference is not None else None,
        )


@dataclass(frozen=True)
class RatingCurveResolution:
    source: Literal["pairs", "coefficients"]
    warnings: Tuple[str, ...]


def resolve_rating_curve(spec: RatingCurveSpec) -> RatingCurveResolution:
    """Decide whether *spec* is driven by calibration pairs or coefficients.

    Raises
    ------
    ConfigurationError
        When neither complete pairs nor both coefficients are available.
    """

    if spec.has_coefficients and spec.has_pairs:
        return RatingCurveResolution(
            source="coefficients",
            warnings=(
                "Parameters (a, b) and data (Z, Q) supplied for rating curve. "
                "Only one set needed, so ignoring data.",
            ),
        )
    if spec.has_coefficients:
        return RatingCurveResolution(source="coefficients", warnings=())
    if spec.has_pairs:
        return RatingCurveResolution(source="pairs", warnings=())
    raise ConfigurationError(
        "Rating curve must include either Z and Q as vectors of data "
        "or a and b as parameters of a rating curve."
    )


@dataclass(frozen=True)
class RatingCurveFit:
    """Coefficients of a rating curve, with the calibration range if fitted."""

    form: str
    a: float
    b: float
    z_range: Tuple[float, float] | None = None
    pair_count: int = 0
    dropped_pairs: int = 0
    r_squared: float | None = None

    def predict(self, z: np.ndarray | pd.Series | float) -> np.ndarray:
        values = np.asarray(z, dtype=float)
        with np.errstate(invalid="ignore", divide="ignore", over="ignore"):
            if self.form == "power":
                return self.a * np.power(values, self.b)
            if self.form == "exponential":
                return self.a * np.exp(self.b * values)
            return self.a * values + self.b


def fit_rating_curve(
    z: Sequence[float] | np.ndarray,
    q: Sequence[float] | np.ndarray,
    form: str = "power",
) -> RatingCurveFit:
    """Fit ``(a, b)`` of the requested *form* to calibration pairs.

    Parameters
    ----------
    z, q:
        Paired stage and discharge measurements.
    form:
        ``"power"``, ``"exponential"`` or ``"linear"``.

    Returns
    -------
    RatingCurveFit
        Fitted coefficients together with the stage range covered by the
        usable pairs.

    Raises
    ------
    ConfigurationError
        When fewer than two usable pairs remain after removing pairs that
        cannot be log-transformed.
    """

    if form not in RATING_CURVE_FORMS:
        raise ConfigurationError(
            'Argument to "fit" must be one of: "power", "exponential", "linear".'
        )
    z_values = np.asarray(z, dtype=float)
    q_values = np.asarray(q, dtype=float)
    if z_values.shape != q_values.shape:
        raise ConfigurationError("Rating curve Z and Q must have the same length.")

    usable = np.isfinite(z_values) & np.isfinite(q_values)
    if form == "power":
        usable &= (z_values > 0) & (q_values > 0)
    elif form == "exponential":
        usable &= q_values > 0
    dropped = int(z_values.size - usable.sum())
    if usable.sum() < 2:
        raise ConfigurationError(
            f"At least two usable calibration pairs are required to fit a {form} rating curve."
        )

    z_fit = z_values[usable]
    q_fit = q_values[usable]
    if form == "power":
        slope, intercept = np.polyfit(np.log(z_fit), np.log(q_fit), 1)
        a, b = math.exp(float(intercept)), float(slope)
    elif form == "exponential":
        slope, intercept = np.polyfit(z_fit, np.log(q_fit), 1)
        a, b = math.exp(float(intercept)), float(slope)
    else:
        slope, intercept = np.polyfit(z_fit, q_fit, 1)
        a, b = float(slope), float(intercept)

    residual = q_fit - RatingCurveFit(form=form, a=a, b=b).predict(z_fit)
    total = float(np.sum((q_fit - q_fit.mean()) ** 2))
    r_squared = 1.0 - float(np.sum(residual**2)) / total if total > 0 else None
    return RatingCurveFit(
        form=form,
        a=float(a),
        b=float(b),
        z_range=(float(z_fit.min()), float(z_fit.max())),
        pair_count=int(usable.sum()),
        dropped_pairs=dropped,
        r_squared=r_squared,
    )


def apply_rating_curve(
    z: pd.Series,
    fit: RatingCurveFit,
    *,
    ignore_out_of_range: bool = True,
) -> tuple[pd.Series, int]:
    """Predict discharge for the stage series *z*.

    Returns the discharge series and the number of stage values masked for
    lying outside the calibration range.
    """

    predicted = pd.Series(fit.predict(z.to_numpy(dtype=float)), index=z.index, name=DISCHARGE)
    predicted = predicted.where(np.isfinite(predicted))
    masked = 0
    if ignore_out_of_range and fit.z_range is not None:
        low, high = fit.z_range
        outside = (z < low) | (z > high)
        masked = int(outside.sum())
        predicted = predicted.mask(outside)
    return predicted, masked


@dataclass(frozen=True)
class RatingCurveResult:
    """Discharge and depth derived from a rating curve."""

    table: pd.DataFrame
    presence: VariablePresence
    fit: RatingCurveFit
    source: str
    stage_variable: str
    stage: pd.Series
    discharge: pd.Series
    depth: pd.Series
    out_of_range: int
    notes: Tuple[str, ...]
    warnings: Tuple[str, ...]


def _calibration_stage(
    spec: RatingCurveSpec,
    series_reference: str,
) -> Tuple[np.ndarray, str | None]:
    z = np.asarray(spec.z, dtype=float)
    reference = spec.calibration_reference
    if reference is None or reference == series_reference:
        return z, None
    if spec.sensor_height is None:
        raise ConfigurationError(
            f"Calibration Z values are {reference} but the continuous series is "
            f"{series_reference}; sensor_height is required to convert between them."
        )
    if reference == "depth":
        return z - spec.sensor_height, (
            f"Converted calibration depth to level using sensor height {spec.sensor_height:g} m."
        )
    return z + spec.sensor_height, (
        f"Converted calibration level to depth using sensor height {spec.sensor_height:g} m."
    )


def estimate_discharge(
    table: pd.DataFrame,
    spec: RatingCurveSpec,
    presence: VariablePresence,
    *,
    plotter: RatingCurvePlotter | None = None,
    depth_source: str | None = None,
) -> RatingCurveResult:
    """Derive ``Discharge_m3s`` and ``Depth_m`` from a stage series.

    Parameters
    ----------
    table:
        Grid-aligned wide table.
    spec:
        Rating curve description; see :func:`resolve_rating_curve`.
    presence:
        Variables currently available in *table*. ``Level_m`` is used as the
        stage series when present, otherwise ``Depth_m``.
    plotter:
        Optional callable receiving the result when ``spec.plot`` is set.
    depth_source:
        Variable that currently fills ``Depth_m``, as resolved upstream. A
        measured depth column is kept unless it was filled from level; the
        stage-derived depth only replaces it in that case.

    Raises
    ------
    ConfigurationError
        When the spec cannot be resolved or fitted.
    DataSufficiencyError
        When neither level nor depth is available.
    """

    resolution = resolve_rating_curve(spec)
    notes: list[str] = []
    warnings: list[str] = list(resolution.warnings)

    if LEVEL in presence:
        stage_variable, series_reference = LEVEL, "level"
    elif DEPTH in presence:
        stage_variable, series_reference = DEPTH, "depth"
    else:
        raise DataSufficiencyError(
            "A rating curve was supplied but no level or depth series is available to apply it to."
        )

    if DISCHARGE in presence:
        warnings.append(
            "Arguments supplied to the rating curve, so ignoring available discharge time-series data."
        )

    if resolution.source == "pairs":
        calibration_z, conversion = _calibration_stage(spec, series_reference)
        if conversion:
            notes.append(conversion)
        fit = fit_rating_curve(calibration_z, np.asarray(spec.q, dtype=float), spec.form)
        notes.append(
            f"Modeling discharge from a {spec.form} rating curve generated from "
            f"{fit.pair_count} supplied Z and Q samples (a={fit.a:.4g}, b={fit.b:.4g})."
        )
        if fit.dropped_pairs:
            notes.append(
                f"Dropped {fit.dropped_pairs} calibration pair(s) unusable for a {spec.form} fit."
            )
    else:
        fit = RatingCurveFit(form=spec.form, a=float(spec.a), b=float(spec.b))  # type: ignore[arg-type]
        notes.append(
            f"Modeling discharge from a {spec.form} rating curve determined by supplied "
            f"a={fit.a:g} and b={fit.b:g}."
        )

    stage = table[stage_variable].astype(float)
    discharge, out_of_range = apply_rating_curve(
        stage, fit, ignore_out_of_range=spec.ignore_out_of_range
    )
    if out_of_range:
        notes.append(
            f"{out_of_range} stage value(s) outside the calibration range; discharge set to missing."
        )

    measured_depth = DEPTH in presence and depth_source != LEVEL and stage_variable != DEPTH
    if measured_depth:
        depth = table[DEPTH].astype(float)
        notes.append(f"Keeping measured {DEPTH}; the stage series is used for discharge only.")
    elif series_reference == "level" and spec.sensor_height is not None:
        depth = stage + spec.sensor_height
        notes.append(f"Depth derived as level plus sensor height ({spec.sensor_height:g} m).")
    else:
        depth = stage.copy()
    depth.name = DEPTH

    frame = table.copy()
    frame[DISCHARGE] = discharge
    frame[DEPTH] = depth

    result = RatingCurveResult(
        table=frame,
        presence=presence.with_added(DISCHARGE, DEPTH),
        fit=fit,
        source=resolution.source,
        stage_variable=stage_variable,
        stage=stage,
        discharge=discharge,
        depth=depth,
        out_of_range=out_of_range,
        notes=tuple(notes),
        warnings=tuple(warnings),
    )
    if spec.plot and plotter is not None:
        plotter(result)
    return result
