"""Tests for rating curve fitting and discharge estimation."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from metabolism_prep.exceptions import ConfigurationError, DataSufficiencyError
from metabolism_prep.preprocessing import VariablePresence
from metabolism_prep.stats import (
    RatingCurveFit,
    RatingCurveSpec,
    apply_rating_curve,
    estimate_discharge,
    fit_rating_curve,
    resolve_rating_curve,
)


def _stage_table(column: str, values: list[float]) -> tuple[pd.DataFrame, VariablePresence]:
    index = pd.date_range("2024-06-01", periods=len(values), freq="15min", tz="UTC", name="DateTime_UTC")
    frame = pd.DataFrame({column: values}, index=index)
    return frame, VariablePresence.of(frame.columns)


def test_power_fit_recovers_coefficients_from_noisy_pairs() -> None:
    rng = np.random.default_rng(11)
    z = np.linspace(0.1, 1.0, 25)
    q = 2.0 * z**1.5 * np.exp(rng.normal(0.0, 0.01, size=z.size))

    fit = fit_rating_curve(z, q, "power")

    assert fit.a == pytest.approx(2.0, rel=0.05)
    assert fit.b == pytest.approx(1.5, rel=0.05)
    assert fit.z_range == pytest.approx((0.1, 1.0))
    assert fit.pair_count == 25
    assert fit.r_squared is not None and fit.r_squared > 0.99
    assert fit.predict(z) == pytest.approx(q, rel=0.05)


def test_exponential_and_linear_forms() -> None:
    z = np.array([0.2, 0.4, 0.6, 0.8])

    exponential = fit_rating_curve(z, 0.5 * np.exp(2.0 * z), "exponential")
    linear = fit_rating_curve(z, 3.0 * z + 0.25, "linear")

    assert (exponential.a, exponential.b) == pytest.approx((0.5, 2.0))
    assert (linear.a, linear.b) == pytest.approx((3.0, 0.25))
    assert linear.predict(1.0) == pytest.approx(3.25)


def test_pairs_that_cannot_be_log_transformed_are_dropped() -> None:
    fit = fit_rating_curve([0.0, 0.1, 0.2, 0.3], [0.0, 0.5, 1.1, 2.0], "power")

    assert fit.dropped_pairs == 1
    assert fit.pair_count == 3
    assert fit.z_range == pytest.approx((0.1, 0.3))


def test_fewer_than_two_usable_pairs_raise() -> None:
    with pytest.raises(ConfigurationError):
        fit_rating_curve([0.0, 0.2], [0.0, 1.0], "power")
    with pytest.raises(ConfigurationError):
        fit_rating_curve([0.1, 0.2], [0.5, 1.0], "cubic")


def test_coefficients_take_precedence_over_pairs() -> None:
    spec = RatingCurveSpec(z=(0.1, 0.2), q=(0.5, 1.0), a=1.0, b=2.0)

    resolution = resolve_rating_curve(spec)

    assert resolution.source == "coefficients"
    assert "ignoring data" in resolution.warnings[0]


def test_incomplete_spec_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        resolve_rating_curve(RatingCurveSpec(a=1.0))
    with pytest.raises(ConfigurationError):
        resolve_rating_curve(RatingCurveSpec(z=(0.1,), q=(0.5,)))
    with pytest.raises(ConfigurationError):
        RatingCurveSpec(z=(0.1, 0.2), q=(0.5,))


def test_spec_from_mapping_accepts_aliases() -> None:
    spec = RatingCurveSpec.from_mapping(
        {"Z": [0.1, 0.2, 0.3], "Q": [0.5, 1.1, 2.0], "fit": "Exponential", "ignore_oob_Z": False}
    )

    assert spec.z == (0.1, 0.2, 0.3)
    assert spec.form == "exponential"
    assert spec.ignore_out_of_range is False
    assert spec.has_pairs
    assert RatingCurveSpec.from_mapping(None).is_empty
    with pytest.raises(ConfigurationError):
        RatingCurveSpec.from_mapping({"Z": "0.1,0.2"})


def test_out_of_range_stage_is_masked_only_when_requested() -> None:
    fit = RatingCurveFit(form="linear", a=1.0, b=0.0, z_range=(0.2, 0.4))
    stage = pd.Series([0.1, 0.3, 0.5])

    masked, count = apply_rating_curve(stage, fit)
    kept, kept_count = apply_rating_curve(stage, fit, ignore_out_of_range=False)

    assert count == 2
    assert masked.isna().tolist() == [True, False, True]
    assert kept_count == 0
    assert kept.tolist() == pytest.approx([0.1, 0.3, 0.5])
    assert masked.name == "Discharge_m3s"


def test_estimate_discharge_from_level_pairs() -> None:
    table, presence = _stage_table("Level_m", [0.1, 0.15, 0.2, 0.25, 0.3])
    spec = RatingCurveSpec(z=(0.1, 0.2, 0.3), q=(0.5, 1.1, 2.0), form="power")

    result = estimate_discharge(table, spec, presence)

    assert result.source == "pairs"
    assert result.stage_variable == "Level_m"
    assert result.presence.has("Discharge_m3s", "Depth_m")
    assert result.table["Discharge_m3s"].notna().all()
    assert result.table["Discharge_m3s"].is_monotonic_increasing
    assert result.table["Depth_m"].tolist() == table["Level_m"].tolist()
    assert result.out_of_range == 0


def test_measured_depth_is_kept_when_level_drives_discharge() -> None:
    table, presence = _stage_table("Level_m", [0.2, 0.3])
    table["Depth_m"] = [0.75, 0.76]
    presence = presence.with_added("Depth_m")

    kept = estimate_discharge(table, RatingCurveSpec(a=1.0, b=1.0, form="linear"), presence)
    replaced = estimate_discharge(
        table, RatingCurveSpec(a=1.0, b=1.0, form="linear"), presence, depth_source="Level_m"
    )

    assert kept.table["Depth_m"].tolist() == pytest.approx([0.75, 0.76])
    assert kept.discharge.tolist() == pytest.approx([1.2, 1.3])
    assert any("Keeping measured Depth_m" in note for note in kept.notes)
    assert replaced.table["Depth_m"].tolist() == pytest.approx([0.2, 0.3])


def test_sensor_height_turns_level_into_depth() -> None:
    table, presence = _stage_table("Level_m", [0.2, 0.3])
    spec = RatingCurveSpec(a=1.0, b=2.0, sensor_height=0.5)

    result = estimate_discharge(table, spec, presence)

    assert result.depth.tolist() == pytest.approx([0.7, 0.8])
    assert result.discharge.tolist() == pytest.approx([0.04, 0.09])


def test_calibration_depths_are_converted_to_level() -> None:
    table, presence = _stage_table("Level_m", [0.1, 0.2])
    spec = RatingCurveSpec(
        z=(0.6, 0.7, 0.8),
        q=(0.5, 1.0, 1.5),
        form="linear",
        sensor_height=0.5,
        calibration_reference="depth",
    )

    result = estimate_discharge(table, spec, presence)

    assert result.fit.z_range == pytest.approx((0.1, 0.3))
    assert result.discharge.tolist() == pytest.approx([0.5, 1.0])
    assert any("Converted calibration depth to level" in note for note in result.notes)


def test_calibration_conversion_requires_sensor_height() -> None:
    table, presence = _stage_table("Depth_m", [0.1, 0.2])
    spec = RatingCurveSpec(z=(0.1, 0.2), q=(0.5, 1.0), calibration_reference="level")

    with pytest.raises(ConfigurationError, match="sensor_height"):
        estimate_discharge(table, spec, presence)


def test_existing_discharge_is_replaced_with_a_warning() -> None:
    table, presence = _stage_table("Depth_m", [0.2, 0.3])
    table["Discharge_m3s"] = [9.0, 9.0]
    presence = presence.with_added("Discharge_m3s")

    result = estimate_discharge(table, RatingCurveSpec(a=1.0, b=1.0, form="linear"), presence)

    assert result.table["Discharge_m3s"].tolist() == pytest.approx([1.2, 1.3])
    assert any("ignoring available discharge" in message for message in result.warnings)


def test_missing_stage_series_is_a_sufficiency_error() -> None:
    table, presence = _stage_table("DO_mgL", [8.0, 8.1])

    with pytest.raises(DataSufficiencyError):
        estimate_discharge(table, RatingCurveSpec(a=1.0, b=1.0), presence)


def test_plotter_is_called_only_when_plotting_is_requested() -> None:
    table, presence = _stage_table("Level_m", [0.2, 0.3])
    calls: list[object] = []

    estimate_discharge(table, RatingCurveSpec(a=1.0, b=1.0), presence, plotter=calls.append)
    estimate_discharge(table, RatingCurveSpec(a=1.0, b=1.0, plot=True), presence, plotter=calls.append)

    assert len(calls) == 1
