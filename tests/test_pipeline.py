"""End-to-end tests of the metabolism input preparation pipeline."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from metabolism_prep import PrepConfig, prep_metabolism
from metabolism_prep.exceptions import ConfigurationError, DataSufficiencyError
from metabolism_prep.io import PressureRetrieval, SiteMetadata, TimeWindow
from metabolism_prep.qa import RunDiagnostics
from metabolism_prep.stats import RatingCurveSpec

SITE = SiteMetadata(lat=36.07, lon=-79.09, region="NC", site="Eno")
RATING_CURVE = RatingCurveSpec(z=(0.1, 0.2, 0.3), q=(0.5, 1.1, 2.0), form="power")


def _long_records(
    variables: dict[str, np.ndarray],
    start: str = "2024-06-01 00:00",
    freq: str = "15min",
) -> pd.DataFrame:
    frames = []
    for name, values in variables.items():
        times = pd.date_range(start, periods=len(values), freq=freq, tz="UTC")
        frames.append(
            pd.DataFrame(
                {
                    "region": "NC",
                    "site": "Eno",
                    "DateTime_UTC": times,
                    "variable": name,
                    "value": values,
                    "flagtype": None,
                    "flagcomment": None,
                }
            )
        )
    return pd.concat(frames, ignore_index=True)


def _diel(periods: int = 96) -> dict[str, np.ndarray]:
    phase = np.linspace(0.0, 2.0 * np.pi, periods, endpoint=False)
    return {
        "DO_mgL": 8.5 + 1.2 * np.sin(phase),
        "WaterTemp_C": 19.0 + 2.0 * np.sin(phase - 0.5),
        "Level_m": 0.2 + 0.09 * np.sin(phase / 2.0),
    }


def _constant_pressure(site: SiteMetadata, window: TimeWindow) -> PressureRetrieval:
    index = pd.date_range(
        pd.Timestamp(window.start) - pd.Timedelta(hours=1),
        pd.Timestamp(window.end) + pd.Timedelta(hours=1),
        freq="1h",
    )
    return PressureRetrieval("station", pd.Series(100.8, index=index))


def test_rating_curve_run_produces_complete_stream_metabolizer_input() -> None:
    records = _long_records(_diel())
    records.loc[3, "flagtype"] = "Bad Data"
    config = PrepConfig(rating_curve=RATING_CURVE)

    result = prep_metabolism(records, SITE, config, pressure_source=_constant_pressure)

    data = result.data
    assert list(data.columns) == [
        "solar_time",
        "DO_obs",
        "DO_sat",
        "depth",
        "temp_water",
        "light",
        "discharge",
    ]
    assert len(data) == 96
    assert data[["DO_obs", "DO_sat", "depth", "discharge", "temp_water", "light"]].notna().all().all()
    assert (data["depth"] > 0).all()
    assert (data["light"] >= 0).all()
    assert data["DO_sat"].between(8.0, 10.0).all()
    assert data["solar_time"].dt.tz is None

    specs = result.specs.to_mapping()
    assert specs["interval"] == "15 min"
    assert specs["rm_flagged"] == "Bad Data,Questionable"
    assert specs["used_rating_curve"] is True
    assert specs["pressure_source"] == "station"
    assert specs["grid_starting_row"] == 1
    assert specs["site"] == "NC_Eno"
    assert result.rating_curve is not None and result.rating_curve.source == "pairs"
    assert "flags" in result.diagnostics.stages


def test_measured_depth_survives_a_level_rating_curve() -> None:
    variables = _diel()
    variables["Depth_m"] = np.full(96, 0.75)
    records = _long_records(variables)
    config = PrepConfig(rating_curve=RATING_CURVE)

    result = prep_metabolism(records, SITE, config, pressure_source=_constant_pressure)

    assert np.allclose(result.data["depth"], 0.75)
    assert result.data["discharge"].notna().all()
    assert any("using Depth_m for depth" in message for message in result.warnings)
    assert result.rating_curve is not None
    assert result.rating_curve.stage_variable == "Level_m"
    assert any("Keeping measured Depth_m" in note for note in result.rating_curve.notes)


def test_off_phase_leading_records_shift_the_grid_anchor() -> None:
    variables = _diel(periods=48)
    records = _long_records(variables, start="2024-06-01 00:15")
    stray = pd.DataFrame(
        {
            "DateTime_UTC": pd.to_datetime(["2024-06-01 00:03", "2024-06-01 00:07"], utc=True),
            "variable": "DO_mgL",
            "value": [8.4, 8.45],
        }
    )
    records = pd.concat([stray, records], ignore_index=True)
    config = PrepConfig(rating_curve=RATING_CURVE, rm_flagged=())

    result = prep_metabolism(records, SITE, config, pressure_source=_constant_pressure)

    assert result.alignment.starting_row == 3
    assert result.specs.extras["grid_starting_row"] == 3
    assert len(result.data) == 48
    assert any("Sample interval is not consistent for DO_mgL" in message for message in result.warnings)


def test_depth_and_saturation_series_run_without_pressure() -> None:
    variables = _diel()
    depth = variables.pop("Level_m")
    variables["Depth_m"] = depth
    variables["satDO_mgL"] = np.full(96, 9.1)
    records = _long_records(variables)
    diagnostics = RunDiagnostics()

    result = prep_metabolism(
        records, SITE, PrepConfig(rm_flagged="none"), diagnostics=diagnostics  # type: ignore[arg-type]
    )

    assert result.diagnostics is diagnostics
    assert "discharge" not in result.data.columns
    assert result.data["DO_sat"].tolist() == pytest.approx([9.1] * 96)
    assert any("pool_K600" in message for message in result.warnings)
    assert result.specs.pressure_source is None


def test_supplied_light_is_used_when_estimation_is_disabled() -> None:
    variables = _diel()
    variables["Depth_m"] = variables.pop("Level_m")
    variables["satDO_mgL"] = np.full(96, 9.1)
    variables["Light_PAR"] = np.full(96, 123.0)
    records = _long_records(variables)

    result = prep_metabolism(records, SITE, PrepConfig(rm_flagged=(), estimate_par=False))

    assert result.data["light"].tolist() == pytest.approx([123.0] * 96)


def test_areal_depth_is_estimated_from_discharge() -> None:
    variables = _diel()
    variables.pop("Level_m")
    variables["Discharge_m3s"] = np.full(96, 1.0)
    variables["satDO_mgL"] = np.full(96, 9.1)
    records = _long_records(variables)

    result = prep_metabolism(
        records, SITE, PrepConfig(rm_flagged=(), estimate_areal_depth=True)
    )

    assert result.data["depth"].tolist() == pytest.approx([0.409] * 96)
    assert result.data["discharge"].tolist() == pytest.approx([1.0] * 96)


def test_short_gaps_are_imputed_through_a_custom_filler() -> None:
    variables = _diel()
    variables["DO_mgL"][10] = np.nan
    records = _long_records(variables)
    calls: list[tuple[str, int]] = []

    def filler(table: pd.DataFrame, method: str, window: int) -> pd.DataFrame:
        calls.append((method, window))
        return table.interpolate(method="time", limit_area="inside")

    result = prep_metabolism(
        records,
        SITE,
        PrepConfig(rating_curve=RATING_CURVE, rm_flagged=(), fillgaps="locf", maxhours=1.0),
        pressure_source=_constant_pressure,
        gap_filler=filler,
    )

    assert calls == [("locf", 4)]
    assert np.isfinite(result.data["DO_obs"].iloc[10])


def test_missing_depth_is_a_sufficiency_error() -> None:
    variables = _diel()
    variables.pop("Level_m")
    variables["satDO_mgL"] = np.full(96, 9.1)

    with pytest.raises(DataSufficiencyError, match="estimate_areal_depth"):
        prep_metabolism(_long_records(variables), SITE, PrepConfig(rm_flagged=()))


def test_missing_dissolved_oxygen_is_a_sufficiency_error() -> None:
    variables = _diel()
    variables.pop("DO_mgL")
    variables["satDO_mgL"] = np.full(96, 9.1)

    with pytest.raises(DataSufficiencyError, match="without DO_mgL"):
        prep_metabolism(
            _long_records(variables),
            SITE,
            PrepConfig(rating_curve=RATING_CURVE, rm_flagged=()),
            pressure_source=_constant_pressure,
        )


def test_flag_removal_without_flag_columns_is_rejected() -> None:
    records = _long_records(_diel()).drop(columns=["flagtype", "flagcomment"])

    with pytest.raises(ConfigurationError, match="No flag data"):
        prep_metabolism(records, SITE, PrepConfig(rating_curve=RATING_CURVE))


@pytest.mark.parametrize(
    ("model", "kind", "message"),
    [
        ("BASE", "bayes", "BASE not yet supported"),
        ("streamMetabolizer", "mle", "MLE mode is not currently available"),
    ],
)
def test_unsupported_output_layouts_are_rejected(model: str, kind: str, message: str) -> None:
    with pytest.raises(ConfigurationError, match=message):
        PrepConfig(model=model, type=kind)


def test_incompatible_interval_is_rejected_before_alignment() -> None:
    config = PrepConfig(rating_curve=RATING_CURVE, rm_flagged=(), interval="20 min")

    with pytest.raises(ConfigurationError, match="must conform"):
        prep_metabolism(_long_records(_diel()), SITE, config, pressure_source=_constant_pressure)


def test_thinned_interval_halves_the_row_count() -> None:
    config = PrepConfig(rating_curve=RATING_CURVE, rm_flagged=(), interval="30 min")

    result = prep_metabolism(
        _long_records(_diel()), SITE, config, pressure_source=_constant_pressure
    )

    assert len(result.data) == 48
    assert result.specs.interval == "30 min"
