"""Tests for the model input layouts and the specification record."""

from __future__ import annotations

import pandas as pd
import pytest

from metabolism_prep.exceptions import ConfigurationError, DataSufficiencyError
from metabolism_prep.output import (
    MODEL_VARIABLES,
    OutputKind,
    PrepSpecification,
    format_model_input,
    resolve_output_kind,
)


def _model_table() -> pd.DataFrame:
    index = pd.date_range("2024-06-01 12:00", periods=3, freq="15min", tz="UTC", name="DateTime_UTC")
    return pd.DataFrame(
        {
            "solar_time": pd.date_range("2024-06-01 06:45", periods=3, freq="15min"),
            "DO_obs": [8.0, 8.2, 8.4],
            "DO_sat": [9.0, 9.0, 9.1],
            "depth": [0.3, 0.31, 0.32],
            "temp_water": [18.0, 18.5, 19.0],
            "light": [800.0, 900.0, 1000.0],
            "atmo_pressure": [0.99, 0.99, 0.99],
        },
        index=index,
    )


def test_only_bayesian_stream_metabolizer_is_resolved() -> None:
    assert resolve_output_kind("streamMetabolizer", "bayes") is OutputKind.STREAM_METABOLIZER_BAYES
    with pytest.raises(ConfigurationError, match="BASE not yet supported"):
        resolve_output_kind("BASE", "bayes")
    with pytest.raises(ConfigurationError, match="MLE mode"):
        resolve_output_kind("streamMetabolizer", "mle")
    with pytest.raises(ConfigurationError):
        resolve_output_kind("LOADEST", "bayes")


def test_stream_metabolizer_layout_selects_model_columns() -> None:
    table = _model_table()
    table["discharge"] = [1.0, 1.1, 1.2]

    data = format_model_input(table, OutputKind.STREAM_METABOLIZER_BAYES)

    assert list(data.columns) == [*MODEL_VARIABLES[OutputKind.STREAM_METABOLIZER_BAYES], "discharge"]
    assert "atmo_pressure" not in data.columns
    assert isinstance(data.index, pd.RangeIndex)


def test_base_layout_splits_date_and_time() -> None:
    data = format_model_input(_model_table(), OutputKind.BASE)

    assert list(data.columns) == ["Date", "Time", "I", "tempC", "DO_meas", "atmo_pressure", "salinity"]
    assert data["Time"].tolist() == ["06:45:00", "07:00:00", "07:15:00"]
    assert data["salinity"].tolist() == [0.0, 0.0, 0.0]
    assert OutputKind.BASE.model == "BASE"


def test_missing_model_variables_are_listed() -> None:
    table = _model_table().drop(columns=["DO_sat", "depth"])

    with pytest.raises(DataSufficiencyError, match="DO_sat, depth"):
        format_model_input(table, OutputKind.STREAM_METABOLIZER_BAYES)


def test_specification_mapping_includes_extras() -> None:
    specs = PrepSpecification(
        model="streamMetabolizer",
        type="bayes",
        interval="15 min",
        requested_interval=None,
        rm_flagged=(),
        fillgaps="interpolation",
        maxhours=3.0,
        used_rating_curve=False,
        estimate_areal_depth=False,
        estimate_par=True,
        extras={"grid_starting_row": 2},
    )

    payload = specs.to_mapping()

    assert payload["rm_flagged"] == "none"
    assert payload["grid_starting_row"] == 2
    assert payload["interval"] == "15 min"
