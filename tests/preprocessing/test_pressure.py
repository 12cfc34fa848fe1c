"""Tests for air-pressure reconciliation."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from metabolism_prep.io import PressureRetrieval, SiteMetadata, TimeWindow
from metabolism_prep.preprocessing import VariablePresence, reconcile_pressure

SITE = SiteMetadata(lat=36.07, lon=-79.09, region="NC", site="Eno")


def _grid_table(pressure: list[float] | None = None, periods: int = 8) -> pd.DataFrame:
    index = pd.date_range("2024-06-01", periods=periods, freq="15min", tz="UTC", name="DateTime_UTC")
    frame = pd.DataFrame({"DO_mgL": np.linspace(8.0, 9.0, periods)}, index=index)
    if pressure is not None:
        frame["AirPres_kPa"] = pressure
    return frame


class StaticSource:
    """Returns a constant pressure series spanning the requested window."""

    def __init__(self, value: float, name: str = "static") -> None:
        self.value = value
        self.name = name
        self.calls: list[TimeWindow] = []

    def __call__(self, site: SiteMetadata, window: TimeWindow) -> PressureRetrieval:
        self.calls.append(window)
        index = pd.date_range(
            pd.Timestamp(window.start) - pd.Timedelta(hours=1),
            pd.Timestamp(window.end) + pd.Timedelta(hours=1),
            freq="30min",
        )
        return PressureRetrieval(self.name, pd.Series(self.value, index=index))


def _failing_source(site: SiteMetadata, window: TimeWindow) -> PressureRetrieval:
    raise ConnectionError("station offline")


def test_no_retrieval_and_no_pressure_warns_about_coverage() -> None:
    table = _grid_table()

    result = reconcile_pressure(
        table, VariablePresence.of(table.columns), SITE,
        need_for_saturation=False, need_for_discharge=False,
    )

    assert result.retrieval_requested is False
    assert result.attempts == ()
    assert result.coverage == 0.0
    assert "AirPres_kPa" not in result.table.columns
    assert result.warnings and "coverage is 0.0%" in result.warnings[0]


def test_retrieved_pressure_is_added_when_absent() -> None:
    table = _grid_table()
    source = StaticSource(100.2)

    result = reconcile_pressure(
        table, VariablePresence.of(table.columns), SITE,
        need_for_saturation=True, need_for_discharge=False, primary=source,
    )

    assert len(source.calls) == 1
    assert source.calls[0].start == table.index[0]
    assert result.source_used == "static"
    assert "AirPres_kPa" in result.presence
    assert result.table["AirPres_kPa"].tolist() == pytest.approx([100.2] * 8)
    assert result.coverage == 1.0
    assert result.degradations == ()


def test_measured_values_are_never_overwritten() -> None:
    measured = [99.0, np.nan, 99.4, np.nan, np.nan, np.nan, 99.8, 99.9]
    table = _grid_table(measured)

    result = reconcile_pressure(
        table, VariablePresence.of(table.columns), SITE,
        need_for_saturation=False, need_for_discharge=False,
        force_retrieve=True, primary=StaticSource(101.0),
    )

    pressure = result.table["AirPres_kPa"]
    assert pressure.iloc[[0, 2, 6, 7]].tolist() == [99.0, 99.4, 99.8, 99.9]
    assert pressure.iloc[[1, 3, 4, 5]].tolist() == pytest.approx([101.0] * 4)
    assert result.filled_from_source == 4


def test_secondary_source_is_used_when_primary_raises() -> None:
    table = _grid_table()
    fallback = StaticSource(98.5, name="fallback")

    result = reconcile_pressure(
        table, VariablePresence.of(table.columns), SITE,
        need_for_saturation=True, need_for_discharge=False,
        primary=_failing_source, secondary=fallback,
    )

    assert [attempt.source for attempt in result.attempts] == ["_failing_source", "fallback"]
    assert result.attempts[0].error == "ConnectionError: station offline"
    assert result.source_used == "fallback"
    assert any("Failed to retrieve air pressure data from _failing_source" in note for note in result.notes)


def test_total_retrieval_failure_degrades_without_raising() -> None:
    table = _grid_table()

    result = reconcile_pressure(
        table, VariablePresence.of(table.columns), SITE,
        need_for_saturation=True, need_for_discharge=False,
        primary=_failing_source, secondary=_failing_source,
    )

    assert result.source_used is None
    assert "AirPres_kPa" not in result.table.columns
    assert any("Failed to retrieve air pressure data." in message for message in result.degradations)


def test_missing_site_degrades() -> None:
    table = _grid_table()

    result = reconcile_pressure(
        table, VariablePresence.of(table.columns), None,
        need_for_saturation=False, need_for_discharge=True, primary=StaticSource(100.0),
    )

    assert result.attempts == ()
    assert result.degradations


def test_interior_holes_are_interpolated_but_edges_are_not() -> None:
    table = _grid_table([100.0, np.nan, 102.0, 103.0, 104.0, 105.0, 106.0, np.nan])

    result = reconcile_pressure(
        table, VariablePresence.of(table.columns), SITE,
        need_for_saturation=False, need_for_discharge=False,
    )

    pressure = result.table["AirPres_kPa"]
    assert pressure.iloc[1] == pytest.approx(101.0)
    assert np.isnan(pressure.iloc[7])
    assert result.interpolated == 1
    assert result.coverage == pytest.approx(7 / 8)
    assert result.warnings == ()
