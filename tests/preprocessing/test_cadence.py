"""Unit tests for per-variable sampling interval inference."""

from __future__ import annotations

from typing import Sequence

import numpy as np
import pandas as pd
import pytest

from metabolism_prep.exceptions import DataSufficiencyError, InputContractError
from metabolism_prep.preprocessing import (
    infer_sampling_interval,
    infer_variable_intervals,
    run_length_encode,
)


def _timestamps(diffs_minutes: Sequence[float], start: str = "2024-06-01 00:00") -> pd.DatetimeIndex:
    offsets = np.concatenate(([0.0], np.cumsum(np.asarray(diffs_minutes, dtype=float))))
    return pd.Timestamp(start, tz="UTC") + pd.to_timedelta(offsets, unit="min")


def test_run_length_encode_groups_consecutive_values() -> None:
    values, lengths = run_length_encode([5, 5, 15, 5, 5, 5])

    assert values.tolist() == [5, 15, 5]
    assert lengths.tolist() == [2, 1, 3]


def test_uniform_spacing_is_returned_exactly() -> None:
    """A perfectly regular series yields its spacing and no gaps."""

    estimate = infer_sampling_interval(_timestamps([15] * 20), variable="DO_mgL")

    assert estimate.interval_minutes == 15
    assert estimate.interval_seconds == 900
    assert estimate.gap_count == 0
    assert estimate.irregular is False
    assert estimate.run_count == 1
    assert estimate.sample_count == 21


def test_single_missing_stretch_counts_as_one_gap() -> None:
    """Dropping two middle samples leaves the interval intact with one gap."""

    estimate = infer_sampling_interval(_timestamps([15, 15, 15, 45, 15, 15]))

    assert estimate.interval_minutes == 15
    assert estimate.gap_count == 1
    assert estimate.irregular is False
    assert any("1 sample gap" in note for note in estimate.notes)


def test_mode_is_weighted_by_run_duration_not_run_count() -> None:
    """One long run of 5-min spacing outweighs several short 15/30-min runs."""

    diffs = [5] * 10 + [15, 30, 15, 30, 15, 30]
    estimate = infer_sampling_interval(_timestamps(diffs))

    assert estimate.interval_minutes == 5
    assert estimate.distinct_intervals_seconds == (300, 900, 1800)
    assert estimate.irregular is False


def test_ties_resolve_to_the_shortest_spacing() -> None:
    estimate = infer_sampling_interval(_timestamps([10, 10, 20, 20]))

    assert estimate.interval_minutes == 10


def test_non_multiple_spacings_are_flagged_irregular() -> None:
    estimate = infer_sampling_interval(_timestamps([10, 10, 10, 15, 15]), variable="WaterTemp_C")

    assert estimate.irregular is True
    assert estimate.interval_minutes == 10
    assert estimate.warnings
    assert "Gaps will be introduced" in estimate.warnings[0]


def test_duplicates_and_unsorted_input_are_normalised() -> None:
    stamps = list(_timestamps([30, 30, 30]))
    shuffled = [stamps[2], stamps[0], stamps[1], stamps[0], stamps[3]]

    estimate = infer_sampling_interval(shuffled)

    assert estimate.interval_minutes == 30
    assert estimate.sample_count == 4


def test_fractional_minute_interval_is_exposed_as_fraction() -> None:
    estimate = infer_sampling_interval(_timestamps([0.5] * 6))

    assert estimate.interval_seconds == 30
    assert str(estimate.interval_fraction) == "1/2"


def test_fewer_than_two_timestamps_raise() -> None:
    with pytest.raises(DataSufficiencyError):
        infer_sampling_interval([pd.Timestamp("2024-06-01", tz="UTC")])


def test_sub_second_spacing_is_ignored_with_a_warning() -> None:
    """Distinct stamps a fraction of a second apart must not zero the spacing."""

    estimate = infer_sampling_interval(
        [
            "2024-06-01 00:00:00.000",
            "2024-06-01 00:00:00.200",
            "2024-06-01 00:15:00",
            "2024-06-01 00:30:00",
            "2024-06-01 00:45:00",
        ],
        variable="DO_mgL",
    )

    assert estimate.interval_seconds == 900
    assert estimate.irregular is False
    assert estimate.distinct_intervals_seconds == (900,)
    assert any("sub-second" in message for message in estimate.warnings)


def test_only_sub_second_spacing_is_a_contract_error() -> None:
    with pytest.raises(InputContractError):
        infer_sampling_interval(["2024-06-01 00:00:00.0", "2024-06-01 00:00:00.3"])


def test_variable_intervals_are_inferred_per_variable() -> None:
    do_times = _timestamps([5] * 12)
    temp_times = _timestamps([15] * 4)
    records = pd.DataFrame(
        {
            "DateTime_UTC": list(do_times) + list(temp_times),
            "variable": ["DO_mgL"] * len(do_times) + ["WaterTemp_C"] * len(temp_times),
            "value": np.arange(len(do_times) + len(temp_times), dtype=float),
        }
    )

    estimates = infer_variable_intervals(records)

    assert list(estimates) == ["DO_mgL", "WaterTemp_C"]
    assert estimates["DO_mgL"].interval_minutes == 5
    assert estimates["WaterTemp_C"].interval_minutes == 15
