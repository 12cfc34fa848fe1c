"""Preprocessing stages turning raw sensor records into a regular table."""

from __future__ import annotations

from .cadence import (
    IntervalEstimate,
    infer_sampling_interval,
    infer_variable_intervals,
    run_length_encode,
)
from .intervals import (
    IntervalDecision,
    RequestedInterval,
    parse_interval,
    reconcile_intervals,
)
from .records import (
    FlagMaskingResult,
    VariablePresence,
    mask_flagged_values,
    normalise_observation_records,
    parse_flag_selection,
    pivot_to_wide,
)
from .unification import (
    LevelDepthPolicy,
    SourcePolicy,
    UnificationResult,
    unify_variables,
)
from .grid_alignment import (
    Grid,
    GridAlignment,
    align_to_grid,
    build_gap_report,
)
from .pressure import (
    MIN_PRESSURE_COVERAGE,
    PressureReconciliation,
    reconcile_pressure,
)
from .sanitizer import (
    DEFAULT_FLOOR,
    FloorResult,
    SanitizationResult,
    floor_nonpositive,
    kpa_to_atm,
    kpa_to_mbar,
    lux_to_par,
    sanitize_table,
)
from .gap_fill import (
    FILL_METHODS,
    GapFillResult,
    default_gap_filler,
    fill_gaps,
    fillable_mask,
    window_from_hours,
)

__all__ = [
    "IntervalEstimate",
    "infer_sampling_interval",
    "infer_variable_intervals",
    "run_length_encode",
    "IntervalDecision",
    "RequestedInterval",
    "parse_interval",
    "reconcile_intervals",
    "FlagMaskingResult",
    "VariablePresence",
    "mask_flagged_values",
    "normalise_observation_records",
    "parse_flag_selection",
    "pivot_to_wide",
    "LevelDepthPolicy",
    "SourcePolicy",
    "UnificationResult",
    "unify_variables",
    "Grid",
    "GridAlignment",
    "align_to_grid",
    "build_gap_report",
    "MIN_PRESSURE_COVERAGE",
    "PressureReconciliation",
    "reconcile_pressure",
    "DEFAULT_FLOOR",
    "FloorResult",
    "SanitizationResult",
    "floor_nonpositive",
    "kpa_to_atm",
    "kpa_to_mbar",
    "lux_to_par",
    "sanitize_table",
    "FILL_METHODS",
    "GapFillResult",
    "default_gap_filler",
    "fill_gaps",
    "fillable_mask",
    "window_from_hours",
]
