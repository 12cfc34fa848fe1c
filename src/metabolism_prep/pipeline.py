"""End-to-end preparation of metabolism model inputs from raw sensor records.

The stages run strictly in sequence, each consuming the table produced by
the previous one:

1. normalise the long-format records and mask flagged values;
2. infer the native interval of every variable and pick the grid spacing;
3. pivot to a wide table and reconcile proxy variables;
4. align the table to the regular grid;
5. reconcile air pressure against the configured sources;
6. derive discharge and depth from the rating curve, when one is given;
7. floor non-positive depth and discharge;
8. compute solar time and light, impute short gaps and derive DO
   saturation and areal depth;
9. format the columns expected by the downstream model.

Configuration and data-sufficiency problems raise immediately. Data
quality issues are corrected in place and recorded in the run's
:class:`~metabolism_prep.qa.RunDiagnostics`.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import pandas as pd

from metabolism_prep.config import PrepConfig
from metabolism_prep.exceptions import DataSufficiencyError, RetrievalDegradation
from metabolism_prep.io import GapFiller, PressureSource, RatingCurvePlotter, SiteMetadata
from metabolism_prep.io.schema_registry import (
    AIR_PRESSURE,
    DEPTH,
    DISCHARGE,
    DO_CONCENTRATION,
    DO_SAT_CONCENTRATION,
    DO_SAT_PERCENT,
    LIGHT_LUX,
    LIGHT_PAR,
    WATER_TEMPERATURE,
)
from metabolism_prep.output import OutputKind, PrepSpecification, format_model_input
from metabolism_prep.preprocessing import (
    GridAlignment,
    VariablePresence,
    align_to_grid,
    fill_gaps,
    infer_variable_intervals,
    kpa_to_atm,
    kpa_to_mbar,
    lux_to_par,
    mask_flagged_values,
    normalise_observation_records,
    pivot_to_wide,
    reconcile_intervals,
    reconcile_pressure,
    sanitize_table,
    unify_variables,
    window_from_hours,
)
from metabolism_prep.qa import RunDiagnostics
from metabolism_prep.stats import (
    RatingCurveResult,
    calc_areal_depth,
    calc_solar_insolation,
    convert_utc_to_solar_time,
    do_sat_from_percent,
    estimate_discharge,
    o2_at_saturation,
)

__all__ = ["PrepResult", "prep_metabolism"]


@dataclass(frozen=True)
class PrepResult:
    """Prepared model input together with the run's provenance."""

    data: pd.DataFrame
    specs: PrepSpecification
    diagnostics: RunDiagnostics
    alignment: GridAlignment
    rating_curve: RatingCurveResult | None = None

    @property
    def warnings(self) -> tuple[str, ...]:
        return tuple(event.message for event in self.diagnostics.warnings)


def _attach_light(
    table: pd.DataFrame,
    presence: VariablePresence,
    site: SiteMetadata,
    estimate_par: bool,
    diagnostics: RunDiagnostics,
) -> pd.DataFrame:
    frame = table.copy()
    apparent = convert_utc_to_solar_time(frame.index, site.lon, kind="apparent")
    light = pd.Series(calc_solar_insolation(apparent, site.lat), index=frame.index)

    supplied: pd.Series | None = None
    if not estimate_par and LIGHT_PAR in presence:
        supplied = frame[LIGHT_PAR]
        diagnostics.note(
            "light",
            "Using supplied light data. Unless you're quite confident in these data, "
            "it may be preferable to set estimate_par=True.",
        )
    elif not estimate_par and LIGHT_LUX in presence:
        supplied = lux_to_par(frame[LIGHT_LUX])
        diagnostics.note("light", "Using supplied illuminance converted to PAR.")
    else:
        diagnostics.note("light", "Estimating PAR from latitude and time.")
    if supplied is not None:
        light = light.where(supplied.isna(), supplied)

    frame["solar_time"] = convert_utc_to_solar_time(frame.index, site.lon, kind="mean")
    frame["light"] = light
    return frame.drop(columns=[col for col in (LIGHT_PAR, LIGHT_LUX) if col in frame.columns])


def _derive_depth(
    table: pd.DataFrame,
    presence: VariablePresence,
    estimate_areal_depth: bool,
    diagnostics: RunDiagnostics,
) -> pd.Series:
    if DISCHARGE in presence and estimate_areal_depth:
        diagnostics.note("depth", "Estimating mean areal depth from discharge.")
        return pd.Series(calc_areal_depth(table[DISCHARGE]), index=table.index)
    if DEPTH in presence:
        return table[DEPTH]
    if estimate_areal_depth:
        raise DataSufficiencyError(
            "Missing discharge and depth data. Not enough information to proceed. "
            "Might a rating curve be of service?"
        )
    raise DataSufficiencyError(
        "Missing depth data. Not enough information to proceed. "
        "Try setting estimate_areal_depth to True."
    )


def _derive_do_sat(
    table: pd.DataFrame,
    presence: VariablePresence,
    diagnostics: RunDiagnostics,
) -> pd.Series:
    if DO_SAT_CONCENTRATION in presence:
        return table[DO_SAT_CONCENTRATION]
    if DO_SAT_PERCENT in presence:
        result = do_sat_from_percent(table[DO_CONCENTRATION], table[DO_SAT_PERCENT])
        diagnostics.extend_notes("do_saturation", result.notes)
        return result.do_sat
    if WATER_TEMPERATURE not in presence or AIR_PRESSURE not in presence:
        raise DataSufficiencyError(
            "Insufficient data to fit this model. Need either DO saturation "
            "or water temperature and air pressure."
        )
    diagnostics.note("do_saturation", "Modeling DO saturation from water temperature and air pressure.")
    return pd.Series(
        o2_at_saturation(table[WATER_TEMPERATURE], kpa_to_mbar(table[AIR_PRESSURE])),
        index=table.index,
    )


def prep_metabolism(
    records: pd.DataFrame,
    site: SiteMetadata,
    config: PrepConfig | None = None,
    *,
    pressure_source: PressureSource | None = None,
    fallback_pressure_source: PressureSource | None = None,
    gap_filler: GapFiller | None = None,
    plotter: RatingCurvePlotter | None = None,
    diagnostics: RunDiagnostics | None = None,
) -> PrepResult:
    """Condition long-format sensor records into a metabolism model input table.

    Parameters
    ----------
    records:
        Long table with ``DateTime_UTC``, ``variable``, ``value`` and,
        optionally, ``flagtype``/``flagcomment``/``region``/``site``.
    site:
        Site location, used for solar geometry and pressure retrieval.
    config:
        Run options; defaults to :class:`PrepConfig` defaults.
    pressure_source, fallback_pressure_source:
        Air-pressure collaborators tried in order when pressure is needed.
    gap_filler:
        Replacement imputation routine; :func:`fill_gaps` is used otherwise.
    plotter:
        Receives the rating-curve result when the curve requests a plot.
    diagnostics:
        Log to append to; a fresh one is created per run otherwise.

    Returns
    -------
    PrepResult
        Formatted model input, the specification record and the diagnostics.
    """

    config = config or PrepConfig()
    kind = config.output_kind
    diagnostics = diagnostics if diagnostics is not None else RunDiagnostics()

    normalised = normalise_observation_records(records)
    masking = mask_flagged_values(normalised, config.rm_flagged)
    diagnostics.record_stage("flags", masking)
    if masking.total_masked:
        diagnostics.note(
            "flags",
            f"Replaced {masking.total_masked} flagged value(s) with missing values "
            f"({', '.join(flag.value for flag in masking.flags_removed)}).",
        )

    estimates = infer_variable_intervals(masking.records)
    for estimate in estimates.values():
        diagnostics.extend_notes("intervals", estimate.notes)
        diagnostics.extend_warnings("intervals", estimate.warnings)
    decision = reconcile_intervals(estimates, config.interval)
    diagnostics.record_stage("intervals", decision)
    diagnostics.extend_notes("intervals", decision.notes)

    wide, presence = pivot_to_wide(masking.records)
    unification = unify_variables(
        wide,
        presence,
        estimate_areal_depth=config.estimate_areal_depth,
        level_depth_policy=config.level_depth_policy,  # type: ignore[arg-type]
        source_policy=config.source_policy,  # type: ignore[arg-type]
    )
    diagnostics.record_stage("unification", unification)
    diagnostics.extend_notes("unification", unification.notes)
    diagnostics.extend_warnings("unification", unification.warnings)
    presence = unification.presence

    alignment = align_to_grid(
        unification.table, decision.step, max_attempts=config.max_alignment_attempts
    )
    diagnostics.record_stage("alignment", alignment)
    diagnostics.extend_notes("alignment", alignment.notes)

    missing_saturation = not presence.has_any(DO_SAT_CONCENTRATION, DO_SAT_PERCENT)
    missing_pressure = AIR_PRESSURE not in presence
    pressure = reconcile_pressure(
        alignment.table,
        presence,
        site,
        need_for_saturation=missing_saturation and missing_pressure,
        need_for_discharge=config.uses_rating_curve and missing_pressure and DEPTH not in presence,
        force_retrieve=config.retrieve_pressure,
        primary=pressure_source,
        secondary=fallback_pressure_source,
    )
    diagnostics.record_stage("pressure", pressure)
    diagnostics.extend_notes("pressure", pressure.notes)
    diagnostics.extend_warnings("pressure", pressure.degradations, RetrievalDegradation)
    diagnostics.extend_warnings("pressure", pressure.warnings)
    table, presence = pressure.table, pressure.presence

    rating_curve: RatingCurveResult | None = None
    if config.uses_rating_curve:
        rating_curve = estimate_discharge(
            table,
            config.rating_curve,
            presence,
            plotter=plotter,
            depth_source=unification.resolutions.get(DEPTH),
        )
        diagnostics.record_stage("rating_curve", rating_curve)
        diagnostics.extend_notes("rating_curve", rating_curve.notes)
        diagnostics.extend_warnings("rating_curve", rating_curve.warnings)
        table, presence = rating_curve.table, rating_curve.presence

    sanitized = sanitize_table(table, floor=config.nonpositive_floor)
    diagnostics.record_stage("sanitize", sanitized)
    diagnostics.extend_warnings("sanitize", sanitized.warnings)
    table = sanitized.table

    table = _attach_light(table, presence, site, config.estimate_par, diagnostics)
    presence = presence.with_removed(LIGHT_PAR, LIGHT_LUX)

    if config.fillgaps != "none":
        window = window_from_hours(config.maxhours, decision.step_minutes)
        columns = [col for col in table.columns if col != "solar_time"]
        if gap_filler is not None:
            filled = gap_filler(table.loc[:, columns], config.fillgaps, window)
            table = table.assign(**{col: filled[col] for col in columns})
        else:
            gap_fill = fill_gaps(
                table, config.fillgaps, window, seed=config.random_seed, columns=columns
            )
            diagnostics.record_stage("gap_fill", gap_fill)
            diagnostics.extend_warnings("gap_fill", gap_fill.warnings)
            if gap_fill.total_filled:
                diagnostics.note(
                    "gap_fill",
                    f"Imputed {gap_fill.total_filled} value(s) with method {config.fillgaps!r} "
                    f"(runs of at most {window} step(s)).",
                )
            table = gap_fill.table

    model_table = pd.DataFrame(index=table.index)
    model_table["solar_time"] = table["solar_time"]
    if DO_CONCENTRATION in presence:
        model_table["DO_obs"] = table[DO_CONCENTRATION]
    if WATER_TEMPERATURE in presence:
        model_table["temp_water"] = table[WATER_TEMPERATURE]
    if DISCHARGE in presence:
        model_table["discharge"] = table[DISCHARGE]
    model_table["depth"] = _derive_depth(
        table, presence, config.estimate_areal_depth, diagnostics
    )
    if DO_CONCENTRATION not in presence:
        raise DataSufficiencyError("streamMetabolizer cannot be run without DO_mgL.")
    if AIR_PRESSURE in presence:
        model_table["atmo_pressure"] = kpa_to_atm(table[AIR_PRESSURE])
    model_table["DO_sat"] = _derive_do_sat(table, presence, diagnostics)
    model_table["light"] = table["light"]

    if kind is OutputKind.STREAM_METABOLIZER_BAYES and DISCHARGE not in presence:
        diagnostics.warn(
            "output",
            "Without discharge data (or estimates), you'll have to run the model with pool_K600='none'.",
        )

    data = format_model_input(model_table, kind)
    specs = PrepSpecification(
        model=config.model,
        type=config.type,
        interval=decision.label,
        requested_interval=config.interval,
        rm_flagged=tuple(flag.value for flag in masking.flags_removed),
        fillgaps=config.fillgaps,
        maxhours=config.maxhours,
        used_rating_curve=rating_curve is not None,
        estimate_areal_depth=config.estimate_areal_depth,
        estimate_par=config.estimate_par,
        pressure_source=pressure.source_used,
        site=site.sitecode,
        extras={
            "grid_starting_row": alignment.starting_row,
            "rows": int(len(data)),
            "missing_values": int(np.count_nonzero(data.isna().to_numpy())),
        },
    )
    diagnostics.record_stage("output", specs)
    return PrepResult(
        data=data,
        specs=specs,
        diagnostics=diagnostics,
        alignment=alignment,
        rating_curve=rating_curve,
    )
