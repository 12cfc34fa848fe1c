"""Resolution of proxy and duplicate variables measuring the same quantity.

Sites may report stage from their own sensor, from a reference gauging
network, or both; depth is frequently absent while level is present. The
rules below decide which series feeds the depth and discharge slots. Where
the right answer depends on the site (both level and depth present, or both
local and reference series present) the decision is taken from explicit
policies rather than guessed, and the conflict is always reported.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Mapping, Tuple

import pandas as pd

from metabolism_prep.io.schema_registry import (
    DEPTH,
    DISCHARGE,
    DISCHARGE_EXTERNAL,
    LEVEL,
    LEVEL_EXTERNAL,
)

from .records import VariablePresence

__all__ = [
    "LevelDepthPolicy",
    "SourcePolicy",
    "UnificationResult",
    "unify_variables",
]

LevelDepthPolicy = Literal["prefer_depth", "prefer_level", "most_complete"]
SourcePolicy = Literal["prefer_local", "prefer_external", "most_complete"]

LEVEL_DEPTH_POLICIES = ("prefer_depth", "prefer_level", "most_complete")
SOURCE_POLICIES = ("prefer_local", "prefer_external", "most_complete")

_SOURCE_PAIRS: Tuple[tuple[str, str], ...] = (
    (LEVEL, LEVEL_EXTERNAL),
    (DISCHARGE, DISCHARGE_EXTERNAL),
)


@dataclass(frozen=True)
class UnificationResult:
    """Working table after proxy variables were reconciled."""

    table: pd.DataFrame
    presence: VariablePresence
    level_as_depth: bool
    resolutions: Mapping[str, str]
    notes: Tuple[str, ...]
    warnings: Tuple[str, ...]


def _missing_count(table: pd.DataFrame, column: str) -> int:
    return int(table[column].isna().sum())


def unify_variables(
    table: pd.DataFrame,
    presence: VariablePresence,
    *,
    estimate_areal_depth: bool = False,
    level_depth_policy: LevelDepthPolicy = "prefer_depth",
    source_policy: SourcePolicy = "prefer_local",
) -> UnificationResult:
    """Apply the proxy-variable rules to the wide *table*.

    Parameters
    ----------
    table:
        Wide table with one column per variable.
    presence:
        Variables currently available in *table*.
    estimate_areal_depth:
        When discharge is present and areal depth will be derived from it,
        level is not substituted for depth.
    level_depth_policy:
        Which series fills ``Depth_m`` when both level and depth exist:
        keep depth, overwrite with level, or take the column with fewer
        missing values.
    source_policy:
        Which series wins when both a local and a reference-network variant
        exist: the local one, the reference one, or the more complete one.
    """

    if level_depth_policy not in LEVEL_DEPTH_POLICIES:
        raise ValueError(f"level_depth_policy must be one of {LEVEL_DEPTH_POLICIES}")
    if source_policy not in SOURCE_POLICIES:
        raise ValueError(f"source_policy must be one of {SOURCE_POLICIES}")

    frame = table.copy()
    notes: list[str] = []
    warnings: list[str] = []
    resolutions: dict[str, str] = {}

    for primary, external in _SOURCE_PAIRS:
        if external not in presence:
            continue
        if primary not in presence:
            frame.rename(columns={external: primary}, inplace=True)
            presence = presence.renamed(external, primary)
            resolutions[primary] = external
            notes.append(f"Using {external} in place of missing {primary}.")
            continue

        if source_policy == "most_complete":
            use_external = _missing_count(frame, external) < _missing_count(frame, primary)
        else:
            use_external = source_policy == "prefer_external"
        chosen = external if use_external else primary
        if use_external:
            frame[primary] = frame[external]
        frame.drop(columns=[external], inplace=True)
        presence = presence.with_removed(external)
        resolutions[primary] = chosen
        warnings.append(
            f"Both {primary} and {external} found. Using {chosen} "
            f"(source_policy={source_policy!r})."
        )

    level_as_depth = (
        LEVEL in presence
        and DEPTH not in presence
        and not (DISCHARGE in presence and estimate_areal_depth)
    )
    if level_as_depth:
        frame[DEPTH] = frame[LEVEL]
        presence = presence.with_added(DEPTH)
        resolutions[DEPTH] = LEVEL
        warnings.append(
            "Using supplied level data in place of missing depth data. Depth would be more accurate!"
        )
    elif presence.has(LEVEL, DEPTH):
        if level_depth_policy == "most_complete":
            chosen = LEVEL if _missing_count(frame, LEVEL) < _missing_count(frame, DEPTH) else DEPTH
        else:
            chosen = LEVEL if level_depth_policy == "prefer_level" else DEPTH
        if chosen == LEVEL:
            frame[DEPTH] = frame[LEVEL]
        resolutions[DEPTH] = chosen
        warnings.append(
            f"Both level and depth data found. These measure related quantities; using {chosen} "
            f"for depth (level_depth_policy={level_depth_policy!r})."
        )

    return UnificationResult(
        table=frame,
        presence=presence,
        level_as_depth=level_as_depth,
        resolutions=resolutions,
        notes=tuple(notes),
        warnings=tuple(warnings),
    )
