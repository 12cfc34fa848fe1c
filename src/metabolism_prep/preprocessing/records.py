"""Ingestion of long-format sensor records into the wide working table."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import FrozenSet, Iterable, Mapping, Tuple

import pandas as pd

from metabolism_prep.exceptions import ConfigurationError, InputContractError
from metabolism_prep.io import FlagType
from metabolism_prep.io.schema_registry import ObservationRecordSchema

__all__ = [
    "FlagMaskingResult",
    "VariablePresence",
    "mask_flagged_values",
    "normalise_observation_records",
    "parse_flag_selection",
    "pivot_to_wide",
]

TIMESTAMP_COLUMN = "DateTime_UTC"


@dataclass(frozen=True)
class VariablePresence:
    """Set of variables available in the working table.

    Built once after ingestion; stages that add, rename or drop a variable
    return an updated copy instead of probing the table's columns.
    """

    variables: FrozenSet[str]

    @classmethod
    def of(cls, names: Iterable[str]) -> "VariablePresence":
        return cls(variables=frozenset(str(name) for name in names))

    def __contains__(self, name: object) -> bool:
        return name in self.variables

    def has(self, *names: str) -> bool:
        """Return True when every name in *names* is present."""

        return all(name in self.variables for name in names)

    def has_any(self, *names: str) -> bool:
        return any(name in self.variables for name in names)

    def with_added(self, *names: str) -> "VariablePresence":
        return VariablePresence(self.variables.union(names))

    def with_removed(self, *names: str) -> "VariablePresence":
        return VariablePresence(self.variables.difference(names))

    def renamed(self, old: str, new: str) -> "VariablePresence":
        return self.with_removed(old).with_added(new)

    def sorted(self) -> Tuple[str, ...]:
        return tuple(sorted(self.variables))


def normalise_observation_records(records: pd.DataFrame) -> pd.DataFrame:
    """Validate and normalise raw long-format records.

    Timestamps are converted to tz-aware UTC and values to floats. Records
    are sorted by ``(variable, DateTime_UTC)``.

    Raises
    ------
    InputContractError
        When required columns are missing or a ``(variable, DateTime_UTC)``
        key appears more than once.
    """

    schema = ObservationRecordSchema()
    missing_columns = set(schema.required_columns()).difference(records.columns)
    if missing_columns:
        raise InputContractError(f"Records are missing required columns: {sorted(missing_columns)}")

    frame = records.copy(deep=True)
    frame[TIMESTAMP_COLUMN] = pd.to_datetime(frame[TIMESTAMP_COLUMN], utc=True)
    frame["value"] = pd.to_numeric(frame["value"], errors="coerce").astype(float)
    frame["variable"] = frame["variable"].astype(str)

    duplicated = frame.duplicated(subset=["variable", TIMESTAMP_COLUMN], keep=False)
    if duplicated.any():
        counts = Counter(frame.loc[duplicated, "variable"])
        detail = ", ".join(f"{name} ({count} rows)" for name, count in sorted(counts.items()))
        raise InputContractError(f"Duplicate (variable, DateTime_UTC) records found: {detail}")

    frame.sort_values(by=["variable", TIMESTAMP_COLUMN], inplace=True)
    frame.reset_index(drop=True, inplace=True)
    return frame


def parse_flag_selection(rm_flagged: Iterable[object] | str | None) -> Tuple[FlagType, ...]:
    """Normalise the ``rm_flagged`` option into a tuple of flags.

    ``None``, ``"none"`` and empty iterables all mean "keep every value".
    """

    if rm_flagged is None:
        return ()
    if isinstance(rm_flagged, (str, FlagType)):
        items: list[object] = [rm_flagged]
    else:
        items = list(rm_flagged)
    labels = [item for item in items if str(item).strip().lower() != "none"]
    flags: list[FlagType] = []
    for label in labels:
        try:
            flag = FlagType.parse(label)
        except ValueError as exc:
            raise ConfigurationError(
                "rm_flagged must either be 'none' or contain any of: "
                "'Bad Data', 'Questionable', 'Interesting'."
            ) from exc
        if flag not in flags:
            flags.append(flag)
    return tuple(flags)


@dataclass(frozen=True)
class FlagMaskingResult:
    """Records after flagged values were replaced with missing values."""

    records: pd.DataFrame
    flags_removed: Tuple[FlagType, ...]
    masked_counts: Mapping[str, int]

    @property
    def total_masked(self) -> int:
        return sum(self.masked_counts.values())


def mask_flagged_values(
    records: pd.DataFrame,
    rm_flagged: Iterable[object] | str | None,
) -> FlagMaskingResult:
    """Replace values carrying any of the *rm_flagged* flags with NaN.

    Rows are kept so that the timestamp structure used for interval
    inference is unaffected. The flag columns are dropped afterwards.
    """

    flags = parse_flag_selection(rm_flagged)
    frame = records.copy()
    masked_counts: dict[str, int] = {}

    if flags:
        if "flagtype" not in frame.columns:
            raise ConfigurationError(
                "No flag data available. Supply QA/QC flag information or set rm_flagged='none'."
            )
        labels = frame["flagtype"].map(_safe_flag_label)
        mask = labels.isin([flag.value for flag in flags])
        if mask.any():
            masked_counts = {
                str(name): int(count)
                for name, count in frame.loc[mask, "variable"].value_counts().items()
            }
            frame.loc[mask, "value"] = float("nan")

    frame = frame.drop(columns=[col for col in ("flagtype", "flagcomment") if col in frame.columns])
    return FlagMaskingResult(records=frame, flags_removed=flags, masked_counts=masked_counts)


def _safe_flag_label(value: object) -> str | None:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return None
    try:
        return FlagType.parse(value).value
    except ValueError:
        return None


def pivot_to_wide(records: pd.DataFrame) -> tuple[pd.DataFrame, VariablePresence]:
    """Spread long records into one column per variable.

    The returned frame is indexed by the sorted union of all timestamps; it
    is irregular until the grid alignment stage runs.
    """

    wide = records.pivot(index=TIMESTAMP_COLUMN, columns="variable", values="value")
    wide.columns.name = None
    wide.sort_index(inplace=True)
    wide.index.name = TIMESTAMP_COLUMN
    wide = wide.astype(float)
    return wide, VariablePresence.of(wide.columns)
