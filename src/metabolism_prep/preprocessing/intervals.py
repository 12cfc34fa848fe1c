"""Selection of a single target interval for a multi-variable dataset."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import timedelta
from fractions import Fraction
from typing import Literal, Mapping, Tuple

from metabolism_prep.exceptions import ConfigurationError, DataSufficiencyError

from .cadence import IntervalEstimate

__all__ = [
    "IntervalDecision",
    "RequestedInterval",
    "parse_interval",
    "reconcile_intervals",
]

_INTERVAL_PATTERN = re.compile(
    r"^\s*(?P<length>\d+(?:\.\d+)?)\s*(?P<unit>min|mins|minute|minutes|hour|hours)\s*$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class RequestedInterval:
    """User-requested grid spacing, normalised to minutes."""

    text: str
    length: Fraction
    unit: Literal["min", "hour"]

    @property
    def minutes(self) -> Fraction:
        return self.length * 60 if self.unit == "hour" else self.length

    @property
    def seconds(self) -> int:
        total = self.minutes * 60
        if total.denominator != 1:
            raise ConfigurationError(
                f"Interval {self.text!r} does not resolve to a whole number of seconds."
            )
        return int(total)


def parse_interval(text: str) -> RequestedInterval:
    """Parse ``"<number> min"`` or ``"<number> hour"``.

    Minutes must be integers; hours may be fractional and are converted to
    minutes so the grid builder only ever deals with minute steps.
    """

    match = _INTERVAL_PATTERN.match(str(text))
    if match is None:
        raise ConfigurationError(
            'Interval (if given) must be of the form "length unit" where length is '
            'numeric and unit is either "min" or "hour".'
        )
    unit: Literal["min", "hour"] = (
        "hour" if match.group("unit").lower().startswith("hour") else "min"
    )
    length = Fraction(match.group("length"))
    if unit == "min" and length.denominator != 1:
        raise ConfigurationError(f"Minute intervals must be integers; received {text!r}.")
    if length <= 0:
        raise ConfigurationError(f"Interval must be positive; received {text!r}.")
    return RequestedInterval(text=str(text).strip(), length=length, unit=unit)


@dataclass(frozen=True)
class IntervalDecision:
    """Target spacing selected for the regular grid."""

    step_seconds: int
    source: Literal["detected", "coarsest", "requested"]
    per_variable: Mapping[str, int]
    requested: RequestedInterval | None
    notes: Tuple[str, ...]

    @property
    def step_minutes(self) -> float:
        return self.step_seconds / 60.0

    @property
    def step(self) -> timedelta:
        return timedelta(seconds=self.step_seconds)

    @property
    def label(self) -> str:
        """Normalised ``"<n> min"`` representation of the step."""

        return f"{_format_minutes(self.step_seconds)} min"

    @property
    def coarsest_seconds(self) -> int:
        return max(self.per_variable.values())


def _format_minutes(seconds: int) -> str:
    return f"{seconds / 60:g}"


def reconcile_intervals(
    estimates: Mapping[str, IntervalEstimate],
    requested: str | RequestedInterval | None = None,
) -> IntervalDecision:
    """Pick the grid spacing for the whole dataset.

    Parameters
    ----------
    estimates:
        Per-variable intervals produced by
        :func:`~metabolism_prep.preprocessing.cadence.infer_variable_intervals`.
    requested:
        Optional interval string (or parsed :class:`RequestedInterval`). It
        must match one detected interval or be an exact multiple of the
        coarsest one (dataset thinning).

    Raises
    ------
    ConfigurationError
        If *requested* is malformed or incompatible with the detected
        intervals.
    """

    if not estimates:
        raise DataSufficiencyError("No variables available to determine a sample interval.")

    per_variable = {name: estimate.interval_seconds for name, estimate in estimates.items()}
    distinct = sorted(set(per_variable.values()))
    coarsest = distinct[-1]
    notes: list[str] = []

    parsed: RequestedInterval | None
    if isinstance(requested, RequestedInterval) or requested is None:
        parsed = requested
    else:
        parsed = parse_interval(requested)

    if parsed is None:
        if len(distinct) == 1:
            return IntervalDecision(
                step_seconds=coarsest,
                source="detected",
                per_variable=per_variable,
                requested=None,
                notes=(),
            )
        notes.append(
            "Multiple sample intervals detected across variables ("
            + ", ".join(f"{_format_minutes(value)} min" for value in distinct)
            + f"). Using {_format_minutes(coarsest)} min so as not to introduce gaps. "
            "You may control this behavior with the interval option."
        )
        return IntervalDecision(
            step_seconds=coarsest,
            source="coarsest",
            per_variable=per_variable,
            requested=None,
            notes=tuple(notes),
        )

    desired = parsed.seconds
    if len(distinct) > 1:
        notes.append(
            "Multiple sample intervals detected across variables ("
            + ", ".join(f"{_format_minutes(value)} min" for value in distinct)
            + f"). Will attempt to coerce all variables to desired interval: {parsed.text}."
        )

    if desired not in distinct and desired % coarsest != 0:
        accepted = "\n".join(
            f"\t{name}: {_format_minutes(seconds)} min" for name, seconds in per_variable.items()
        )
        raise ConfigurationError(
            f"Desired time interval ({parsed.text}) must conform to at least one of the "
            f"supplied variables:\n{accepted}\nIt can also be a multiple of the largest "
            f"interval ({_format_minutes(coarsest)} min) if you want to thin the dataset."
        )

    return IntervalDecision(
        step_seconds=desired,
        source="requested",
        per_variable=per_variable,
        requested=parsed,
        notes=tuple(notes),
    )
