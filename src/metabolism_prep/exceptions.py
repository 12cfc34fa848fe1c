"""Exception and warning categories raised by the conditioning pipeline."""

from __future__ import annotations

__all__ = [
    "AlignmentFailure",
    "ConfigurationError",
    "DataQualityWarning",
    "DataSufficiencyError",
    "InputContractError",
    "MetabolismPrepError",
    "RetrievalDegradation",
]


class MetabolismPrepError(Exception):
    """Base exception for fatal pipeline errors."""


class ConfigurationError(MetabolismPrepError, ValueError):
    """Invalid or inconsistent run configuration."""


class InputContractError(MetabolismPrepError, ValueError):
    """Input records violate the long-format contract (columns, duplicate keys)."""


class DataSufficiencyError(MetabolismPrepError):
    """A required variable is absent after every substitution was attempted."""


class AlignmentFailure(MetabolismPrepError):
    """No viable grid phase was found within the bounded search."""


class DataQualityWarning(UserWarning):
    """Non-fatal data issue that was corrected or surfaced in place."""


class RetrievalDegradation(UserWarning):
    """External retrieval failed or only partially succeeded."""
