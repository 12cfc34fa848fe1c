"""Per-run diagnostic log collecting stage traces, notes and warnings.

Each pipeline stage returns its own result object; :class:`RunDiagnostics`
keeps a reference to those results alongside the notes and warnings they
raised so callers can inspect intermediate artefacts after a run without
relying on any process-wide state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Tuple

from metabolism_prep.exceptions import DataQualityWarning

__all__ = ["DiagnosticEvent", "RunDiagnostics"]

_LOGGER_NAME = "metabolism_prep.pipeline"


@dataclass(frozen=True)
class DiagnosticEvent:
    """Single message emitted by a pipeline stage."""

    stage: str
    message: str
    severity: str = "info"
    category: str | None = None

    @property
    def is_warning(self) -> bool:
        """Return True for events recorded through :meth:`RunDiagnostics.warn`."""

        return self.severity == "warning"


@dataclass
class RunDiagnostics:
    """Mutable diagnostic log owned by a single pipeline invocation."""

    events: list[DiagnosticEvent] = field(default_factory=list)
    stages: dict[str, object] = field(default_factory=dict)
    logger: logging.Logger = field(
        default_factory=lambda: logging.getLogger(_LOGGER_NAME), repr=False
    )

    def note(self, stage: str, message: str) -> None:
        """Record an informational message."""

        self.events.append(DiagnosticEvent(stage=stage, message=message))
        self.logger.info("[%s] %s", stage, message)

    def warn(
        self,
        stage: str,
        message: str,
        category: type[Warning] = DataQualityWarning,
    ) -> None:
        """Record a non-fatal warning tagged with a warning *category*."""

        self.events.append(
            DiagnosticEvent(
                stage=stage,
                message=message,
                severity="warning",
                category=category.__name__,
            )
        )
        self.logger.warning("[%s] %s", stage, message)

    def extend_notes(self, stage: str, notes: Iterable[str]) -> None:
        for message in notes:
            self.note(stage, message)

    def extend_warnings(
        self,
        stage: str,
        messages: Iterable[str],
        category: type[Warning] = DataQualityWarning,
    ) -> None:
        for message in messages:
            self.warn(stage, message, category)

    def record_stage(self, stage: str, result: object) -> None:
        """Keep the result object produced by *stage* for later inspection."""

        self.stages[stage] = result

    @property
    def warnings(self) -> Tuple[DiagnosticEvent, ...]:
        return tuple(event for event in self.events if event.is_warning)

    @property
    def notes(self) -> Tuple[DiagnosticEvent, ...]:
        return tuple(event for event in self.events if not event.is_warning)

    def messages(self, *, severity: str | None = None) -> Tuple[str, ...]:
        """Return plain messages, optionally restricted to one *severity*."""

        return tuple(
            event.message
            for event in self.events
            if severity is None or event.severity == severity
        )

    def to_records(self) -> Tuple[Mapping[str, object], ...]:
        """Convert the events into serialisable dictionaries."""

        return tuple(
            {
                "stage": event.stage,
                "severity": event.severity,
                "category": event.category,
                "message": event.message,
            }
            for event in self.events
        )
