"""Quality-assurance helpers for conditioning runs."""

from __future__ import annotations

from .diagnostics import DiagnosticEvent, RunDiagnostics

__all__ = [
    "DiagnosticEvent",
    "RunDiagnostics",
]
