"""CLI entry points for the metabolism input conditioning toolkit."""

from __future__ import annotations

from .main import main, build_parser

__all__ = ["main", "build_parser"]
