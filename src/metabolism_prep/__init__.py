"""Conditioning of stream sensor records into metabolism model inputs."""

from __future__ import annotations

from . import cli
from .config import PrepConfig, load_prep_config
from .pipeline import PrepResult, prep_metabolism

__all__ = ["__version__", "cli", "PrepConfig", "PrepResult", "load_prep_config", "prep_metabolism"]

__version__ = "0.1.0"
