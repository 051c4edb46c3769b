"""Operator-facing monitoring output."""

from .console import StatsConsole

__all__ = [
    "StatsConsole",
]
