"""Persistence helpers for preferences and saved aggregate configs."""

from .preferences import get_preference, load_aggregate, save_aggregate, set_preference

__all__ = [
    "get_preference",
    "set_preference",
    "save_aggregate",
    "load_aggregate",
]
