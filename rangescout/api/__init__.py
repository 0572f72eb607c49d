"""HTTP API package."""

from .app import ScanRegistry, create_app

__all__ = ["ScanRegistry", "create_app"]
