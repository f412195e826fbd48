"""HTTP API for the library inventory backend."""

from .app import configure_logging, create_app

__all__ = ["configure_logging", "create_app"]
