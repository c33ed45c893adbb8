"""Command line entrypoints for tokendist (`tokendist config|status|simulate`)."""

from .main import app, get_app

__all__ = ["app", "get_app"]
