from __future__ import annotations

"""
tokendist.version - package version string.

BASE_VERSION is the release semver; TOKENDIST_VERSION in the environment
overrides it (e.g. for locally built images).
"""

import os

BASE_VERSION = "0.1.0"


def build_version() -> str:
    return os.getenv("TOKENDIST_VERSION") or BASE_VERSION


__version__ = build_version()


def get_version() -> str:
    """Public helper returning the resolved version string."""
    return __version__


__all__ = ["__version__", "get_version", "BASE_VERSION"]
