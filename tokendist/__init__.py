from __future__ import annotations
"""
tokendist - proportional reward distribution to token holders.

Holder i receives Ri = floor(Ti * X / Ttotal) of a reward pool X, where Ttotal
is summed over all eligible holders in bounded batches during a distribution
cycle. Submodules are lazily imported to keep import time minimal.

Public surface (lazily loaded):
- config, errors, logging, metrics, types
- economics, cycle, vault, ledger, store
- driver, cli
"""


from typing import List

from .version import __version__

__all__: List[str] = [
    "__version__",
    "config",
    "errors",
    "logging",
    "metrics",
    "types",
    "economics",
    "cycle",
    "vault",
    "ledger",
    "store",
    "driver",
    "cli",
]

# --- Lazy module loader (PEP 562) -------------------------------------------------
import importlib


_lazy_modules = set(__all__) - {"__version__"}


def __getattr__(name: str):
    if name in _lazy_modules:
        return importlib.import_module(f".{name}", __name__)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__():
    return sorted(set(globals().keys()) | _lazy_modules)


def get_version() -> str:
    """Return the tokendist package version string."""
    return __version__
