from __future__ import annotations

from .base import DistributorStore, StoreState
from .memory import MemoryStore
from .sqlite import SQLiteStore

__all__ = ["DistributorStore", "StoreState", "MemoryStore", "SQLiteStore"]
