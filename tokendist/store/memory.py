from __future__ import annotations

"""In-memory store: committed state lives as plain dicts guarded by an RLock."""

import contextlib
from threading import RLock
from typing import Any, Dict, Iterator, Optional

from tokendist.store.base import DistributorStore, StoreState
from tokendist.types import CycleRecord, DistributionConfig


class MemoryStore(DistributorStore):
    def __init__(self) -> None:
        self._config: Optional[Dict[str, Any]] = None
        self._cycle: Optional[Dict[str, Any]] = None
        self._lock = RLock()

    def _materialize(self) -> StoreState:
        return StoreState(
            config=DistributionConfig.from_dict(self._config) if self._config is not None else None,
            cycle=CycleRecord.from_dict(self._cycle) if self._cycle is not None else None,
        )

    @contextlib.contextmanager
    def transaction(self) -> Iterator[StoreState]:
        with self._lock:
            state = self._materialize()
            yield state
            self._config = state.config.to_dict() if state.config is not None else None
            self._cycle = state.cycle.to_dict() if state.cycle is not None else None

    def load(self) -> StoreState:
        with self._lock:
            return self._materialize()


__all__ = ["MemoryStore"]
