from __future__ import annotations

"""
Persistence substrate for the distributor.

A store holds exactly one DistributionConfig plus the CycleRecord of the
current (or most recent) cycle. Every distributor operation runs inside
`transaction()`: the store hands out a private, mutable copy of the state and
commits it only if the block exits without an exception. This gives each
operation an atomic read-modify-write and means no partially applied change
is ever visible to another caller.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import Optional

from tokendist.errors import NotInitialized
from tokendist.types import CycleRecord, DistributionConfig


@dataclass
class StoreState:
    config: Optional[DistributionConfig] = None
    cycle: Optional[CycleRecord] = None

    def require_config(self) -> DistributionConfig:
        if self.config is None:
            raise NotInitialized("distributor has not been initialized")
        return self.config


class DistributorStore(ABC):
    """Atomic, durable storage for the distributor state."""

    @abstractmethod
    def transaction(self) -> AbstractContextManager[StoreState]:
        """Yield a mutable copy of the state; commit on success, discard on error."""

    @abstractmethod
    def load(self) -> StoreState:
        """Return a detached copy of the committed state."""

    def close(self) -> None:  # pragma: no cover - default no-op
        return None


__all__ = ["StoreState", "DistributorStore"]
