from __future__ import annotations

from .interfaces import Clock, TokenLedger
from .memory import LedgerEntry, ManualClock, MemoryLedger, SystemClock, TokenAccount

__all__ = ["Clock", "TokenLedger", "LedgerEntry", "ManualClock", "MemoryLedger", "SystemClock", "TokenAccount"]
