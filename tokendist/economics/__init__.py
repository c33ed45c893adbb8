from __future__ import annotations
"""
Distributor economics: the fixed-point reward calculator and the batched
eligibility accumulator. Both are pure; persistence and state gating live in
tokendist.cycle.
"""

from .accumulator import AccumulateResult, accumulate, normalize_batch
from .calculator import Allocation, allocate, checked_add, checked_mul, is_eligible, reward

__all__ = [
    "AccumulateResult",
    "accumulate",
    "normalize_batch",
    "Allocation",
    "allocate",
    "checked_add",
    "checked_mul",
    "is_eligible",
    "reward",
]
