from __future__ import annotations

"""
Fixed-point reward calculator.

    Ri = floor(Ti * X / Ttotal)

- Ti: eligible balance of holder i (u64)
- X: reward pool for the cycle (u64)
- Ttotal: sum of eligible balances across the population (u64, > 0)

The product Ti * X is formed at 128-bit width before dividing, never after.
The quotient is then range checked back into u64. All arithmetic is checked:
a value outside its width raises CalculationError instead of wrapping.

Because of the floor, sum(Ri) <= X over any eligible set; the remainder
("dust") stays in the pool.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Tuple

from tokendist.errors import CalculationError
from tokendist.types import U64_MAX, U128_MAX, Amount, HolderId


def check_u64(name: str, value: int) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise CalculationError(f"{name} must be an integer", details={name: repr(value)})
    if value < 0 or value > U64_MAX:
        raise CalculationError(f"{name} out of u64 range", details={name: str(value)})
    return value


def checked_add(a: int, b: int, *, limit: int = U64_MAX) -> int:
    """a + b, failing with CalculationError if the sum exceeds `limit`."""
    c = a + b
    if a < 0 or b < 0 or c > limit:
        raise CalculationError("integer overflow in addition", details={"a": str(a), "b": str(b)})
    return c


def checked_mul(a: int, b: int, *, limit: int = U128_MAX) -> int:
    """a * b, failing with CalculationError if the product exceeds `limit`."""
    c = a * b
    if a < 0 or b < 0 or c > limit:
        raise CalculationError("integer overflow in multiplication", details={"a": str(a), "b": str(b)})
    return c


def is_eligible(balance: Amount, min_eligible_balance: Amount) -> bool:
    """Eligibility is inclusive: a balance equal to the threshold counts."""
    return balance >= min_eligible_balance


def reward(holder_balance: Amount, total_eligible: Amount, reward_pool: Amount) -> Amount:
    """
    Ri = floor(Ti * X / Ttotal).

    Eligibility of `holder_balance` is the caller's concern. Raises
    CalculationError on a zero total, out-of-range operands, or a result that
    does not fit u64.
    """
    ti = check_u64("holder_balance", holder_balance)
    total = check_u64("total_eligible", total_eligible)
    x = check_u64("reward_pool", reward_pool)
    if total == 0:
        raise CalculationError("eligible total is zero", details={"total_eligible": 0})

    product = checked_mul(ti, x)
    ri = product // total
    if ri > U64_MAX:
        raise CalculationError(
            "reward does not fit u64",
            details={"holder_balance": str(ti), "total_eligible": str(total), "reward_pool": str(x)},
        )
    return ri


@dataclass(frozen=True)
class Allocation:
    """Result of allocating a pool across a full eligible set in one go."""

    rewards: Dict[HolderId, Amount]
    total_eligible: Amount
    reward_pool: Amount

    @property
    def distributed(self) -> Amount:
        return sum(self.rewards.values())

    @property
    def dust(self) -> Amount:
        return self.reward_pool - self.distributed


def allocate(
    balances: Mapping[HolderId, Amount] | Iterable[Tuple[HolderId, Amount]],
    reward_pool: Amount,
    min_eligible_balance: Amount,
) -> Allocation:
    """
    Compute every holder's reward for a known population without touching
    any ledger. Ineligible holders are left out of `rewards`. A population with
    no eligible holder yields no rewards and the whole pool as dust.
    """
    items = balances.items() if isinstance(balances, Mapping) else balances
    eligible: Dict[HolderId, Amount] = {}
    total = 0
    for holder, bal in items:
        check_u64("balance", bal)
        if is_eligible(bal, min_eligible_balance) and holder not in eligible:
            eligible[holder] = bal
            total = checked_add(total, bal)

    x = check_u64("reward_pool", reward_pool)
    if total == 0:
        return Allocation(rewards={}, total_eligible=0, reward_pool=x)
    rewards = {h: reward(b, total, x) for h, b in eligible.items()}
    return Allocation(rewards=rewards, total_eligible=total, reward_pool=x)


__all__ = [
    "check_u64",
    "checked_add",
    "checked_mul",
    "is_eligible",
    "reward",
    "Allocation",
    "allocate",
]
