from __future__ import annotations

"""
Core records of the distributor.

`DistributionConfig` is the long-lived record created once at bootstrap and
mutated only by the authority-gated cycle operations. `CycleRecord` holds the
per-cycle bookkeeping (who was counted into Ttotal, who was paid) and is
replaced at every cycle start.

Amounts are integer base units bounded to u64. Both records serialize to plain
JSON-friendly dicts so any store can persist them.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

HolderId = str
MintId = str
Amount = int
Timestamp = int

U64_MAX = (1 << 64) - 1
U128_MAX = (1 << 128) - 1


class CycleState(Enum):
    """Distribution cycle states. ACCUMULATING and FINALIZED are both 'active'."""

    IDLE = "idle"
    ACCUMULATING = "accumulating"
    FINALIZED = "finalized"

    @property
    def active(self) -> bool:
        return self is not CycleState.IDLE


@dataclass
class DistributionConfig:
    authority: str
    reward_mint: MintId
    reward_vault: str
    vault_authority: str
    program_id: str
    vault_seed: str
    min_eligible_balance: Amount
    distribution_interval: int
    max_batch_size: int
    last_distribution_at: Timestamp
    total_eligible_tokens: Amount = 0
    state: CycleState = CycleState.IDLE
    cycle_id: int = 0

    @property
    def cycle_active(self) -> bool:
        return self.state.active

    @property
    def next_start_at(self) -> Timestamp:
        return self.last_distribution_at + self.distribution_interval

    def to_dict(self) -> Dict[str, Any]:
        return {
            "authority": self.authority,
            "reward_mint": self.reward_mint,
            "reward_vault": self.reward_vault,
            "vault_authority": self.vault_authority,
            "program_id": self.program_id,
            "vault_seed": self.vault_seed,
            "min_eligible_balance": self.min_eligible_balance,
            "distribution_interval": self.distribution_interval,
            "max_batch_size": self.max_batch_size,
            "last_distribution_at": self.last_distribution_at,
            "total_eligible_tokens": self.total_eligible_tokens,
            "state": self.state.value,
            "cycle_id": self.cycle_id,
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "DistributionConfig":
        return DistributionConfig(
            authority=str(d["authority"]),
            reward_mint=str(d["reward_mint"]),
            reward_vault=str(d["reward_vault"]),
            vault_authority=str(d["vault_authority"]),
            program_id=str(d["program_id"]),
            vault_seed=str(d["vault_seed"]),
            min_eligible_balance=int(d["min_eligible_balance"]),
            distribution_interval=int(d["distribution_interval"]),
            max_batch_size=int(d["max_batch_size"]),
            last_distribution_at=int(d["last_distribution_at"]),
            total_eligible_tokens=int(d.get("total_eligible_tokens", 0)),
            state=CycleState(d.get("state", CycleState.IDLE.value)),
            cycle_id=int(d.get("cycle_id", 0)),
        )


@dataclass
class CycleRecord:
    """
    Per-cycle bookkeeping.

    Fields
      - counted: holder -> balance that was added into Ttotal
      - paid: holder -> reward paid (0 when the transfer was skipped)
      - pending: holder -> reward reserved for a transfer that has not been
        confirmed yet; cleared when the payout is confirmed or released
      - reward_pool: X, snapshotted from the vault when accumulation is finalized
    """

    cycle_id: int
    started_at: Timestamp
    finalized_at: Optional[Timestamp] = None
    ended_at: Optional[Timestamp] = None
    reward_pool: Optional[Amount] = None
    counted: Dict[HolderId, Amount] = field(default_factory=dict)
    paid: Dict[HolderId, Amount] = field(default_factory=dict)
    pending: Dict[HolderId, Amount] = field(default_factory=dict)
    skipped_duplicates: int = 0

    @property
    def total_paid(self) -> Amount:
        return sum(self.paid.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cycle_id": self.cycle_id,
            "started_at": self.started_at,
            "finalized_at": self.finalized_at,
            "ended_at": self.ended_at,
            "reward_pool": self.reward_pool,
            "counted": dict(self.counted),
            "paid": dict(self.paid),
            "pending": dict(self.pending),
            "skipped_duplicates": self.skipped_duplicates,
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "CycleRecord":
        return CycleRecord(
            cycle_id=int(d["cycle_id"]),
            started_at=int(d["started_at"]),
            finalized_at=None if d.get("finalized_at") is None else int(d["finalized_at"]),
            ended_at=None if d.get("ended_at") is None else int(d["ended_at"]),
            reward_pool=None if d.get("reward_pool") is None else int(d["reward_pool"]),
            counted={str(k): int(v) for k, v in (d.get("counted") or {}).items()},
            paid={str(k): int(v) for k, v in (d.get("paid") or {}).items()},
            pending={str(k): int(v) for k, v in (d.get("pending") or {}).items()},
            skipped_duplicates=int(d.get("skipped_duplicates", 0)),
        )


__all__ = [
    "HolderId",
    "MintId",
    "Amount",
    "Timestamp",
    "U64_MAX",
    "U128_MAX",
    "CycleState",
    "DistributionConfig",
    "CycleRecord",
]
