from __future__ import annotations

"""Shared builders for the distributor tests."""

from dataclasses import dataclass
from typing import Dict, Optional

from tokendist.config import DistributorParams
from tokendist.cycle.machine import Distributor
from tokendist.ledger.memory import ManualClock, MemoryLedger
from tokendist.store.base import DistributorStore
from tokendist.store.memory import MemoryStore

AUTHORITY = "authority"
MINT = "REWARD"
VAULT = "reward-vault"
GENESIS = 1_700_000_000


@dataclass
class Env:
    dist: Distributor
    ledger: MemoryLedger
    clock: ManualClock
    store: DistributorStore
    params: DistributorParams

    def vault_balance(self) -> int:
        return self.ledger.balance_of(MINT, VAULT)

    def balance(self, holder: str) -> int:
        return self.ledger.balance_of(MINT, holder)


def make_env(
    pool: int = 1_000,
    balances: Optional[Dict[str, int]] = None,
    *,
    params: Optional[DistributorParams] = None,
    store: Optional[DistributorStore] = None,
    ready: bool = True,
) -> Env:
    """Initialized distributor over a funded vault; `ready` advances past the first interval."""
    p = params or DistributorParams()
    clock = ManualClock(GENESIS)
    ledger = MemoryLedger()
    ledger.open_vault(MINT, VAULT, vault_authority=Distributor.vault_address(p))
    ledger.mint_to(MINT, VAULT, pool)
    ledger.load_balances(MINT, balances or {})
    st = store if store is not None else MemoryStore()
    dist = Distributor(st, ledger, clock)
    dist.initialize(authority=AUTHORITY, reward_mint=MINT, reward_vault=VAULT, params=p)
    if ready:
        clock.advance(p.distribution_interval)
    return Env(dist=dist, ledger=ledger, clock=clock, store=st, params=p)


