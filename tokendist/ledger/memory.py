from __future__ import annotations

"""
In-memory reference collaborators: a token ledger and two clocks.

`MemoryLedger` keeps one account per (mint, owner) with integer balances and an
append-only journal of movements. Accounts are owned by their holder except
vault accounts, which are registered with the vault authority address as
owner; moving funds out of a vault requires the matching capability.
Transfers may carry a reference; a reference is applied at most once.

Concurrency: a coarse `threading.RLock` protects mutating methods.
"""

import time
from dataclasses import dataclass
from threading import RLock
from typing import Dict, Iterable, List, Optional, Tuple

from tokendist.economics.calculator import checked_add
from tokendist.errors import CalculationError, InvalidAuthority, TransferFailure
from tokendist.types import U64_MAX, Amount, MintId, Timestamp
from tokendist.vault.authority import VaultAuthority, is_valid_authority


@dataclass
class TokenAccount:
    mint: MintId
    address: str
    owner: str
    amount: Amount = 0

    def snapshot(self) -> Dict:
        return {"mint": self.mint, "address": self.address, "owner": self.owner, "amount": self.amount}


@dataclass(frozen=True)
class LedgerEntry:
    seq: int
    op: str
    mint: MintId
    source: Optional[str]
    destination: str
    amount: Amount
    reference: Optional[str] = None


class MemoryLedger:
    """In-memory TokenLedger implementation."""

    def __init__(self) -> None:
        self._accounts: Dict[Tuple[MintId, str], TokenAccount] = {}
        self._journal: List[LedgerEntry] = []
        # reference -> (mint, source, destination, amount) of the applied transfer
        self._applied: Dict[str, Tuple[MintId, str, str, Amount]] = {}
        self._lock = RLock()

    # --- setup ---

    def open_account(self, mint: MintId, address: str, *, owner: Optional[str] = None) -> TokenAccount:
        with self._lock:
            key = (mint, address)
            acct = self._accounts.get(key)
            if acct is None:
                acct = TokenAccount(mint=mint, address=address, owner=owner or address)
                self._accounts[key] = acct
            elif owner is not None and acct.owner != owner:
                raise ValueError(f"account {address} already exists with owner {acct.owner}")
            return acct

    def open_vault(self, mint: MintId, address: str, *, vault_authority: str) -> TokenAccount:
        """Register a vault account whose owner is the derived vault authority address."""
        return self.open_account(mint, address, owner=vault_authority)

    def mint_to(self, mint: MintId, address: str, amount: Amount) -> Amount:
        if amount < 0:
            raise ValueError(f"amount must be non-negative, got {amount}")
        with self._lock:
            acct = self.open_account(mint, address)
            acct.amount = checked_add(acct.amount, amount)
            self._append("mint", mint, None, address, amount)
            return acct.amount

    def burn_from(self, mint: MintId, address: str, amount: Amount) -> Amount:
        """Remove `amount` from an account, e.g. a holder selling between accumulation and payout."""
        with self._lock:
            acct = self._accounts.get((mint, address))
            if acct is None or amount < 0 or acct.amount < amount:
                raise ValueError(f"cannot burn {amount} from {address}")
            acct.amount -= amount
            self._append("burn", mint, address, address, amount)
            return acct.amount

    def load_balances(self, mint: MintId, balances: Dict[str, Amount] | Iterable[Tuple[str, Amount]]) -> None:
        items = balances.items() if isinstance(balances, dict) else balances
        for address, amount in items:
            self.mint_to(mint, address, int(amount))

    # --- TokenLedger ---

    def balance_of(self, mint: MintId, owner: str) -> Amount:
        with self._lock:
            acct = self._accounts.get((mint, owner))
            return acct.amount if acct else 0

    def transfer(
        self,
        mint: MintId,
        source: str,
        destination: str,
        amount: Amount,
        *,
        authority: VaultAuthority,
        reference: Optional[str] = None,
    ) -> bool:
        with self._lock:
            if reference is not None and reference in self._applied:
                if self._applied[reference] != (mint, source, destination, amount):
                    raise TransferFailure("transfer reference reused", details={"reference": reference})
                return False
            if source == destination:
                raise TransferFailure(
                    "source and destination are the same account",
                    details={"mint": mint, "account": source},
                )
            src = self._accounts.get((mint, source))
            if src is None:
                raise TransferFailure("source account not found", details={"mint": mint, "source": source})
            if not is_valid_authority(authority, src.owner):
                raise InvalidAuthority(
                    "authority does not own the source account",
                    details={"source": source, "owner": src.owner},
                )
            if amount <= 0 or amount > U64_MAX:
                raise TransferFailure("invalid transfer amount", details={"amount": str(amount)})
            if src.amount < amount:
                raise TransferFailure(
                    "insufficient funds",
                    details={"source": source, "available": src.amount, "requested": amount},
                )
            dst = self.open_account(mint, destination)
            try:
                new_dst = checked_add(dst.amount, amount)
            except CalculationError as e:
                raise TransferFailure("destination balance overflow", details={"destination": destination}) from e
            src.amount -= amount
            dst.amount = new_dst
            self._append("transfer", mint, source, destination, amount, reference)
            if reference is not None:
                self._applied[reference] = (mint, source, destination, amount)
            return True

    # --- introspection ---

    def journal(self) -> Tuple[LedgerEntry, ...]:
        return tuple(self._journal)

    def accounts(self, mint: Optional[MintId] = None) -> List[TokenAccount]:
        with self._lock:
            return [a for (m, _), a in sorted(self._accounts.items()) if mint is None or m == mint]

    def _append(
        self,
        op: str,
        mint: MintId,
        source: Optional[str],
        destination: str,
        amount: Amount,
        reference: Optional[str] = None,
    ) -> None:
        self._journal.append(
            LedgerEntry(
                seq=len(self._journal) + 1,
                op=op,
                mint=mint,
                source=source,
                destination=destination,
                amount=amount,
                reference=reference,
            )
        )


class SystemClock:
    """Wall clock in whole seconds."""

    def now(self) -> Timestamp:
        return int(time.time())


class ManualClock:
    """Deterministic clock for tests and simulations."""

    def __init__(self, start: Timestamp = 0) -> None:
        self._now = int(start)

    def now(self) -> Timestamp:
        return self._now

    def set(self, ts: Timestamp) -> None:
        self._now = int(ts)

    def advance(self, seconds: int) -> Timestamp:
        self._now += int(seconds)
        return self._now


__all__ = ["TokenAccount", "LedgerEntry", "MemoryLedger", "SystemClock", "ManualClock"]
