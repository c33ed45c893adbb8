from __future__ import annotations

"""
Collaborator interfaces the distributor consumes from its surrounding ledger.

The distributor never owns balances. It needs a trusted clock for interval
gating, a way to read balances, and a transfer primitive that moves funds out
of the reward vault when presented with the vault authority capability.
"""

from typing import Optional, Protocol, runtime_checkable

from tokendist.types import Amount, MintId, Timestamp
from tokendist.vault.authority import VaultAuthority


@runtime_checkable
class Clock(Protocol):
    """Trusted wall clock, in integer seconds."""

    def now(self) -> Timestamp:
        """Return the current time."""


@runtime_checkable
class TokenLedger(Protocol):
    """Minimal token ledger surface used by the distributor."""

    def balance_of(self, mint: MintId, owner: str) -> Amount:
        """Return the balance of `owner` in denomination `mint` (0 if unknown)."""

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
        """
        Move `amount` from `source` to `destination`.

        Must raise tokendist.errors.TransferFailure when the source balance is
        insufficient, `source` and `destination` are the same account, or
        `authority` does not own `source`.

        A transfer carrying a `reference` is applied at most once: repeating
        it moves nothing and returns False. Returns True when funds moved.
        """


__all__ = ["Clock", "TokenLedger"]
