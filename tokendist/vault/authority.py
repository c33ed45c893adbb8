from __future__ import annotations

"""
Vault Transfer Authority
------------------------

The reward pool (the "vault") is a ledger account owned by a derived address
that has no private key. Anyone can recompute the address from the program id
and seed:

    address = sha3_256(DOMAIN | program_id | 0x00 | seed).hexdigest()

Authorization to move funds out of the vault is proven structurally: the
ledger accepts a transfer from a vault account only when the caller presents a
`VaultAuthority` capability whose address matches the account owner and whose
derivation verifies. Capabilities are minted inside this module only, by
`VaultTransferAuthority`, which the cycle state machine owns.
"""

import logging
from hashlib import sha3_256
from typing import TYPE_CHECKING, Any, Optional

from tokendist.types import Amount, HolderId, MintId

if TYPE_CHECKING:  # pragma: no cover
    from tokendist.ledger.interfaces import TokenLedger

log = logging.getLogger(__name__)

DOMAIN_VAULT_AUTHORITY = b"TOKENDIST/vault-authority/v1"

_ISSUER = object()


def derive_vault_address(program_id: str, seed: str = "vault") -> str:
    """Deterministic vault authority address for (program_id, seed)."""
    h = sha3_256()
    h.update(DOMAIN_VAULT_AUTHORITY)
    h.update(b"|")
    h.update(program_id.encode("utf-8"))
    h.update(b"\x00")
    h.update(seed.encode("utf-8"))
    return h.hexdigest()


class VaultAuthority:
    """
    Opaque, immutable capability for signing transfers out of the vault.

    Holds no secret; its only content is the identity it was derived for.
    Constructing one outside this module raises TypeError.
    """

    __slots__ = ("_program_id", "_seed", "_address")

    def __init__(self, program_id: str, seed: str, *, _token: Any = None) -> None:
        if _token is not _ISSUER:
            raise TypeError("VaultAuthority capabilities are issued by VaultTransferAuthority only")
        object.__setattr__(self, "_program_id", program_id)
        object.__setattr__(self, "_seed", seed)
        object.__setattr__(self, "_address", derive_vault_address(program_id, seed))

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("VaultAuthority is immutable")

    @property
    def address(self) -> str:
        return self._address

    @property
    def program_id(self) -> str:
        return self._program_id

    @property
    def seed(self) -> str:
        return self._seed

    def verify(self) -> bool:
        """True when the address still matches its derivation."""
        return derive_vault_address(self._program_id, self._seed) == self._address

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return f"VaultAuthority(address={self._address[:16]}..., program_id={self._program_id!r})"


def is_valid_authority(candidate: object, owner: str) -> bool:
    """Ledger-side check: genuine capability, verifying derivation, owning `owner`."""
    return isinstance(candidate, VaultAuthority) and candidate.verify() and candidate.address == owner


class VaultTransferAuthority:
    """
    Moves funds out of the reward vault by presenting the derived capability.

    Performs no validation of the amount beyond positivity; the caller derives
    it from the current cycle. Ledger failures (insufficient funds, wrong
    owner) propagate unchanged as TransferFailure.
    """

    __slots__ = ("_cap",)

    def __init__(self, program_id: str, seed: str = "vault") -> None:
        self._cap = VaultAuthority(program_id, seed, _token=_ISSUER)

    @property
    def address(self) -> str:
        return self._cap.address

    def transfer(
        self,
        ledger: "TokenLedger",
        *,
        mint: MintId,
        vault: str,
        holder: HolderId,
        amount: Amount,
        reference: Optional[str] = None,
    ) -> bool:
        """Returns False when the ledger had already applied `reference`."""
        if amount <= 0:
            raise ValueError(f"transfer amount must be positive, got {amount}")
        log.debug("vault: transfer amount=%d from=%s to=%s", amount, vault, holder)
        return ledger.transfer(mint, vault, holder, amount, authority=self._cap, reference=reference)


__all__ = [
    "DOMAIN_VAULT_AUTHORITY",
    "derive_vault_address",
    "VaultAuthority",
    "VaultTransferAuthority",
    "is_valid_authority",
]
