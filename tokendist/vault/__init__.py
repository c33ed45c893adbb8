from __future__ import annotations

from .authority import (
    DOMAIN_VAULT_AUTHORITY,
    VaultAuthority,
    VaultTransferAuthority,
    derive_vault_address,
    is_valid_authority,
)

__all__ = [
    "DOMAIN_VAULT_AUTHORITY",
    "VaultAuthority",
    "VaultTransferAuthority",
    "derive_vault_address",
    "is_valid_authority",
]
