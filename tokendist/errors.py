from __future__ import annotations
# tokendist/errors.py
"""
Error types for the token distributor. Every failure a caller can observe is a
`DistributorError` subclass carrying a stable `code`, a human message and a
small JSON-friendly `details` mapping, so errors are safe to surface over logs,
metrics labels and CLI output.

Exports:
- DistributorError (base)
- cycle state: TooEarly, AlreadyActive, NotActive, NotFinalized, AccumulationClosed
- arithmetic: CalculationError
- eligibility / payout: InsufficientBalance, HolderNotCounted, AlreadyPaid
- custody: TransferFailure, InvalidAuthority
- access & bootstrap: Unauthorized, AlreadyInitialized, NotInitialized
- input limits: BatchTooLarge
- persistence: StoreError
"""


import json
from typing import Any, Dict, Mapping, Optional


class DistributorError(Exception):
    """Base class for distributor domain errors."""

    code: str = "DISTRIBUTOR_ERROR"

    def __init__(self, message: str = "", *, details: Optional[Mapping[str, Any]] = None) -> None:
        self.message = message or self.__class__.__name__
        self.details = dict(details or {})
        super().__init__(self.__str__())

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}

    def __str__(self) -> str:  # pragma: no cover - trivial
        if self.details:
            try:
                packed = json.dumps(self.details, sort_keys=True, separators=(",", ":"))
            except (TypeError, ValueError):
                packed = str(self.details)
            return f"{self.code}: {self.message} [{packed}]"
        return f"{self.code}: {self.message}"


# ----------------------------- cycle state -----------------------------------


class TooEarly(DistributorError):
    """The distribution interval has not elapsed since the last cycle closed."""
    code = "TOO_EARLY"

    def __init__(
        self,
        *,
        now: int,
        earliest: int,
        message: str = "distribution cannot start yet - interval not elapsed",
    ) -> None:
        super().__init__(message, details={"now": int(now), "earliest": int(earliest)})


class AlreadyActive(DistributorError):
    """A cycle is already in progress."""
    code = "ALREADY_ACTIVE"

    def __init__(self, *, cycle_id: Optional[int] = None, message: str = "distribution is already in progress") -> None:
        d: Dict[str, Any] = {}
        if cycle_id is not None:
            d["cycle_id"] = int(cycle_id)
        super().__init__(message, details=d)


class NotActive(DistributorError):
    """The operation needs an active cycle and none is running."""
    code = "NOT_ACTIVE"

    def __init__(self, *, operation: str, message: str = "distribution has not been started") -> None:
        super().__init__(message, details={"operation": operation})


class NotFinalized(DistributorError):
    """Payouts are not allowed until accumulation has been finalized."""
    code = "NOT_FINALIZED"

    def __init__(self, *, cycle_id: int, message: str = "eligible total has not been finalized") -> None:
        super().__init__(message, details={"cycle_id": int(cycle_id)})


class AccumulationClosed(DistributorError):
    """Accumulation was finalized; the eligible total can no longer change."""
    code = "ACCUMULATION_CLOSED"

    def __init__(self, *, cycle_id: int, message: str = "accumulation is closed for this cycle") -> None:
        super().__init__(message, details={"cycle_id": int(cycle_id)})


# ------------------------------ arithmetic -----------------------------------


class CalculationError(DistributorError):
    """Checked arithmetic failed (overflow, out-of-range operand, division by zero)."""
    code = "CALCULATION_ERROR"

    def __init__(self, message: str = "error in reward calculation", *, details: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(message, details=details)


# ------------------------- eligibility & payouts -----------------------------


class InsufficientBalance(DistributorError):
    """Holder balance is below the eligibility threshold."""
    code = "INSUFFICIENT_BALANCE"

    def __init__(
        self,
        *,
        holder: str,
        balance: int,
        required: int,
        message: str = "insufficient token balance for rewards",
    ) -> None:
        super().__init__(
            message,
            details={"holder": holder, "balance": int(balance), "required": int(required)},
        )


class HolderNotCounted(DistributorError):
    """Holder was never counted into the eligible total of this cycle."""
    code = "HOLDER_NOT_COUNTED"

    def __init__(self, *, holder: str, cycle_id: int, message: str = "holder was not counted in this cycle") -> None:
        super().__init__(message, details={"holder": holder, "cycle_id": int(cycle_id)})


class AlreadyPaid(DistributorError):
    """Holder already received its payout in this cycle."""
    code = "ALREADY_PAID"

    def __init__(self, *, holder: str, cycle_id: int, amount: int, message: str = "holder already paid in this cycle") -> None:
        super().__init__(message, details={"holder": holder, "cycle_id": int(cycle_id), "amount": int(amount)})


# -------------------------------- custody ------------------------------------


class TransferFailure(DistributorError):
    """The custody ledger refused a transfer (e.g. the reward vault is underfunded)."""
    code = "TRANSFER_FAILURE"

    def __init__(self, message: str = "transfer failed", *, details: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(message, details=details)


class InvalidAuthority(TransferFailure):
    """A transfer was presented with a capability that does not own the source account."""
    code = "INVALID_AUTHORITY"


# ------------------------------ access / boot --------------------------------


class Unauthorized(DistributorError):
    """Caller is not the configured distribution authority."""
    code = "UNAUTHORIZED"

    def __init__(self, *, caller: str, operation: str, message: str = "caller is not the distribution authority") -> None:
        super().__init__(message, details={"caller": caller, "operation": operation})


class AlreadyInitialized(DistributorError):
    code = "ALREADY_INITIALIZED"


class NotInitialized(DistributorError):
    code = "NOT_INITIALIZED"


class BatchTooLarge(DistributorError):
    """More accounts were presented in one accumulate call than the environment allows."""
    code = "BATCH_TOO_LARGE"

    def __init__(self, *, size: int, limit: int, message: str = "accumulate batch exceeds the account limit") -> None:
        super().__init__(message, details={"size": int(size), "limit": int(limit)})


class StoreError(DistributorError):
    """Persistence substrate failure."""
    code = "STORE_ERROR"


__all__ = [
    "DistributorError",
    "TooEarly",
    "AlreadyActive",
    "NotActive",
    "NotFinalized",
    "AccumulationClosed",
    "CalculationError",
    "InsufficientBalance",
    "HolderNotCounted",
    "AlreadyPaid",
    "TransferFailure",
    "InvalidAuthority",
    "Unauthorized",
    "AlreadyInitialized",
    "NotInitialized",
    "BatchTooLarge",
    "StoreError",
]
