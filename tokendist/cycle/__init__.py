"""Distribution cycle state machine (start / accumulate / finalize / payout / end)."""

from .machine import TRANSITIONS, Distributor, PayoutResult, check_transition

__all__ = ["TRANSITIONS", "Distributor", "PayoutResult", "check_transition"]
