from __future__ import annotations

"""
Composed payout: eligibility re-check, reward computation against the
finalized pool snapshot, and the vault transfer.
"""

import pytest

from tokendist.config import DistributorParams
from tokendist.cycle.machine import Distributor
from tokendist.errors import (
    AlreadyPaid,
    CalculationError,
    HolderNotCounted,
    InsufficientBalance,
    InvalidAuthority,
    NotActive,
    TransferFailure,
)
from tokendist.store.memory import MemoryStore
from tokendist.tests.helpers import AUTHORITY, MINT, VAULT, Env, make_env


def _finalized(pool, balances, batch=None) -> Env:
    e = make_env(pool=pool, balances=balances)
    e.dist.start(AUTHORITY)
    e.dist.accumulate(AUTHORITY, batch if batch is not None else balances)
    e.dist.finalize_total(AUTHORITY)
    return e


def test_worked_example_end_to_end():
    e = _finalized(1_000, {"A": 1_500, "B": 500, "C": 3_500})
    assert e.dist.config.total_eligible_tokens == 5_000

    assert e.dist.payout("A").reward == 300
    with pytest.raises(InsufficientBalance) as ei:
        e.dist.payout("B")
    assert ei.value.details == {"holder": "B", "balance": 500, "required": 1_000}
    assert e.dist.payout("C").reward == 700

    assert e.balance("A") == 1_800
    assert e.balance("C") == 4_200
    assert e.vault_balance() == 0


def test_payout_result_fields():
    e = _finalized(1_000, {"A": 3_000, "B": 7_000})
    res = e.dist.payout("B")
    assert res.holder == "B"
    assert res.balance == 7_000
    assert res.reward == 700
    assert res.transferred
    assert res.cycle_id == 1
    assert e.dist.status().cycle.paid == {"B": 700}


def test_pool_snapshot_keeps_later_payouts_whole():
    # Paying A first drains the vault; B still gets its full share of X.
    e = _finalized(1_000, {"A": 3_000, "B": 7_000})
    assert e.dist.payout("A").reward == 300
    assert e.vault_balance() == 700
    assert e.dist.payout("B").reward == 700
    assert e.vault_balance() == 0


def test_floor_leaves_dust_in_vault():
    e = _finalized(10, {"A": 1_000, "B": 1_000, "C": 1_000})
    total = sum(e.dist.payout(h).reward for h in ("A", "B", "C"))
    assert total == 9
    assert e.vault_balance() == 1


def test_zero_reward_skips_transfer_but_marks_paid():
    e = _finalized(1, {"A": 1_000, "B": 9_000})
    journal_before = len(e.ledger.journal())
    res = e.dist.payout("A")  # floor(1000 * 1 / 10000) = 0
    assert res.reward == 0
    assert not res.transferred
    assert len(e.ledger.journal()) == journal_before
    assert e.balance("A") == 1_000
    with pytest.raises(AlreadyPaid):
        e.dist.payout("A")


def test_double_payout_rejected():
    e = _finalized(1_000, {"A": 3_000, "B": 7_000})
    e.dist.payout("A")
    with pytest.raises(AlreadyPaid) as ei:
        e.dist.payout("A")
    assert ei.value.details["amount"] == 300
    assert e.balance("A") == 3_300


def test_uncounted_holder_rejected():
    e = _finalized(1_000, {"A": 3_000, "B": 7_000}, batch={"A": 3_000})
    with pytest.raises(HolderNotCounted):
        e.dist.payout("B")


def test_eligibility_checked_before_counted():
    e = _finalized(1_000, {"A": 3_000, "Z": 10})
    with pytest.raises(InsufficientBalance):
        e.dist.payout("Z")
    with pytest.raises(InsufficientBalance):
        e.dist.payout("nobody")


def test_holder_that_sold_below_threshold_is_rejected():
    e = _finalized(1_000, {"A": 3_000, "B": 7_000})
    e.ledger.burn_from(MINT, "A", 2_100)
    with pytest.raises(InsufficientBalance):
        e.dist.payout("A")


def test_share_is_capped_at_counted_balance():
    e = _finalized(1_000, {"A": 3_000, "B": 7_000})
    e.ledger.mint_to(MINT, "A", 100_000)  # bought after accumulation
    res = e.dist.payout("A")
    assert res.balance == 3_000
    assert res.reward == 300


def test_lower_live_balance_reduces_share():
    e = _finalized(1_000, {"A": 3_000, "B": 7_000})
    e.ledger.burn_from(MINT, "A", 1_000)
    assert e.dist.payout("A").reward == 200


def test_transfer_failure_rolls_back():
    e = _finalized(1_000, {"A": 3_000, "B": 7_000})
    # vault drained behind the distributor's back
    e.ledger.burn_from(MINT, VAULT, 900)
    with pytest.raises(TransferFailure):
        e.dist.payout("B")
    assert e.dist.status().cycle.paid == {}
    assert e.dist.status().cycle.pending == {}
    assert e.balance("B") == 7_000
    assert e.vault_balance() == 100


def test_vault_owned_by_someone_else_is_invalid_authority():
    e = make_env(pool=0, balances={"A": 3_000})
    e.ledger.open_account(MINT, "foreign-vault", owner="someone")
    e.ledger.mint_to(MINT, "foreign-vault", 1_000)
    # point a fresh distributor at a vault it does not own
    d = Distributor(MemoryStore(), e.ledger, e.clock)
    d.initialize(authority=AUTHORITY, reward_mint=MINT, reward_vault="foreign-vault")
    e.clock.advance(e.params.distribution_interval)
    d.start(AUTHORITY)
    d.accumulate(AUTHORITY, {"A": 3_000})
    d.finalize_total(AUTHORITY)
    with pytest.raises(InvalidAuthority):
        d.payout("A")
    assert e.ledger.balance_of(MINT, "foreign-vault") == 1_000


def test_payout_with_empty_total_is_calculation_error():
    # a zero threshold lets a zero balance be counted, leaving Ttotal at 0
    e = make_env(pool=1_000, params=DistributorParams(min_eligible_balance=0))
    e.dist.start(AUTHORITY)
    e.dist.accumulate(AUTHORITY, {"A": 0})
    e.dist.finalize_total(AUTHORITY)
    with pytest.raises(CalculationError):
        e.dist.payout("A")
    assert e.dist.status().cycle.paid == {}


def test_payout_after_end_is_not_allowed():
    e = _finalized(1_000, {"A": 3_000})
    e.dist.end(AUTHORITY)
    with pytest.raises(NotActive):
        e.dist.payout("A")
    assert e.vault_balance() == 1_000


def test_sum_of_payouts_never_exceeds_pool():
    balances = {f"h{i}": 1_000 + 7 * i for i in range(25)}
    e = _finalized(12_345, balances)
    paid = sum(e.dist.payout(h).reward for h in balances)
    assert paid <= 12_345
    assert e.vault_balance() == 12_345 - paid


def test_vault_counted_as_holder_cannot_pay_itself():
    e = _finalized(1_000, {"A": 1_000}, batch={"A": 1_000, VAULT: 1_000})
    supply = e.balance("A") + e.vault_balance()
    with pytest.raises(TransferFailure):
        e.dist.payout(VAULT)
    assert e.dist.payout("A").reward == 500
    assert e.balance("A") + e.vault_balance() == supply
    cycle = e.dist.status().cycle
    assert cycle.paid == {"A": 500}
    assert cycle.pending == {}


def test_transfer_carries_cycle_reference():
    e = _finalized(1_000, {"A": 3_000, "B": 7_000})
    e.dist.payout("A")
    entry = e.ledger.journal()[-1]
    assert entry.op == "transfer"
    assert entry.reference == f"{VAULT}:1:{e.dist.status().cycle.started_at}:A"
