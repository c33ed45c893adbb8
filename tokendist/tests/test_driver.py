from __future__ import annotations

import logging

import pytest

from tokendist import logging as tlog
from tokendist.config import DistributorParams
from tokendist.driver import CycleDriver, partition, snapshot_balances
from tokendist.economics.calculator import allocate
from tokendist.errors import AlreadyActive
from tokendist.tests.helpers import AUTHORITY, MINT, make_env
from tokendist.types import CycleState


def test_partition_sizes():
    entries = [(f"h{i}", i) for i in range(10)]
    chunks = list(partition(entries, 4))
    assert [len(c) for c in chunks] == [4, 4, 2]
    assert [e for c in chunks for e in c] == entries
    assert list(partition([], 4)) == []
    with pytest.raises(ValueError):
        list(partition(entries, 0))


def test_snapshot_reads_ledger_sorted_and_unique():
    e = make_env(balances={"B": 2_000, "A": 1_000})
    assert snapshot_balances(e.ledger, MINT, ["B", "A", "B", "C"]) == [("A", 1_000), ("B", 2_000), ("C", 0)]


def test_run_matches_pure_allocation():
    balances = {f"h{i:02d}": 500 + 250 * i for i in range(70)}
    e = make_env(pool=99_999, balances=balances)
    report = CycleDriver(e.dist, e.ledger, AUTHORITY).run(list(balances))

    expected = allocate(balances, 99_999, e.params.min_eligible_balance)
    assert report.paid == expected.rewards
    assert report.total_eligible == expected.total_eligible
    assert report.dust == expected.dust
    assert report.batches == 3  # 70 holders / 32 per batch
    assert report.ineligible == sum(1 for b in balances.values() if b < 1_000)
    assert e.ledger.balance_of(MINT, "reward-vault") == report.dust
    assert e.dist.config.state is CycleState.IDLE


def test_run_with_explicit_snapshot_and_small_batches():
    e = make_env(pool=1_000, balances={"A": 1_500, "B": 500, "C": 3_500})
    report = CycleDriver(e.dist, e.ledger, AUTHORITY).run({"A": 1_500, "B": 500, "C": 3_500}, batch_size=1)
    assert report.batches == 3
    assert report.paid == {"A": 300, "C": 700}
    assert report.dust == 0
    assert report.to_dict()["distributed"] == 1_000


def test_run_uses_configured_batch_cap():
    e = make_env(params=DistributorParams(max_batch_size=2), balances={"A": 1_000, "B": 1_000, "C": 1_000})
    report = CycleDriver(e.dist, e.ledger, AUTHORITY).run(["A", "B", "C"])
    assert report.batches == 2


def test_holders_below_threshold_at_payout_are_skipped():
    e = make_env(pool=1_000, balances={"A": 3_000, "B": 7_000})
    report = CycleDriver(e.dist, e.ledger, AUTHORITY).run({"A": 3_000, "B": 7_000})
    assert report.paid == {"A": 300, "B": 700}

    e.clock.advance(e.params.distribution_interval)
    # B sells down after the snapshot was taken
    e.ledger.burn_from(MINT, "B", 6_500)
    report = CycleDriver(e.dist, e.ledger, AUTHORITY).run({"A": 3_000, "B": 7_000})
    assert report.cycle_id == 2
    assert report.skipped == {"B": "INSUFFICIENT_BALANCE"}
    assert "B" not in report.paid


def test_run_propagates_state_errors():
    e = make_env(balances={"A": 3_000})
    e.dist.start(AUTHORITY)
    with pytest.raises(AlreadyActive):
        CycleDriver(e.dist, e.ledger, AUTHORITY).run(["A"])


class _ContextRecorder(logging.Handler):
    def __init__(self) -> None:
        super().__init__(logging.INFO)
        self.seen = []

    def emit(self, record: logging.LogRecord) -> None:
        self.seen.append((record.name, tlog.context()))


@pytest.fixture
def recorder():
    h = _ContextRecorder()
    log = logging.getLogger("tokendist")
    level = log.level
    log.addHandler(h)
    log.setLevel(logging.INFO)
    yield h
    log.removeHandler(h)
    log.setLevel(level)


def test_run_logs_under_one_trace(recorder):
    e = make_env(pool=1_000, balances={"A": 3_000, "B": 7_000})
    recorder.seen.clear()
    CycleDriver(e.dist, e.ledger, AUTHORITY).run(["A", "B"])

    machine = [ctx for name, ctx in recorder.seen if name == "tokendist.cycle.machine"]
    assert len(machine) > 1
    assert len({ctx["trace_id"] for ctx in machine}) == 1
    assert all(ctx["component"] == "driver" for ctx in machine)
    # "cycle 1 started" is logged before the driver learns the cycle id
    assert [ctx.get("cycle_id") for ctx in machine[1:]] == [1] * (len(machine) - 1)
    assert "trace_id" not in tlog.context()

    recorder.seen.clear()
    e.clock.advance(e.params.distribution_interval)
    CycleDriver(e.dist, e.ledger, AUTHORITY).run(["A", "B"])
    traces = {ctx["trace_id"] for name, ctx in recorder.seen if name == "tokendist.cycle.machine"}
    assert len(traces) == 1
    assert traces.isdisjoint({machine[0]["trace_id"]})
