from __future__ import annotations

"""
Prometheus metrics for the token distributor.

We expose counters, histograms and gauges covering:
- cycles: started / ended
- accumulation: batches processed, holders counted / skipped
- payouts: by outcome (transferred / zero / failed) and amount distribution
- errors: distributor errors by code and operation
- snapshots: current eligible total and reward pool

The module only depends on prometheus_client; `render` produces the text
exposition the CLI writes out.
"""


import time
from contextlib import contextmanager
from typing import Optional

from prometheus_client import (CollectorRegistry, Counter, Gauge, Histogram,
                               generate_latest)

# Dedicated registry so embedding apps can choose to merge or expose it directly.
REGISTRY = CollectorRegistry()

# ────────────────────────────────────────────────────────────────────────────────
# Label conventions
#   op: "start" | "accumulate" | "finalize" | "payout" | "end"
#   outcome: "transferred" | "zero" | "failed"
#   reason: "ineligible" | "duplicate"
# ────────────────────────────────────────────────────────────────────────────────

CYCLES_STARTED = Counter(
    "tokendist_cycles_started_total",
    "Total distribution cycles started.",
    registry=REGISTRY,
)

CYCLES_ENDED = Counter(
    "tokendist_cycles_ended_total",
    "Total distribution cycles ended.",
    registry=REGISTRY,
)

ACCUMULATE_BATCHES = Counter(
    "tokendist_accumulate_batches_total",
    "Total accumulate batches committed.",
    registry=REGISTRY,
)

HOLDERS_COUNTED = Counter(
    "tokendist_holders_counted_total",
    "Total holders counted into the eligible total.",
    registry=REGISTRY,
)

HOLDERS_SKIPPED = Counter(
    "tokendist_holders_skipped_total",
    "Total batch entries not counted, by reason.",
    labelnames=("reason",),
    registry=REGISTRY,
)

PAYOUTS = Counter(
    "tokendist_payouts_total",
    "Total per-holder payouts by outcome.",
    labelnames=("outcome",),
    registry=REGISTRY,
)

ERRORS = Counter(
    "tokendist_errors_total",
    "Total distributor errors by operation and code.",
    labelnames=("op", "code"),
    registry=REGISTRY,
)

PAYOUT_AMOUNT_UNITS = Histogram(
    "tokendist_payout_amount_units",
    "Distribution of transferred reward amounts (base units).",
    buckets=(1, 10, 100, 1_000, 10_000, 100_000, 1_000_000, 10_000_000, 100_000_000, 1_000_000_000),
    registry=REGISTRY,
)

OPERATION_SECONDS = Histogram(
    "tokendist_operation_seconds",
    "Time spent in a distributor operation, by operation.",
    labelnames=("op",),
    buckets=(0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
    registry=REGISTRY,
)

TOTAL_ELIGIBLE = Gauge(
    "tokendist_total_eligible_tokens",
    "Eligible total (Ttotal) of the current cycle.",
    registry=REGISTRY,
)

REWARD_POOL = Gauge(
    "tokendist_reward_pool_units",
    "Reward pool (X) snapshotted at finalize for the current cycle.",
    registry=REGISTRY,
)

CYCLE_ACTIVE = Gauge(
    "tokendist_cycle_active",
    "1 while a distribution cycle is active, else 0.",
    registry=REGISTRY,
)

# ────────────────────────────────────────────────────────────────────────────────
# Recording helpers
# ────────────────────────────────────────────────────────────────────────────────


def record_cycle_started() -> None:
    CYCLES_STARTED.inc()
    CYCLE_ACTIVE.set(1)
    TOTAL_ELIGIBLE.set(0)
    REWARD_POOL.set(0)


def record_cycle_ended() -> None:
    CYCLES_ENDED.inc()
    CYCLE_ACTIVE.set(0)


def record_accumulate(counted: int, ineligible: int, duplicates: int, total: int) -> None:
    """Record one committed accumulate batch."""
    ACCUMULATE_BATCHES.inc()
    HOLDERS_COUNTED.inc(counted)
    if ineligible:
        HOLDERS_SKIPPED.labels(reason="ineligible").inc(ineligible)
    if duplicates:
        HOLDERS_SKIPPED.labels(reason="duplicate").inc(duplicates)
    TOTAL_ELIGIBLE.set(total)


def record_finalized(reward_pool: int) -> None:
    REWARD_POOL.set(reward_pool)


def record_payout(amount: int, outcome: str) -> None:
    """Record a payout by outcome; observe the amount only when funds moved."""
    PAYOUTS.labels(outcome=outcome).inc()
    if outcome == "transferred" and amount > 0:
        PAYOUT_AMOUNT_UNITS.observe(float(amount))


def record_error(op: str, code: str) -> None:
    ERRORS.labels(op=op, code=code).inc()


@contextmanager
def time_operation(op: str):
    """Context manager to observe how long an operation takes."""
    start = time.perf_counter()
    try:
        yield
    finally:
        OPERATION_SECONDS.labels(op=op).observe(time.perf_counter() - start)


def render(registry: Optional[CollectorRegistry] = None) -> bytes:
    """Prometheus text exposition for the registry."""
    return generate_latest(registry or REGISTRY)


__all__ = [
    "REGISTRY",
    "CYCLES_STARTED",
    "CYCLES_ENDED",
    "ACCUMULATE_BATCHES",
    "HOLDERS_COUNTED",
    "HOLDERS_SKIPPED",
    "PAYOUTS",
    "ERRORS",
    "PAYOUT_AMOUNT_UNITS",
    "OPERATION_SECONDS",
    "TOTAL_ELIGIBLE",
    "REWARD_POOL",
    "CYCLE_ACTIVE",
    "record_cycle_started",
    "record_cycle_ended",
    "record_accumulate",
    "record_finalized",
    "record_payout",
    "record_error",
    "time_operation",
    "render",
]
