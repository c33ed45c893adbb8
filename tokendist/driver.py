from __future__ import annotations
"""
Cycle driver for the token distributor.

The distributor core only ever sees one bounded batch per call; covering the
whole holder population is the caller's job. This module is that caller: it
snapshots holder balances from the ledger, partitions them into batches no
larger than the configured account cap and drives one complete cycle.

Typical flow
------------
1) start(authority)
2) accumulate(authority, batch) for every chunk of the holder snapshot
3) finalize_total(authority)  (snapshots X from the reward vault)
4) payout(holder) for every counted holder
5) end(authority)

Design notes
------------
- Deterministic: holders are processed in sorted order.
- Each run is one trace scope: log lines of every operation it drives carry
  the same trace_id plus component=driver and the cycle_id.
- Holders whose live balance fell below the threshold between accumulation and
  payout are skipped (recorded with their error code), not fatal.
- Any other error aborts the run and propagates; the cycle stays active so an
  operator can inspect it and retry individual payouts before ending it.

This module does not own any state beyond the distributor it drives.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from tokendist import logging as tlog
from tokendist.cycle.machine import Distributor
from tokendist.economics.accumulator import BatchEntry
from tokendist.errors import InsufficientBalance
from tokendist.ledger.interfaces import TokenLedger
from tokendist.types import Amount, HolderId

log = logging.getLogger(__name__)


# ------------------------------- Data types --------------------------------- #


@dataclass(frozen=True)
class CycleReport:
    """Summary of one driven cycle."""
    cycle_id: int
    total_eligible: Amount
    reward_pool: Amount
    batches: int
    paid: Dict[HolderId, Amount] = field(default_factory=dict)
    skipped: Dict[HolderId, str] = field(default_factory=dict)  # holder -> error code
    ineligible: int = 0

    @property
    def distributed(self) -> Amount:
        return sum(self.paid.values())

    @property
    def dust(self) -> Amount:
        return self.reward_pool - self.distributed

    def to_dict(self) -> Dict[str, object]:
        return {
            "cycle_id": self.cycle_id,
            "total_eligible": self.total_eligible,
            "reward_pool": self.reward_pool,
            "batches": self.batches,
            "paid": dict(self.paid),
            "skipped": dict(self.skipped),
            "ineligible": self.ineligible,
            "distributed": self.distributed,
            "dust": self.dust,
        }


# ------------------------------- Helpers ------------------------------------ #


def partition(entries: Sequence[BatchEntry], size: int) -> Iterator[List[BatchEntry]]:
    """Yield consecutive chunks of at most `size` entries."""
    if size <= 0:
        raise ValueError("batch size must be positive")
    for i in range(0, len(entries), size):
        yield list(entries[i:i + size])


def snapshot_balances(ledger: TokenLedger, mint: str, holders: Iterable[HolderId]) -> List[BatchEntry]:
    """Read each holder's live balance, de-duplicated and sorted by holder."""
    return [(h, ledger.balance_of(mint, h)) for h in sorted(set(holders))]


# ------------------------------- Driver ------------------------------------- #


class CycleDriver:
    def __init__(self, distributor: Distributor, ledger: TokenLedger, authority: str) -> None:
        self._dist = distributor
        self._ledger = ledger
        self._authority = authority

    def run(
        self,
        holders: Iterable[HolderId] | Mapping[HolderId, Amount],
        *,
        batch_size: Optional[int] = None,
    ) -> CycleReport:
        """
        Drive one full cycle over `holders`.

        `holders` is either a list of holder ids (balances are read from the
        ledger) or an explicit holder -> balance snapshot. `batch_size` defaults
        to the configured account cap.
        """
        cfg = self._dist.config
        size = batch_size or cfg.max_batch_size
        if isinstance(holders, Mapping):
            entries: List[BatchEntry] = sorted((str(h), int(b)) for h, b in holders.items())
        else:
            entries = snapshot_balances(self._ledger, cfg.reward_mint, holders)

        with tlog.trace_scope():
            tlog.bind(component="driver")
            return self._run(entries, size)

    def _run(self, entries: List[BatchEntry], size: int) -> CycleReport:
        cycle = self._dist.start(self._authority)
        tlog.bind(cycle_id=cycle.cycle_id)
        log.info("driver: cycle %d holders=%d batch_size=%d", cycle.cycle_id, len(entries), size)

        batches = 0
        ineligible = 0
        for chunk in partition(entries, size):
            res = self._dist.accumulate(self._authority, chunk)
            batches += 1
            ineligible += res.ineligible

        finalized = self._dist.finalize_total(self._authority)
        paid, skipped = self._pay_all(sorted(finalized.counted))
        ended = self._dist.end(self._authority)

        report = CycleReport(
            cycle_id=ended.cycle_id,
            total_eligible=sum(ended.counted.values()),
            reward_pool=ended.reward_pool or 0,
            batches=batches,
            paid=paid,
            skipped=skipped,
            ineligible=ineligible,
        )
        log.info(
            "driver: cycle %d done paid=%d skipped=%d dust=%d",
            report.cycle_id, len(paid), len(skipped), report.dust,
        )
        return report

    def _pay_all(self, holders: Sequence[HolderId]) -> Tuple[Dict[HolderId, Amount], Dict[HolderId, str]]:
        paid: Dict[HolderId, Amount] = {}
        skipped: Dict[HolderId, str] = {}
        for h in holders:
            try:
                res = self._dist.payout(h)
            except InsufficientBalance as e:
                skipped[h] = e.code
                log.warning("driver: skipping holder=%s (%s)", h, e.message)
                continue
            paid[h] = res.reward
        return paid, skipped


__all__ = ["CycleReport", "CycleDriver", "partition", "snapshot_balances"]
