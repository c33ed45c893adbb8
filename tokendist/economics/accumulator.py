from __future__ import annotations

"""
Eligibility accumulator: builds Ttotal across repeated, bounded batches.

A batch is a sequence of (holder, balance) pairs. Entries whose balance meets
the inclusive threshold are added to the running total with checked u64
addition. The fold is computed on local copies and only returned to the caller
when the whole batch succeeds, so a failing batch leaves the total untouched
and may be retried without double counting.

Holders already counted in the cycle, whether in an earlier batch or earlier
in the same batch, are skipped. Replaying a batch therefore adds nothing.
Partitioning the population into batches and covering it completely is still
the caller's job.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Sized, Tuple

from tokendist.economics.calculator import check_u64, checked_add, is_eligible
from tokendist.errors import BatchTooLarge
from tokendist.types import Amount, HolderId

log = logging.getLogger(__name__)

BatchEntry = Tuple[HolderId, Amount]


@dataclass(frozen=True)
class AccumulateResult:
    eligible: int
    ineligible: int
    duplicates: int
    added: Amount
    total: Amount
    counted: Dict[HolderId, Amount] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, int]:
        return {
            "eligible": self.eligible,
            "ineligible": self.ineligible,
            "duplicates": self.duplicates,
            "added": self.added,
            "total": self.total,
        }


def normalize_batch(
    batch: Iterable[BatchEntry] | Mapping[HolderId, Amount],
    *,
    max_batch_size: Optional[int] = None,
) -> List[BatchEntry]:
    """
    Accept a mapping or an iterable of pairs; returns a list of (holder, balance).

    With `max_batch_size`, a sized batch over the cap raises BatchTooLarge
    before any balance is validated; an unsized iterable stops one entry past
    the cap.
    """
    if max_batch_size is not None and isinstance(batch, Sized) and len(batch) > max_batch_size:
        raise BatchTooLarge(size=len(batch), limit=max_batch_size)
    items = batch.items() if isinstance(batch, Mapping) else batch
    out: List[BatchEntry] = []
    for holder, bal in items:
        if max_batch_size is not None and len(out) == max_batch_size:
            raise BatchTooLarge(size=len(out) + 1, limit=max_batch_size)
        out.append((str(holder), check_u64("balance", bal)))
    return out


def accumulate(
    total: Amount,
    batch: Sequence[BatchEntry],
    *,
    min_eligible_balance: Amount,
    already_counted: Mapping[HolderId, Amount],
    max_batch_size: int,
) -> AccumulateResult:
    """
    Fold one batch into `total`.

    Returns the new total and the holders newly counted by this batch; the
    caller commits both or neither. Raises BatchTooLarge when the batch exceeds
    the per-call account cap and CalculationError on overflow or invalid
    balances.
    """
    if len(batch) > max_batch_size:
        raise BatchTooLarge(size=len(batch), limit=max_batch_size)

    running = total
    newly: Dict[HolderId, Amount] = {}
    eligible = ineligible = duplicates = 0
    for holder, bal in batch:
        check_u64("balance", bal)
        if holder in already_counted or holder in newly:
            duplicates += 1
            log.debug("accumulate: skipping already counted holder=%s", holder)
            continue
        if not is_eligible(bal, min_eligible_balance):
            ineligible += 1
            continue
        running = checked_add(running, bal)
        newly[holder] = bal
        eligible += 1

    return AccumulateResult(
        eligible=eligible,
        ineligible=ineligible,
        duplicates=duplicates,
        added=running - total,
        total=running,
        counted=newly,
    )


__all__ = ["BatchEntry", "AccumulateResult", "normalize_batch", "accumulate"]
