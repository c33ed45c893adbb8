from __future__ import annotations

"""
Distribution cycle state machine
--------------------------------

Drives one reward distribution through its stages:

    IDLE --start--> ACCUMULATING --finalize_total--> FINALIZED --end--> IDLE
    ACCUMULATING --end--> IDLE                    (abandoned before finalize)
    ACCUMULATING --accumulate--> ACCUMULATING
    FINALIZED --payout--> FINALIZED

- start: authority only; the distribution interval must have elapsed since
  the last close. Zeroes Ttotal and opens a fresh cycle record.
- accumulate: authority only; folds one bounded batch of (holder, balance)
  pairs into Ttotal. All-or-nothing.
- finalize_total: authority only; closes accumulation and snapshots the reward
  pool X from the vault balance. Every payout of the cycle uses this X.
- payout: anyone; pays one holder floor(Ti * X / Ttotal) through the vault
  transfer authority. Zero rewards skip the transfer.
- end: authority only; returns to IDLE and stamps last_distribution_at.

Each operation is a single store transaction: it reads the committed state,
validates, mutates and commits, or raises and leaves the state untouched.
The exception is a non-zero payout, which commits a reservation before the
vault transfer and confirms it in a second transaction afterwards.
Serializing operations is the store's job (RLock / SQLite write lock); the
state field is the only cycle-level mutual exclusion owned here.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Iterator, Mapping, Optional, Tuple

from tokendist import metrics
from tokendist.config import DistributorParams
from tokendist.economics.accumulator import AccumulateResult, BatchEntry, accumulate, normalize_batch
from tokendist.economics.calculator import check_u64, is_eligible, reward
from tokendist.errors import (
    AccumulationClosed,
    AlreadyActive,
    AlreadyInitialized,
    AlreadyPaid,
    DistributorError,
    HolderNotCounted,
    InsufficientBalance,
    InvalidAuthority,
    NotActive,
    NotFinalized,
    NotInitialized,
    TooEarly,
    TransferFailure,
    Unauthorized,
)
from tokendist.ledger.interfaces import Clock, TokenLedger
from tokendist.ledger.memory import SystemClock
from tokendist.store.base import DistributorStore, StoreState
from tokendist.types import (
    Amount,
    CycleRecord,
    CycleState,
    DistributionConfig,
    HolderId,
    MintId,
)
from tokendist.vault.authority import VaultTransferAuthority, derive_vault_address

log = logging.getLogger(__name__)


# op -> (states it may run from, state it leaves behind)
TRANSITIONS: Dict[str, Tuple[FrozenSet[CycleState], CycleState]] = {
    "start": (frozenset({CycleState.IDLE}), CycleState.ACCUMULATING),
    "accumulate": (frozenset({CycleState.ACCUMULATING}), CycleState.ACCUMULATING),
    "finalize": (frozenset({CycleState.ACCUMULATING}), CycleState.FINALIZED),
    "payout": (frozenset({CycleState.FINALIZED}), CycleState.FINALIZED),
    "end": (frozenset({CycleState.ACCUMULATING, CycleState.FINALIZED}), CycleState.IDLE),
}


def check_transition(op: str, config: DistributionConfig) -> CycleState:
    """Return the state `op` leads to from the current state, or raise the matching rejection."""
    allowed, target = TRANSITIONS[op]
    if config.state in allowed:
        return target
    if op == "start":
        raise AlreadyActive(cycle_id=config.cycle_id)
    if config.state is CycleState.IDLE:
        raise NotActive(operation=op)
    if op == "payout":
        raise NotFinalized(cycle_id=config.cycle_id)
    raise AccumulationClosed(cycle_id=config.cycle_id)


@dataclass(frozen=True)
class PayoutResult:
    holder: HolderId
    balance: Amount
    reward: Amount
    transferred: bool
    cycle_id: int

    def to_dict(self) -> Dict[str, object]:
        return {
            "holder": self.holder,
            "balance": self.balance,
            "reward": self.reward,
            "transferred": self.transferred,
            "cycle_id": self.cycle_id,
        }


class Distributor:
    """
    The distributor core. Owns the vault transfer authority; everything else
    (balances, custody, time, persistence) is supplied by collaborators.
    """

    def __init__(
        self,
        store: DistributorStore,
        ledger: TokenLedger,
        clock: Optional[Clock] = None,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._clock = clock or SystemClock()
        self._vault: Optional[VaultTransferAuthority] = None

    # ---- bootstrap ----

    @staticmethod
    def vault_address(params: Optional[DistributorParams] = None) -> str:
        """Address of the vault authority the reward vault must be owned by."""
        p = params or DistributorParams()
        return derive_vault_address(p.program_id, p.vault_seed)

    def initialize(
        self,
        *,
        authority: str,
        reward_mint: MintId,
        reward_vault: str,
        params: Optional[DistributorParams] = None,
    ) -> DistributionConfig:
        """Create the distribution config once. The first cycle may start one interval later."""
        p = params or DistributorParams()
        p.validate()
        with self._operation("initialize"):
            with self._store.transaction() as st:
                if st.config is not None:
                    raise AlreadyInitialized("distributor is already initialized")
                st.config = DistributionConfig(
                    authority=authority,
                    reward_mint=reward_mint,
                    reward_vault=reward_vault,
                    vault_authority=derive_vault_address(p.program_id, p.vault_seed),
                    program_id=p.program_id,
                    vault_seed=p.vault_seed,
                    min_eligible_balance=p.min_eligible_balance,
                    distribution_interval=p.distribution_interval,
                    max_batch_size=p.max_batch_size,
                    last_distribution_at=self._clock.now(),
                )
                cfg = st.config
        log.info(
            "initialized authority=%s mint=%s vault=%s vault_authority=%s",
            authority, reward_mint, reward_vault, cfg.vault_authority,
        )
        return cfg

    # ---- cycle operations ----

    def start(self, caller: str) -> CycleRecord:
        with self._operation("start"):
            with self._store.transaction() as st:
                cfg = self._authorized(st, caller, "start")
                now = self._clock.now()
                if now < cfg.next_start_at:
                    raise TooEarly(now=now, earliest=cfg.next_start_at)
                cfg.state = check_transition("start", cfg)
                cfg.total_eligible_tokens = 0
                cfg.cycle_id += 1
                st.cycle = CycleRecord(cycle_id=cfg.cycle_id, started_at=now)
                cycle = st.cycle
        metrics.record_cycle_started()
        log.info("cycle %d started", cycle.cycle_id, extra={"cycle_id": cycle.cycle_id})
        return cycle

    def accumulate(
        self,
        caller: str,
        batch: Iterable[BatchEntry] | Mapping[HolderId, Amount],
    ) -> AccumulateResult:
        with self._operation("accumulate"):
            with self._store.transaction() as st:
                cfg = self._authorized(st, caller, "accumulate")
                check_transition("accumulate", cfg)
                cycle = self._cycle(st)
                entries = normalize_batch(batch, max_batch_size=cfg.max_batch_size)
                res = accumulate(
                    cfg.total_eligible_tokens,
                    entries,
                    min_eligible_balance=cfg.min_eligible_balance,
                    already_counted=cycle.counted,
                    max_batch_size=cfg.max_batch_size,
                )
                cfg.total_eligible_tokens = res.total
                cycle.counted.update(res.counted)
                cycle.skipped_duplicates += res.duplicates
        metrics.record_accumulate(res.eligible, res.ineligible, res.duplicates, res.total)
        log.info(
            "cycle %d accumulated batch size=%d eligible=%d duplicates=%d total=%d",
            cycle.cycle_id, len(entries), res.eligible, res.duplicates, res.total,
            extra={"cycle_id": cycle.cycle_id},
        )
        return res

    def finalize_total(self, caller: str) -> CycleRecord:
        with self._operation("finalize"):
            with self._store.transaction() as st:
                cfg = self._authorized(st, caller, "finalize")
                target = check_transition("finalize", cfg)
                cycle = self._cycle(st)
                pool = check_u64("reward_pool", self._ledger.balance_of(cfg.reward_mint, cfg.reward_vault))
                cycle.reward_pool = pool
                cycle.finalized_at = self._clock.now()
                cfg.state = target
        metrics.record_finalized(pool)
        log.info(
            "cycle %d finalized total=%d pool=%d holders=%d",
            cycle.cycle_id, cfg.total_eligible_tokens, pool, len(cycle.counted),
            extra={"cycle_id": cycle.cycle_id},
        )
        return cycle

    def payout(self, holder: HolderId) -> PayoutResult:
        """
        Pay one holder its share of the finalized pool.

        Rejections, in order: NotActive / NotFinalized (state), InsufficientBalance
        (live balance below threshold), HolderNotCounted, AlreadyPaid. The
        holder's share is computed from min(live balance, counted balance).

        A non-zero reward settles in three steps. First the reward is reserved
        in `cycle.pending` and committed. Then the vault transfer runs under a
        reference unique to (vault, cycle, holder). Finally a second commit
        moves the reservation to `cycle.paid`. The ledger applies a reference
        at most once, so a payout interrupted after the reservation is finished
        by calling payout again; a failed transfer releases the reservation.
        """
        with self._operation("payout"):
            with self._store.transaction() as st:
                cfg = st.require_config()
                check_transition("payout", cfg)
                cycle = self._cycle(st)
                balance = self._ledger.balance_of(cfg.reward_mint, holder)
                ri = cycle.pending.get(holder)
                if ri is None:
                    if not is_eligible(balance, cfg.min_eligible_balance):
                        raise InsufficientBalance(
                            holder=holder, balance=balance, required=cfg.min_eligible_balance
                        )
                    counted = cycle.counted.get(holder)
                    if counted is None:
                        raise HolderNotCounted(holder=holder, cycle_id=cycle.cycle_id)
                    if holder in cycle.paid:
                        raise AlreadyPaid(holder=holder, cycle_id=cycle.cycle_id, amount=cycle.paid[holder])

                    ti = min(balance, counted)
                    ri = reward(ti, cfg.total_eligible_tokens, cycle.reward_pool or 0)
                    if ri > 0:
                        cycle.pending[holder] = ri
                    else:
                        cycle.paid[holder] = 0
                else:
                    ti = min(balance, cycle.counted.get(holder, 0))
                    log.warning(
                        "cycle %d resuming unconfirmed payout holder=%s reward=%d",
                        cycle.cycle_id, holder, ri,
                        extra={"cycle_id": cycle.cycle_id, "holder": holder},
                    )
            if ri > 0:
                try:
                    self._vault_authority(cfg).transfer(
                        self._ledger,
                        mint=cfg.reward_mint,
                        vault=cfg.reward_vault,
                        holder=holder,
                        amount=ri,
                        reference=f"{cfg.reward_vault}:{cycle.cycle_id}:{cycle.started_at}:{holder}",
                    )
                except TransferFailure:
                    self._settle(cycle.cycle_id, holder, confirm=False)
                    metrics.record_payout(0, "failed")
                    raise
                self._settle(cycle.cycle_id, holder, confirm=True)
        metrics.record_payout(ri, "transferred" if ri > 0 else "zero")
        log.info(
            "cycle %d payout holder=%s balance=%d reward=%d",
            cycle.cycle_id, holder, ti, ri,
            extra={"cycle_id": cycle.cycle_id, "holder": holder},
        )
        return PayoutResult(holder=holder, balance=ti, reward=ri, transferred=ri > 0, cycle_id=cycle.cycle_id)

    def end(self, caller: str) -> CycleRecord:
        with self._operation("end"):
            with self._store.transaction() as st:
                cfg = self._authorized(st, caller, "end")
                cfg.state = check_transition("end", cfg)
                now = self._clock.now()
                cfg.last_distribution_at = now
                cycle = self._cycle(st)
                cycle.ended_at = now
        metrics.record_cycle_ended()
        if cycle.pending:
            log.warning(
                "cycle %d ended with %d payouts unconfirmed: %s",
                cycle.cycle_id, len(cycle.pending), sorted(cycle.pending),
                extra={"cycle_id": cycle.cycle_id},
            )
        unpaid = len(cycle.counted) - len(cycle.paid)
        if unpaid:
            log.warning(
                "cycle %d ended with %d counted holders unpaid",
                cycle.cycle_id, unpaid, extra={"cycle_id": cycle.cycle_id},
            )
        log.info(
            "cycle %d ended paid=%d/%s",
            cycle.cycle_id, cycle.total_paid, cycle.reward_pool,
            extra={"cycle_id": cycle.cycle_id},
        )
        return cycle

    # ---- queries ----

    def status(self) -> StoreState:
        """Committed config and current cycle record (detached copies)."""
        return self._store.load()

    @property
    def config(self) -> DistributionConfig:
        return self._store.load().require_config()

    # ---- internals ----

    @contextmanager
    def _operation(self, op: str) -> Iterator[None]:
        with metrics.time_operation(op):
            try:
                yield
            except DistributorError as e:
                metrics.record_error(op, e.code)
                log.info("%s rejected: %s", op, e)
                raise

    @staticmethod
    def _authorized(st: StoreState, caller: str, op: str) -> DistributionConfig:
        cfg = st.require_config()
        if caller != cfg.authority:
            raise Unauthorized(caller=caller, operation=op)
        return cfg

    @staticmethod
    def _cycle(st: StoreState) -> CycleRecord:
        if st.cycle is None or st.config is None or st.cycle.cycle_id != st.config.cycle_id:
            raise NotInitialized("cycle record missing for the active cycle")
        return st.cycle

    def _settle(self, cycle_id: int, holder: HolderId, *, confirm: bool) -> None:
        """Move a pending reward to paid (confirm) or drop it (release)."""
        with self._store.transaction() as st:
            cycle = st.cycle
            if cycle is None or cycle.cycle_id != cycle_id:
                log.warning("cycle %d closed before payout of holder=%s settled", cycle_id, holder)
                return
            ri = cycle.pending.pop(holder, None)
            if confirm and ri is not None:
                cycle.paid[holder] = ri

    def _vault_authority(self, cfg: DistributionConfig) -> VaultTransferAuthority:
        if self._vault is None or self._vault.address != cfg.vault_authority:
            vault = VaultTransferAuthority(cfg.program_id, cfg.vault_seed)
            if vault.address != cfg.vault_authority:
                raise InvalidAuthority(
                    "configured vault authority does not match its derivation",
                    details={"configured": cfg.vault_authority, "derived": vault.address},
                )
            self._vault = vault
        return self._vault


__all__ = ["TRANSITIONS", "check_transition", "PayoutResult", "Distributor"]
