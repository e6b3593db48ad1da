"""
Staking engine: the single owner of all shared staking state.

``EngineState`` holds every global aggregate (share account, reward pool,
stake ledger, treasury and burn totals).  ``StakingEngine`` threads that
state through each operation under one lock, so every operation is a
single serialized unit:

  ``open_stake()``        pull principal, mint bonus-weighted shares
  ``close_early()``       early-closure penalty tiers
  ``close_scheduled()``   grace window / late penalty, share-price ratchet
  ``top_up_daily()``      privileged reward-pool top-up
  ``emergency_sweep()``   privileged incident recovery

Custody ordering: an inbound transfer (principal, or the admin-funded
top-up) is confirmed before the books change.  Outbound transfers are
queued and executed only after the books are final and the invariants
hold; if custody refuses, the pre-operation snapshot is restored.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, Optional

from sharestake_core import bonus
from sharestake_core.custody import Custody, InMemoryCustody
from sharestake_core.errors import (
    InvalidInput,
    InvalidShareCount,
    InvariantViolation,
    PeriodAlreadyComplete,
    PeriodNotComplete,
    StakingPaused,
    TransferFailure,
    Unauthorized,
)
from sharestake_core.invariants import EngineSnapshot, InvariantChecker
from sharestake_core.penalty import (
    ClosureQuote,
    early_closure_quote,
    scheduled_closure_quote,
)
from sharestake_core.reward_pool import RewardPool, daily_top_up_amount
from sharestake_core.shares import INITIAL_SHARE_PRICE, ShareAccount
from sharestake_core.staking import (
    CLOSURE_EARLY,
    CLOSURE_SCHEDULED,
    StakeLedger,
    StakeLimits,
    StakeRecord,
)

logger = logging.getLogger("sharestake.engine")


@dataclass
class EngineState:
    """Every piece of shared state, owned by one engine."""
    admin: str
    treasury_account: str
    shares: ShareAccount = field(default_factory=ShareAccount)
    pool: RewardPool = field(default_factory=RewardPool)
    ledger: StakeLedger = field(default_factory=StakeLedger)
    total_staked: int = 0
    treasury_balance: int = 0
    total_burned: int = 0
    total_yield_paid: int = 0
    total_penalties: int = 0
    paused: bool = False


def _require_int(value, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise InvalidInput(f"{name} must be a non-negative integer")
    return value


class StakingEngine:
    """Serialized, atomic operations over one ``EngineState``."""

    def __init__(
        self,
        custody: Custody,
        admin: str,
        treasury_account: Optional[str] = None,
        *,
        limits: Optional[StakeLimits] = None,
        initial_share_price: int = INITIAL_SHARE_PRICE,
        state: Optional[EngineState] = None,
    ) -> None:
        if not admin:
            raise InvalidInput("admin account required")
        if initial_share_price <= 0:
            raise InvalidInput("initial share price must be positive")
        self.custody = custody
        if state is None:
            state = EngineState(
                admin=admin,
                treasury_account=treasury_account or admin,
                shares=ShareAccount(share_price=initial_share_price),
                ledger=StakeLedger(limits),
            )
        self.state = state
        self._lock = threading.RLock()
        self._checker = InvariantChecker()
        self._outbound: list[tuple[str, int]] = []

    @classmethod
    def from_config(cls, cfg, custody: Custody) -> StakingEngine:
        """Build an engine from an ``EngineConfig`` section."""
        limits = StakeLimits(
            min_amount=cfg.min_stake_amount,
            max_amount=cfg.max_stake_amount,
            min_days=cfg.min_stake_days,
            max_days=cfg.max_stake_days,
        )
        limits.validate()
        return cls(
            custody,
            cfg.admin,
            cfg.treasury or cfg.admin,
            limits=limits,
            initial_share_price=cfg.initial_share_price,
        )

    # ── atomic unit ─────────────────────────────────────────────────

    @contextmanager
    def _atomic(self, account: Optional[str] = None) -> Iterator[EngineState]:
        """
        Run the body as one unit: snapshot, mutate, verify, then pay out.

        Outbound transfers queued with ``_pay`` are only executed once the
        invariants hold; a rolled-back unit moves no funds.
        A unit queues at most one payout.
        """
        with self._lock:
            snapshot = EngineSnapshot.capture(self.state, account)
            self._checker.capture(snapshot)
            self._outbound = []
            try:
                yield self.state
                ok, msg = self._checker.verify(self.state)
                if not ok:
                    logger.error(f"Invariant violation, rolling back: {msg}")
                    raise InvariantViolation(msg)
                for to_account, amount in self._outbound:
                    if not self.custody.transfer_out(to_account, amount):
                        logger.warning(
                            f"transfer_out of {amount} to {to_account} failed",
                            extra={"account": to_account, "amount": amount},
                        )
                        raise TransferFailure(f"could not pay {amount} to {to_account}")
            except BaseException:
                snapshot.restore(self.state)
                raise
            finally:
                self._outbound = []

    def _pay(self, account: str, amount: int) -> None:
        """Queue an outbound transfer for the end of the current unit."""
        if amount > 0:
            self._outbound.append((account, amount))

    def _require_admin(self, caller: str, action: str) -> None:
        if caller != self.state.admin:
            logger.warning(f"Rejected {action} from non-admin {caller!r}")
            raise Unauthorized(f"{action} requires the admin account")

    # ── stake lifecycle ─────────────────────────────────────────────

    def open_stake(
        self,
        account: str,
        amount: int,
        duration_days: int,
        now: Optional[float] = None,
    ) -> StakeRecord:
        if now is None:
            now = time.time()
        with self._atomic(account) as st:
            if st.paused:
                raise StakingPaused("staking is paused")
            st.ledger.check_can_open(account, amount, duration_days)
            new_shares = bonus.shares_for(amount, duration_days, st.shares.share_price)
            if new_shares <= 0:
                raise InvalidInput("amount too small to mint any shares")

            if not self.custody.transfer_in(account, amount):
                logger.warning(
                    f"transfer_in of {amount} from {account} failed",
                    extra={"account": account, "amount": amount},
                )
                raise TransferFailure(f"could not pull {amount} from {account}")

            stake = StakeRecord(
                account=account,
                amount=amount,
                duration_days=duration_days,
                start_time=now,
                shares=new_shares,
                yield_checkpoint=st.pool.acc_yield_per_share,
            )
            st.shares.mint(new_shares)
            st.ledger.record(stake)
            st.total_staked += amount

        logger.info(
            f"Stake opened: {account} amount={amount} days={duration_days}",
            extra={"account": account, "amount": amount, "shares": new_shares,
                   "share_price": self.state.shares.share_price},
        )
        return stake

    def close_early(self, account: str, now: Optional[float] = None) -> ClosureQuote:
        """Close before the natural duration; early-penalty tiers apply."""
        return self._close(account, CLOSURE_EARLY, now)

    def close_scheduled(self, account: str, now: Optional[float] = None) -> ClosureQuote:
        """Close after the natural duration; grace window then late penalty."""
        return self._close(account, CLOSURE_SCHEDULED, now)

    def _quote(self, stake: StakeRecord, kind: str, now: float) -> ClosureQuote:
        st = self.state
        elapsed = stake.elapsed_days(now)
        earned = st.pool.accrued_for(stake.shares, stake.yield_checkpoint)
        if kind == CLOSURE_EARLY:
            if elapsed >= stake.duration_days:
                raise PeriodAlreadyComplete(
                    f"stake of {stake.account} completed; use scheduled closure"
                )
            return early_closure_quote(stake.amount, earned, elapsed, stake.duration_days)
        if elapsed < stake.duration_days:
            raise PeriodNotComplete(
                f"stake of {stake.account} completes in "
                f"{stake.duration_days - elapsed} day(s)"
            )
        return scheduled_closure_quote(stake.amount, earned, elapsed, stake.duration_days)

    def _close(self, account: str, kind: str, now: Optional[float]) -> ClosureQuote:
        if now is None:
            now = time.time()
        with self._atomic(account) as st:
            stake = st.ledger.get_active(account)
            quote = self._quote(stake, kind, now)
            elapsed = stake.elapsed_days(now)
            split = quote.split

            st.pool.release(quote.earned_yield)
            st.shares.burn(stake.shares)
            st.pool.credit(split.pool + quote.yield_retained, st.shares.total_shares)
            st.treasury_balance += split.treasury
            st.total_burned += split.burn
            st.total_staked -= stake.amount
            st.total_yield_paid += quote.yield_returned
            st.total_penalties += quote.penalty

            if kind == CLOSURE_SCHEDULED:
                self._ratchet_price(quote.payout, stake.shares, elapsed)

            st.ledger.close(
                account, kind,
                earned_yield=quote.earned_yield,
                payout=quote.payout,
                penalty=quote.penalty,
                now=now,
            )
            self._pay(account, quote.payout)

        logger.info(
            f"Stake closed ({kind}): {account} elapsed={elapsed}d",
            extra={"account": account, "payout": quote.payout, "penalty": quote.penalty},
        )
        return quote

    def _ratchet_price(self, total_paid: int, shares: int, days_staked: int) -> None:
        st = self.state
        old = st.shares.share_price
        try:
            changed = st.shares.ratchet(total_paid, shares, days_staked)
        except InvalidShareCount as exc:
            logger.warning(f"Share price left at {old}: {exc}")
            return
        if changed:
            logger.info(f"Share price ratcheted {old} -> {st.shares.share_price}")

    # ── privileged operations ───────────────────────────────────────

    def top_up_daily(
        self, caller: str, current_supply: int, now: Optional[float] = None,
    ) -> int:
        """
        Add 0.01 % of *current_supply* to the reward pool.

        The top-up is funded: the amount is pulled from the admin account
        into custody before the pool is credited.
        """
        if now is None:
            now = time.time()
        with self._atomic() as st:
            self._require_admin(caller, "top_up_daily")
            _require_int(current_supply, "current_supply")
            amount = daily_top_up_amount(current_supply)
            if amount > 0 and not self.custody.transfer_in(st.admin, amount):
                logger.warning(
                    f"top-up of {amount} from {st.admin} failed",
                    extra={"account": st.admin, "amount": amount},
                )
                raise TransferFailure(f"could not pull top-up of {amount} from {st.admin}")
            added = st.pool.top_up(current_supply, st.shares.total_shares, now)
        logger.info(f"Reward pool topped up by {added} (balance {self.state.pool.balance})")
        return added

    def emergency_sweep(self, caller: str) -> int:
        """Move the whole custodied balance to the admin and pause staking."""
        with self._atomic() as st:
            self._require_admin(caller, "emergency_sweep")
            amount = self.custody.balance()
            st.paused = True
            self._pay(st.admin, amount)
        logger.warning(f"Emergency sweep moved {amount} to {caller}; staking paused")
        return amount

    def withdraw_treasury(self, caller: str) -> int:
        """Pay the accrued treasury share of penalties to the treasury account."""
        with self._atomic() as st:
            self._require_admin(caller, "withdraw_treasury")
            amount = st.treasury_balance
            st.treasury_balance = 0
            self._pay(st.treasury_account, amount)
        logger.info(f"Treasury withdrawal of {amount} to {self.state.treasury_account}")
        return amount

    def set_limits(
        self,
        caller: str,
        min_amount: int,
        max_amount: int,
        min_days: int,
        max_days: int,
    ) -> StakeLimits:
        with self._atomic() as st:
            self._require_admin(caller, "set_limits")
            limits = StakeLimits(min_amount, max_amount, min_days, max_days)
            limits.validate()
            st.ledger.limits = limits
        logger.info(f"Stake limits updated: {limits.to_dict()}")
        return limits

    def set_treasury(self, caller: str, treasury_account: str) -> None:
        with self._atomic() as st:
            self._require_admin(caller, "set_treasury")
            if not treasury_account:
                raise InvalidInput("treasury account required")
            st.treasury_account = treasury_account
        logger.info(f"Treasury account set to {treasury_account}")

    def pause(self, caller: str) -> None:
        with self._atomic() as st:
            self._require_admin(caller, "pause")
            st.paused = True
        logger.info("Staking paused")

    def unpause(self, caller: str) -> None:
        with self._atomic() as st:
            self._require_admin(caller, "unpause")
            st.paused = False
        logger.info("Staking unpaused")

    # ── read-only queries ───────────────────────────────────────────

    def get_stake(self, account: str) -> Optional[StakeRecord]:
        with self._lock:
            return self.state.ledger.get_stake(account)

    def elapsed_days(self, account: str, now: Optional[float] = None) -> int:
        with self._lock:
            return self.state.ledger.elapsed_days(account, now)

    def is_period_complete(self, account: str, now: Optional[float] = None) -> bool:
        with self._lock:
            return self.state.ledger.is_period_complete(account, now)

    def projected_yield(self, account: str) -> int:
        """``pool × account_shares / total_shares``; 0 without an active stake."""
        with self._lock:
            st = self.state
            stake = st.ledger.active.get(account)
            if stake is None:
                return 0
            return st.pool.projected_yield(stake.shares, st.shares.total_shares)

    def accrued_yield(self, account: str) -> int:
        """Yield the active stake would settle if it closed now."""
        with self._lock:
            stake = self.state.ledger.get_active(account)
            return self.state.pool.accrued_for(stake.shares, stake.yield_checkpoint)

    def quote_closure(self, account: str, now: Optional[float] = None) -> ClosureQuote:
        """Preview whichever closure path currently applies, without side effects."""
        if now is None:
            now = time.time()
        with self._lock:
            stake = self.state.ledger.get_active(account)
            kind = CLOSURE_SCHEDULED if stake.is_period_complete(now) else CLOSURE_EARLY
            return self._quote(stake, kind, now)

    def get_staking_stats(self) -> dict:
        with self._lock:
            st = self.state
            return {
                "total_staked": st.total_staked,
                "total_users": st.ledger.active_count,
                "total_shares": st.shares.total_shares,
                "share_price": st.shares.share_price,
                "reward_pool": st.pool.balance,
                "last_top_up": st.pool.last_top_up,
                "treasury_balance": st.treasury_balance,
                "total_burned": st.total_burned,
                "total_yield_paid": st.total_yield_paid,
                "total_penalties": st.total_penalties,
                "total_stakes": st.ledger.total_stakes,
                "paused": st.paused,
                "limits": st.ledger.limits.to_dict(),
            }

    def save_to(self, store) -> None:
        """Persist the current state, and an in-memory custody, through a ``StakeStore``."""
        with self._lock:
            custody = self.custody if isinstance(self.custody, InMemoryCustody) else None
            store.save_state(self.state, custody=custody)

    def verify_share_supply(self) -> tuple[bool, str]:
        with self._lock:
            return InvariantChecker.check_share_supply(self.state)

    def verify_solvency(self) -> tuple[bool, str]:
        """Custody must cover staked principal, the reward pool and the treasury."""
        with self._lock:
            return InvariantChecker.check_solvency(self.state, self.custody.balance())
