"""
Per-account stake records and their lifecycle.

Each account holds at most one active stake:

    NONE ──open_stake()──▶ ACTIVE ──close()──▶ CLOSED

A closed record is moved to the account's history and no longer takes
part in any total.  All time-derived values (elapsed days, completion)
are computed from ``start_time`` on demand, never stored.

Stake limits
────────────
  amount        MIN_STAKE_AMOUNT … MAX_STAKE_AMOUNT  (1 000 … 1 000 000 000 tokens)
  duration      MIN_STAKE_DAYS   … MAX_STAKE_DAYS    (1 … 3641 days)

The limits are adjustable by the administrator at runtime.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Optional

from sharestake_core.errors import AlreadyActive, InvalidInput, NoActiveStake
from sharestake_core.precision import SECONDS_PER_DAY, UNITS_PER_TOKEN

MIN_STAKE_AMOUNT: int = 1_000 * UNITS_PER_TOKEN
MAX_STAKE_AMOUNT: int = 1_000_000_000 * UNITS_PER_TOKEN
MIN_STAKE_DAYS: int = 1
MAX_STAKE_DAYS: int = 3641

CLOSURE_EARLY = "early"
CLOSURE_SCHEDULED = "scheduled"


@dataclass
class StakeLimits:
    min_amount: int = MIN_STAKE_AMOUNT
    max_amount: int = MAX_STAKE_AMOUNT
    min_days: int = MIN_STAKE_DAYS
    max_days: int = MAX_STAKE_DAYS

    def validate(self) -> None:
        if self.min_amount <= 0 or self.min_days <= 0:
            raise InvalidInput("stake limits must be positive")
        if self.min_amount > self.max_amount:
            raise InvalidInput("min_amount exceeds max_amount")
        if self.min_days > self.max_days:
            raise InvalidInput("min_days exceeds max_days")

    def check(self, amount: int, days: int) -> None:
        if not self.min_amount <= amount <= self.max_amount:
            raise InvalidInput(
                f"amount {amount} outside [{self.min_amount}, {self.max_amount}]"
            )
        if not self.min_days <= days <= self.max_days:
            raise InvalidInput(
                f"duration {days} outside [{self.min_days}, {self.max_days}] days"
            )

    def to_dict(self) -> dict:
        return {
            "min_amount": self.min_amount,
            "max_amount": self.max_amount,
            "min_days": self.min_days,
            "max_days": self.max_days,
        }


# ── StakeRecord ─────────────────────────────────────────────────────────

@dataclass
class StakeRecord:
    """
    A single stake owned by ``account``.

    ``yield_checkpoint`` is the reward-pool accumulator value at opening;
    ``earned_yield`` is only written when the stake closes.
    """
    account: str
    amount: int                 # principal locked
    duration_days: int
    start_time: float           # epoch
    shares: int
    yield_checkpoint: int = 0
    earned_yield: int = 0
    active: bool = True
    closed_time: float = 0.0
    closure_kind: str = ""
    payout: int = 0
    penalty: int = 0

    def elapsed_days(self, now: Optional[float] = None) -> int:
        if now is None:
            now = time.time()
        return max(0, int(now - self.start_time) // SECONDS_PER_DAY)

    def is_period_complete(self, now: Optional[float] = None) -> bool:
        return self.elapsed_days(now) >= self.duration_days

    @property
    def maturity_time(self) -> float:
        return self.start_time + self.duration_days * SECONDS_PER_DAY

    def to_dict(self, now: Optional[float] = None) -> dict:
        if now is None:
            now = time.time()
        if not self.active:
            status = "Closed"
        elif self.is_period_complete(now):
            status = "Complete"
        else:
            status = "Active"
        d = {
            "account": self.account,
            "amount": self.amount,
            "duration_days": self.duration_days,
            "start_time": self.start_time,
            "maturity_time": self.maturity_time,
            "shares": self.shares,
            "earned_yield": self.earned_yield,
            "active": self.active,
            "closed_time": self.closed_time,
            "closure_kind": self.closure_kind,
            "payout": self.payout,
            "penalty": self.penalty,
            "status": status,
        }
        if self.active:
            d["elapsed_days"] = self.elapsed_days(now)
        return d


# ── StakeLedger ─────────────────────────────────────────────────────────

class StakeLedger:
    """
    Active stakes keyed by account, plus closed-stake history.

    The ledger only validates and records; bonus maths, share minting and
    custody transfers are orchestrated by the engine.
    """

    def __init__(self, limits: Optional[StakeLimits] = None) -> None:
        self.active: dict[str, StakeRecord] = {}
        self.history: dict[str, list[StakeRecord]] = {}
        self.limits = limits or StakeLimits()

    # ── lifecycle ───────────────────────────────────────────────────

    def check_can_open(self, account: str, amount: int, days: int) -> None:
        if not account:
            raise InvalidInput("account required")
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise InvalidInput("amount must be a positive integer")
        if not isinstance(days, int) or isinstance(days, bool) or days <= 0:
            raise InvalidInput("duration must be a positive number of days")
        self.limits.check(amount, days)
        if account in self.active:
            raise AlreadyActive(f"account {account} already has an active stake")

    def record(self, stake: StakeRecord) -> StakeRecord:
        if stake.account in self.active:
            raise AlreadyActive(f"account {stake.account} already has an active stake")
        self.active[stake.account] = stake
        return stake

    def get_active(self, account: str) -> StakeRecord:
        stake = self.active.get(account)
        if stake is None:
            raise NoActiveStake(f"account {account} has no active stake")
        return stake

    def close(
        self,
        account: str,
        kind: str,
        earned_yield: int,
        payout: int,
        penalty: int,
        now: float,
    ) -> StakeRecord:
        stake = self.get_active(account)
        stake.active = False
        stake.closed_time = now
        stake.closure_kind = kind
        stake.earned_yield = earned_yield
        stake.payout = payout
        stake.penalty = penalty
        del self.active[account]
        self.history.setdefault(account, []).append(stake)
        return stake

    # ── queries ─────────────────────────────────────────────────────

    def elapsed_days(self, account: str, now: Optional[float] = None) -> int:
        return self.get_active(account).elapsed_days(now)

    def is_period_complete(self, account: str, now: Optional[float] = None) -> bool:
        return self.get_active(account).is_period_complete(now)

    def get_stake(self, account: str) -> Optional[StakeRecord]:
        """Active stake, else the most recently closed one, else None."""
        stake = self.active.get(account)
        if stake is not None:
            return stake
        past = self.history.get(account)
        return past[-1] if past else None

    def get_history(self, account: str) -> list[StakeRecord]:
        return list(self.history.get(account, []))

    def active_shares_sum(self) -> int:
        return sum(s.shares for s in self.active.values())

    def active_principal_sum(self) -> int:
        return sum(s.amount for s in self.active.values())

    @property
    def active_count(self) -> int:
        return len(self.active)

    @property
    def total_stakes(self) -> int:
        return len(self.active) + sum(len(h) for h in self.history.values())
