"""
Reward pool and pool-proportional yield accrual.

The pool is replenished by a privileged daily top-up of 0.01 % of the
caller-supplied circulating supply, and by the pool leg of every penalty.
Every credit is spread over the shares outstanding at that moment through
a cumulative yield-per-share accumulator:

    acc_yield_per_share += credited × ACC_SCALE / total_shares

A stake records the accumulator value when it is opened; its accrued
yield at any later point is

    shares × (acc_yield_per_share − checkpoint) / ACC_SCALE

Accrual is pull-based: nothing is written per stake until closure, when
the accrued value is settled into the stake's ``earned_yield`` and
removed from the pool balance.  Credits made while no shares exist stay
in the pool undistributed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

ACC_SCALE: int = 10 ** 18

# 1 / 10 000 of the current supply per top-up (0.01 %)
TOP_UP_DIVISOR: int = 10_000


def daily_top_up_amount(current_supply: int) -> int:
    return current_supply // TOP_UP_DIVISOR


@dataclass
class RewardPool:
    balance: int = 0
    last_top_up: float = 0.0
    acc_yield_per_share: int = 0
    total_topped_up: int = 0

    def credit(self, amount: int, total_shares: int) -> None:
        """Add *amount* to the pool and distribute it over *total_shares*."""
        if amount <= 0:
            return
        self.balance += amount
        if total_shares > 0:
            self.acc_yield_per_share += amount * ACC_SCALE // total_shares

    def top_up(self, current_supply: int, total_shares: int, now: float) -> int:
        added = daily_top_up_amount(current_supply)
        self.credit(added, total_shares)
        self.total_topped_up += added
        self.last_top_up = now
        return added

    def accrued_for(self, shares: int, checkpoint: int) -> int:
        return shares * (self.acc_yield_per_share - checkpoint) // ACC_SCALE

    def release(self, amount: int) -> None:
        """Remove settled yield from the undistributed balance."""
        if amount > self.balance:
            raise ValueError(
                f"cannot release {amount} from pool balance {self.balance}"
            )
        self.balance -= amount

    def projected_yield(self, shares: int, total_shares: int) -> int:
        """Informational share of the whole pool; not what a closure pays."""
        if total_shares <= 0 or shares <= 0:
            return 0
        return self.balance * shares // total_shares

    def to_dict(self, now: Optional[float] = None) -> dict:
        d = {
            "balance": self.balance,
            "last_top_up": self.last_top_up,
            "acc_yield_per_share": self.acc_yield_per_share,
            "total_topped_up": self.total_topped_up,
        }
        if now is not None and self.last_top_up:
            d["seconds_since_top_up"] = max(0.0, now - self.last_top_up)
        return d
