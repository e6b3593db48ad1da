"""
Pre-operation snapshots and post-operation invariant checks.

Every state-changing engine operation captures an ``EngineSnapshot``
before mutating anything.  If the operation fails part-way (custody
refuses a payout, an invariant check fails) the snapshot is restored and
the error re-raised, so a failed operation leaves no trace.

The snapshot only covers the global aggregates and the one account the
operation touches; it never copies the full stake table.

Invariants checked after each operation:
  - share price never decreases
  - total shares, pool balance, treasury and burn totals are non-negative
  - total staked principal is non-negative

``check_share_supply`` additionally verifies that total shares equals the
sum over active stakes.  It walks every active stake, so it is run on
load and by tests rather than per operation.  ``check_solvency`` compares
the books against the custodied balance and is run on restore.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from sharestake_core.engine import EngineState
    from sharestake_core.staking import StakeRecord


@dataclass
class EngineSnapshot:
    """Copy of the global aggregates plus one account's stake state."""
    share_price: int = 0
    total_shares: int = 0
    pool_fields: dict = field(default_factory=dict)
    total_staked: int = 0
    treasury_balance: int = 0
    total_burned: int = 0
    total_yield_paid: int = 0
    total_penalties: int = 0
    paused: bool = False
    account: Optional[str] = None
    active_stake: Optional[StakeRecord] = None
    history_len: int = 0

    @classmethod
    def capture(cls, state: EngineState, account: Optional[str] = None) -> EngineSnapshot:
        snap = cls(
            share_price=state.shares.share_price,
            total_shares=state.shares.total_shares,
            pool_fields=dataclasses.asdict(state.pool),
            total_staked=state.total_staked,
            treasury_balance=state.treasury_balance,
            total_burned=state.total_burned,
            total_yield_paid=state.total_yield_paid,
            total_penalties=state.total_penalties,
            paused=state.paused,
            account=account,
        )
        if account is not None:
            stake = state.ledger.active.get(account)
            if stake is not None:
                snap.active_stake = dataclasses.replace(stake)
            snap.history_len = len(state.ledger.history.get(account, []))
        return snap

    def restore(self, state: EngineState) -> None:
        state.shares.share_price = self.share_price
        state.shares.total_shares = self.total_shares
        for name, value in self.pool_fields.items():
            setattr(state.pool, name, value)
        state.total_staked = self.total_staked
        state.treasury_balance = self.treasury_balance
        state.total_burned = self.total_burned
        state.total_yield_paid = self.total_yield_paid
        state.total_penalties = self.total_penalties
        state.paused = self.paused
        if self.account is None:
            return
        ledger = state.ledger
        if self.active_stake is not None:
            ledger.active[self.account] = self.active_stake
        else:
            ledger.active.pop(self.account, None)
        past = ledger.history.get(self.account)
        if past is not None:
            del past[self.history_len:]
            if not past:
                del ledger.history[self.account]


class InvariantChecker:
    """Validates engine invariants against a captured snapshot."""

    def __init__(self) -> None:
        self._snapshot: EngineSnapshot | None = None

    def capture(self, snapshot: EngineSnapshot) -> None:
        self._snapshot = snapshot

    def verify(self, state: EngineState) -> tuple[bool, str]:
        errors: list[str] = []
        snap = self._snapshot

        if snap is not None and state.shares.share_price < snap.share_price:
            errors.append(
                f"Share price decreased: {snap.share_price} -> {state.shares.share_price}"
            )
        for name, value in (
            ("total_shares", state.shares.total_shares),
            ("pool_balance", state.pool.balance),
            ("treasury_balance", state.treasury_balance),
            ("total_burned", state.total_burned),
            ("total_staked", state.total_staked),
        ):
            if value < 0:
                errors.append(f"{name} is negative: {value}")
        if state.shares.share_price <= 0:
            errors.append(f"Share price not positive: {state.shares.share_price}")

        if errors:
            return False, "; ".join(errors)
        return True, ""

    @staticmethod
    def check_share_supply(state: EngineState) -> tuple[bool, str]:
        expected = state.ledger.active_shares_sum()
        if expected != state.shares.total_shares:
            return False, (
                f"Total shares {state.shares.total_shares} != "
                f"sum of active stake shares {expected}"
            )
        principal = state.ledger.active_principal_sum()
        if principal != state.total_staked:
            return False, (
                f"Total staked {state.total_staked} != "
                f"sum of active principal {principal}"
            )
        return True, ""

    @staticmethod
    def check_solvency(state: EngineState, custodied: int) -> tuple[bool, str]:
        owed = state.total_staked + state.pool.balance + state.treasury_balance
        if custodied < owed:
            return False, f"Custody holds {custodied} but {owed} is owed"
        return True, ""
