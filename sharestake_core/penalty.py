"""
Closure payouts and penalties.

Early closure (before the natural duration has elapsed)
───────────────────────────────────────────────────────
Short stakes (duration < 180 days), by elapsed days ``e``, earned yield ``E``:

    e == 0        no penalty, full yield returned
    0 < e < 90    penalty = E × 50 / e   (capped at E), rest of E returned
    e == 90       full yield forfeited
    e > 90        daily = E / e, kept = daily × (e − 90), penalty = E − kept

  Principal is always returned in full.

Long stakes (duration ≥ 180 days), ``half = duration / 2``:

    e == 0        no penalty, full principal, no yield
    e < half      principal penalty = 20 % of principal;
                  penalty = E + principal penalty; no yield
    e == half     full yield forfeited, full principal
    e > half      daily = E / e, kept = daily × (e − half),
                  penalty = E − kept; full principal + kept

Scheduled closure (natural duration elapsed)
────────────────────────────────────────────
  overdue ≤ 14 days     no penalty
  otherwise             late_days = min(overdue − 14, 800)
                        penalty = (principal + E) × 0.125 % × late_days
  taken from yield first, then principal; payout is never negative.

Every penalty is split 25 % burn / 50 % reward pool / 25 % treasury; the
pool receives the rounding remainder.
"""

from __future__ import annotations

from dataclasses import dataclass

# ── Early-closure parameters ────────────────────────────────────────────

LONG_STAKE_MIN_DAYS: int = 180
SHORT_STAKE_PENALTY_WINDOW: int = 90
SHORT_STAKE_PENALTY_FACTOR: int = 50
PRINCIPAL_PENALTY_PCT: int = 20

# ── Late-closure parameters ─────────────────────────────────────────────

GRACE_PERIOD_DAYS: int = 14
LATE_PENALTY_RATE: int = 125            # per LATE_PENALTY_DENOMINATOR per day
LATE_PENALTY_DENOMINATOR: int = 100_000
MAX_LATE_PENALTY_DAYS: int = 800

# ── Penalty distribution (percent) ──────────────────────────────────────

BURN_PCT: int = 25
POOL_PCT: int = 50
TREASURY_PCT: int = 25


@dataclass(frozen=True)
class PenaltySplit:
    burn: int
    pool: int
    treasury: int


def split_penalty(penalty: int) -> PenaltySplit:
    burn = penalty * BURN_PCT // 100
    treasury = penalty * TREASURY_PCT // 100
    return PenaltySplit(burn=burn, pool=penalty - burn - treasury, treasury=treasury)


@dataclass(frozen=True)
class ClosureQuote:
    """
    Outcome of closing a stake.

    ``yield_retained`` is earned yield that is neither paid out nor
    penalised; it simply stays in the reward pool.
    """
    principal: int
    earned_yield: int
    principal_returned: int
    yield_returned: int
    principal_forfeited: int
    yield_forfeited: int
    yield_retained: int = 0

    @property
    def penalty(self) -> int:
        return self.principal_forfeited + self.yield_forfeited

    @property
    def payout(self) -> int:
        return self.principal_returned + self.yield_returned

    @property
    def split(self) -> PenaltySplit:
        return split_penalty(self.penalty)

    def to_dict(self) -> dict:
        split = self.split
        return {
            "principal": self.principal,
            "earned_yield": self.earned_yield,
            "principal_returned": self.principal_returned,
            "yield_returned": self.yield_returned,
            "principal_forfeited": self.principal_forfeited,
            "yield_forfeited": self.yield_forfeited,
            "yield_retained": self.yield_retained,
            "penalty": self.penalty,
            "payout": self.payout,
            "penalty_burn": split.burn,
            "penalty_pool": split.pool,
            "penalty_treasury": split.treasury,
        }


def _quote(principal, earned, *, principal_back, yield_back, retained=0) -> ClosureQuote:
    return ClosureQuote(
        principal=principal,
        earned_yield=earned,
        principal_returned=principal_back,
        yield_returned=yield_back,
        principal_forfeited=principal - principal_back,
        yield_forfeited=earned - yield_back - retained,
        yield_retained=retained,
    )


def _yield_kept_after(earned: int, elapsed: int, threshold: int) -> int:
    """Yield accrued after day *threshold* at the stake's average daily rate."""
    daily = earned // elapsed
    return daily * (elapsed - threshold)


def short_stake_early_quote(principal: int, earned: int, elapsed: int) -> ClosureQuote:
    if elapsed == 0:
        return _quote(principal, earned, principal_back=principal, yield_back=earned)
    if elapsed < SHORT_STAKE_PENALTY_WINDOW:
        penalty = min(earned * SHORT_STAKE_PENALTY_FACTOR // elapsed, earned)
        return _quote(principal, earned, principal_back=principal,
                      yield_back=earned - penalty)
    if elapsed == SHORT_STAKE_PENALTY_WINDOW:
        return _quote(principal, earned, principal_back=principal, yield_back=0)
    kept = _yield_kept_after(earned, elapsed, SHORT_STAKE_PENALTY_WINDOW)
    return _quote(principal, earned, principal_back=principal, yield_back=kept)


def long_stake_early_quote(
    principal: int, earned: int, elapsed: int, duration: int,
) -> ClosureQuote:
    half = duration // 2
    if elapsed == 0:
        return _quote(principal, earned, principal_back=principal, yield_back=0,
                      retained=earned)
    if elapsed < half:
        principal_penalty = principal * PRINCIPAL_PENALTY_PCT // 100
        return _quote(principal, earned, principal_back=principal - principal_penalty,
                      yield_back=0)
    if elapsed == half:
        return _quote(principal, earned, principal_back=principal, yield_back=0)
    kept = _yield_kept_after(earned, elapsed, half)
    return _quote(principal, earned, principal_back=principal, yield_back=kept)


def early_closure_quote(
    principal: int, earned: int, elapsed: int, duration: int,
) -> ClosureQuote:
    """Quote for closing before ``elapsed`` reaches ``duration``."""
    if elapsed < 0 or elapsed >= duration:
        raise ValueError(f"early closure needs 0 <= elapsed < duration ({elapsed}/{duration})")
    if duration < LONG_STAKE_MIN_DAYS:
        return short_stake_early_quote(principal, earned, elapsed)
    return long_stake_early_quote(principal, earned, elapsed, duration)


def late_penalty(principal: int, earned: int, days_overdue: int) -> int:
    """Late penalty before capping at the total payout."""
    if days_overdue <= GRACE_PERIOD_DAYS:
        return 0
    late_days = min(days_overdue - GRACE_PERIOD_DAYS, MAX_LATE_PENALTY_DAYS)
    return (principal + earned) * LATE_PENALTY_RATE * late_days // LATE_PENALTY_DENOMINATOR


def scheduled_closure_quote(
    principal: int, earned: int, elapsed: int, duration: int,
) -> ClosureQuote:
    """Quote for closing once the natural duration has elapsed."""
    if elapsed < duration:
        raise ValueError(f"scheduled closure needs elapsed >= duration ({elapsed}/{duration})")
    penalty = min(late_penalty(principal, earned, elapsed - duration), principal + earned)
    from_yield = min(penalty, earned)
    from_principal = penalty - from_yield
    return _quote(principal, earned,
                  principal_back=principal - from_principal,
                  yield_back=earned - from_yield)
