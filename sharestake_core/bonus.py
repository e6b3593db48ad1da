"""
Stake bonuses applied to principal before share conversion.

Two independent uplifts reward a stake:

  1. **Quantity bonus** — rewards stake size, capped so that very large
     deposits cannot game it:

        quantity_bonus = min(amount, QUANTITY_BONUS_CAP) × 10 / 1 500 000 000

  2. **Time bonus** — rewards commitment length with a hard 3× ceiling:

        time_bonus = amount × (days − 1) / 1820       (0 when days ≤ 1)
                   ≤ amount × 3                        (reached at ≈3641 days)

  effective_tokens = amount + quantity_bonus + time_bonus
  shares           = effective_tokens × SHARE_SCALE / share_price

All divisions truncate toward zero.
"""

from __future__ import annotations

from sharestake_core.precision import SHARE_SCALE, UNITS_PER_TOKEN


# ── Quantity bonus ──────────────────────────────────────────────────────

QUANTITY_BONUS_CAP: int = 150_000_000 * UNITS_PER_TOKEN
QUANTITY_BONUS_MULTIPLIER: int = 10
QUANTITY_BONUS_DIVISOR: int = 1_500_000_000

# ── Time bonus ──────────────────────────────────────────────────────────

TIME_BONUS_DAYS_DIVISOR: int = 1820
TIME_BONUS_MAX_MULTIPLE: int = 3


def quantity_bonus(amount: int) -> int:
    """Size bonus; monotonic in *amount* and bounded by the capped base."""
    base = min(amount, QUANTITY_BONUS_CAP)
    return base * QUANTITY_BONUS_MULTIPLIER // QUANTITY_BONUS_DIVISOR


def max_quantity_bonus() -> int:
    return quantity_bonus(QUANTITY_BONUS_CAP)


def time_bonus(amount: int, days: int) -> int:
    """Commitment bonus; zero for one-day stakes, never above ``3 × amount``."""
    if days <= 1:
        return 0
    bonus = amount * (days - 1) // TIME_BONUS_DAYS_DIVISOR
    return min(bonus, amount * TIME_BONUS_MAX_MULTIPLE)


def effective_tokens(amount: int, days: int) -> int:
    return amount + quantity_bonus(amount) + time_bonus(amount, days)


def shares_for(amount: int, days: int, share_price: int) -> int:
    """Shares minted for a new stake at *share_price*."""
    if share_price <= 0:
        raise ValueError("share price must be positive")
    return effective_tokens(amount, days) * SHARE_SCALE // share_price
