"""
Global share supply and the ratcheting share price.

The share price is expressed in principal units per ``SHARE_SCALE`` share
units and only ever moves up.  After a scheduled closure a candidate
price is derived from what the stake actually paid out:

    numerator   = (QDIV + min(total_paid, QCAP)) × total_paid × SHARE_SCALE
    time_comp   = min(days_staked − 1, 3640)        (1 when days_staked ≤ 1)
    denominator = ⌊TDIV × shares / (TDIV + time_comp)⌋ × QDIV
    candidate   = numerator / denominator

and adopted only when it exceeds the current price.  Later entrants
therefore need more principal to mint the same share count.
"""

from __future__ import annotations

from dataclasses import dataclass

from sharestake_core.bonus import QUANTITY_BONUS_CAP, TIME_BONUS_DAYS_DIVISOR
from sharestake_core.errors import InvalidShareCount
from sharestake_core.precision import SHARE_SCALE, UNITS_PER_TOKEN

INITIAL_SHARE_PRICE: int = 10_000 * UNITS_PER_TOKEN

PRICE_QUANTITY_DIVISOR: int = 1_500_000_000 * UNITS_PER_TOKEN   # QDIV
PRICE_QUANTITY_CAP: int = QUANTITY_BONUS_CAP                     # QCAP
PRICE_TIME_DIVISOR: int = TIME_BONUS_DAYS_DIVISOR                # TDIV
MAX_TIME_COMPONENT: int = 3640


def _time_component(days_staked: int) -> int:
    if days_staked <= 1:
        return 1
    return min(days_staked - 1, MAX_TIME_COMPONENT)


def candidate_price(total_paid: int, shares: int, days_staked: int) -> int:
    """Price implied by a completed stake; raises ``InvalidShareCount``."""
    if shares <= 0:
        raise InvalidShareCount("cannot derive a share price from zero shares")
    numerator = (
        (PRICE_QUANTITY_DIVISOR + min(total_paid, PRICE_QUANTITY_CAP))
        * total_paid
        * SHARE_SCALE
    )
    time_comp = _time_component(days_staked)
    scaled_shares = PRICE_TIME_DIVISOR * shares // (PRICE_TIME_DIVISOR + time_comp)
    denominator = scaled_shares * PRICE_QUANTITY_DIVISOR
    if denominator == 0:
        raise InvalidShareCount(f"share count {shares} too small to price")
    return numerator // denominator


@dataclass
class ShareAccount:
    total_shares: int = 0
    share_price: int = INITIAL_SHARE_PRICE

    def mint(self, shares: int) -> None:
        if shares <= 0:
            raise InvalidShareCount(f"cannot mint {shares} shares")
        self.total_shares += shares

    def burn(self, shares: int) -> None:
        if shares <= 0 or shares > self.total_shares:
            raise InvalidShareCount(
                f"cannot burn {shares} of {self.total_shares} shares"
            )
        self.total_shares -= shares

    def ratchet(self, total_paid: int, shares: int, days_staked: int) -> bool:
        """Adopt the candidate price if it is higher; returns True on change."""
        candidate = candidate_price(total_paid, shares, days_staked)
        if candidate > self.share_price:
            self.share_price = candidate
            return True
        return False

    def to_dict(self) -> dict:
        return {
            "total_shares": self.total_shares,
            "share_price": self.share_price,
        }
