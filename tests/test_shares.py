"""
Tests for sharestake_core.shares — share supply and the price ratchet.
"""

import pytest

from sharestake_core.errors import InvalidShareCount
from sharestake_core.precision import SHARE_SCALE, tokens_to_units
from sharestake_core.shares import (
    INITIAL_SHARE_PRICE,
    PRICE_QUANTITY_CAP,
    PRICE_QUANTITY_DIVISOR,
    PRICE_TIME_DIVISOR,
    ShareAccount,
    _time_component,
    candidate_price,
)


class TestTimeComponent:
    @pytest.mark.parametrize("days,expected", [
        (0, 1), (1, 1), (2, 1), (365, 364), (3641, 3640), (10_000, 3640),
    ])
    def test_values(self, days, expected):
        assert _time_component(days) == expected


class TestCandidatePrice:
    def test_formula(self):
        paid = tokens_to_units(100_000)
        shares = 12 * 10 ** 18
        numerator = (PRICE_QUANTITY_DIVISOR + min(paid, PRICE_QUANTITY_CAP)) * paid * SHARE_SCALE
        denominator = (PRICE_TIME_DIVISOR * shares // (PRICE_TIME_DIVISOR + 364)) * PRICE_QUANTITY_DIVISOR
        assert candidate_price(paid, shares, 365) == numerator // denominator

    def test_zero_shares_rejected(self):
        with pytest.raises(InvalidShareCount):
            candidate_price(1000, 0, 10)

    def test_tiny_share_count_rejected(self):
        # 1820 * 1 // 1821 == 0 -> zero denominator
        with pytest.raises(InvalidShareCount):
            candidate_price(1000, 1, 2)

    def test_zero_payout_prices_at_zero(self):
        assert candidate_price(0, 10 ** 18, 10) == 0


class TestShareAccount:
    def test_defaults(self):
        acct = ShareAccount()
        assert acct.total_shares == 0
        assert acct.share_price == INITIAL_SHARE_PRICE

    def test_mint_and_burn(self):
        acct = ShareAccount()
        acct.mint(500)
        acct.burn(200)
        assert acct.total_shares == 300

    @pytest.mark.parametrize("n", [0, -5])
    def test_mint_rejects_non_positive(self, n):
        with pytest.raises(InvalidShareCount):
            ShareAccount().mint(n)

    def test_burn_more_than_supply(self):
        acct = ShareAccount(total_shares=10)
        with pytest.raises(InvalidShareCount):
            acct.burn(11)
        assert acct.total_shares == 10

    def test_ratchet_raises_price(self):
        acct = ShareAccount()
        paid = tokens_to_units(100_000)
        # roughly what 100k tokens for 365 days mints at the initial price
        shares = 12_000_000_066_666_666_666
        assert acct.ratchet(paid, shares, 365) is True
        assert acct.share_price > INITIAL_SHARE_PRICE

    def test_ratchet_never_lowers_price(self):
        acct = ShareAccount()
        assert acct.ratchet(tokens_to_units(1), 10 ** 30, 10) is False
        assert acct.share_price == INITIAL_SHARE_PRICE

    def test_ratchet_zero_shares_keeps_price(self):
        acct = ShareAccount(total_shares=0)
        with pytest.raises(InvalidShareCount):
            acct.ratchet(1000, 0, 10)
        assert acct.share_price == INITIAL_SHARE_PRICE

    def test_to_dict(self):
        assert ShareAccount(total_shares=7, share_price=3).to_dict() == {
            "total_shares": 7,
            "share_price": 3,
        }
