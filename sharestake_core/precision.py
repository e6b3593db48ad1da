"""
Precision constants and helpers for ShareStake.

All principal, yield and penalty amounts are integer base units with
18 decimal places:

    1 token = 10**18 units (smallest indivisible unit)

Shares use the same scale, so a share price is "units of principal per
10**18 share units".
"""

from __future__ import annotations

# Number of decimal places for principal amounts.
TOKEN_DECIMALS: int = 18

# Base units per whole token.
UNITS_PER_TOKEN: int = 10 ** TOKEN_DECIMALS

# Fixed-point scale used for share counts and prices.
SHARE_SCALE: int = 10 ** 18

SECONDS_PER_DAY: int = 86_400


def tokens_to_units(tokens: int | str) -> int:
    """Convert a whole-token amount (int or decimal string) to base units.

    >>> tokens_to_units(2)
    2000000000000000000
    >>> tokens_to_units("0.5")
    500000000000000000
    """
    if isinstance(tokens, int):
        return tokens * UNITS_PER_TOKEN
    whole, _, frac = str(tokens).strip().partition(".")
    if len(frac) > TOKEN_DECIMALS:
        raise ValueError(f"more than {TOKEN_DECIMALS} decimal places: {tokens}")
    frac = frac.ljust(TOKEN_DECIMALS, "0")
    return int(whole or "0") * UNITS_PER_TOKEN + int(frac or "0")


def units_to_tokens(units: int) -> str:
    """Render *units* as an exact decimal token string."""
    whole, frac = divmod(units, UNITS_PER_TOKEN)
    if frac == 0:
        return str(whole)
    return f"{whole}.{str(frac).rjust(TOKEN_DECIMALS, '0').rstrip('0')}"


def format_amount(units: int, symbol: str = "STK") -> str:
    """Return a human-readable amount string."""
    return f"{units_to_tokens(units)} {symbol}"
