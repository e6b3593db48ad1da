"""Shared constants and time helpers for the ShareStake test suite."""

from sharestake_core.precision import SECONDS_PER_DAY, tokens_to_units

T0 = 1_700_000_000.0
DAY = SECONDS_PER_DAY
SUPPLY = tokens_to_units(1_000_000_000)
FUNDED = tokens_to_units(1_000_000)
ADMIN_FUNDED = tokens_to_units(10_000_000)


def at(days: int) -> float:
    """Timestamp *days* whole days after ``T0``."""
    return T0 + days * DAY
