"""
Shared pytest fixtures for the ShareStake test suite.
"""

import pytest

from helpers import ADMIN_FUNDED, FUNDED
from sharestake_core.custody import InMemoryCustody
from sharestake_core.engine import StakingEngine


@pytest.fixture
def custody():
    """Custody with no reserve: two funded stakers and a funded admin for top-ups."""
    c = InMemoryCustody()
    c.fund("alice", FUNDED)
    c.fund("bob", FUNDED)
    c.fund("admin", ADMIN_FUNDED)
    return c


@pytest.fixture
def engine(custody):
    """Engine administered by ``admin`` with a separate treasury account."""
    return StakingEngine(custody, "admin", "treasury")
