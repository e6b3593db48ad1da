"""Tests for the snapshot / invariant checker module."""

import pytest

from helpers import T0
from sharestake_core.engine import EngineState
from sharestake_core.invariants import EngineSnapshot, InvariantChecker
from sharestake_core.staking import StakeRecord


@pytest.fixture
def state():
    st = EngineState(admin="admin", treasury_account="treasury")
    stake = StakeRecord(account="alice", amount=1_000, duration_days=30,
                        start_time=T0, shares=400)
    st.ledger.record(stake)
    st.shares.total_shares = 400
    st.total_staked = 1_000
    st.pool.balance = 50
    return st


@pytest.fixture
def checker():
    return InvariantChecker()


class TestEngineSnapshot:
    def test_restore_globals(self, state):
        snap = EngineSnapshot.capture(state)
        state.shares.share_price += 1
        state.pool.balance = 0
        state.pool.acc_yield_per_share = 99
        state.treasury_balance = 7
        state.paused = True
        snap.restore(state)
        assert state.pool.balance == 50
        assert state.pool.acc_yield_per_share == 0
        assert state.treasury_balance == 0
        assert state.paused is False

    def test_restore_reopens_closed_stake(self, state):
        snap = EngineSnapshot.capture(state, "alice")
        state.ledger.close("alice", "early", 0, 1_000, 0, T0)
        state.shares.total_shares = 0
        snap.restore(state)
        stake = state.ledger.active["alice"]
        assert stake.active
        assert stake.closure_kind == ""
        assert "alice" not in state.ledger.history

    def test_restore_removes_new_stake(self, state):
        snap = EngineSnapshot.capture(state, "bob")
        state.ledger.record(StakeRecord(account="bob", amount=5, duration_days=1,
                                        start_time=T0, shares=5))
        snap.restore(state)
        assert "bob" not in state.ledger.active

    def test_restore_keeps_older_history(self, state):
        state.ledger.close("alice", "early", 0, 1_000, 0, T0)
        state.ledger.record(StakeRecord(account="alice", amount=9, duration_days=1,
                                        start_time=T0, shares=9))
        snap = EngineSnapshot.capture(state, "alice")
        state.ledger.close("alice", "scheduled", 0, 9, 0, T0)
        snap.restore(state)
        assert len(state.ledger.history["alice"]) == 1
        assert state.ledger.active["alice"].amount == 9


class TestInvariantChecker:
    def test_clean_state_passes(self, state, checker):
        checker.capture(EngineSnapshot.capture(state))
        assert checker.verify(state) == (True, "")

    def test_price_decrease_detected(self, state, checker):
        checker.capture(EngineSnapshot.capture(state))
        state.shares.share_price -= 1
        ok, msg = checker.verify(state)
        assert not ok
        assert "decreased" in msg

    def test_negative_total_detected(self, state, checker):
        checker.capture(EngineSnapshot.capture(state))
        state.pool.balance = -1
        ok, msg = checker.verify(state)
        assert not ok
        assert "pool_balance" in msg

    def test_share_supply(self, state):
        assert InvariantChecker.check_share_supply(state) == (True, "")
        state.shares.total_shares += 1
        ok, msg = InvariantChecker.check_share_supply(state)
        assert not ok
        assert "Total shares" in msg

    def test_principal_sum(self, state):
        state.total_staked = 1
        ok, msg = InvariantChecker.check_share_supply(state)
        assert not ok
        assert "Total staked" in msg

    def test_solvency(self, state):
        # owed: 1_000 principal + 50 pool + 25 treasury
        state.treasury_balance = 25
        assert InvariantChecker.check_solvency(state, 1_075) == (True, "")
        ok, msg = InvariantChecker.check_solvency(state, 1_074)
        assert not ok
        assert "1075 is owed" in msg
