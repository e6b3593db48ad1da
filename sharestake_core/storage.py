"""
SQLite-based persistence for staking engine state.

Stores every stake record (active and closed), the global totals (total
shares, share price, reward pool, treasury, limits …) and, for the
bundled in-memory custody, the account balances backing those books, so
that a service can recover after restart.

Amounts routinely exceed SQLite's 64-bit INTEGER range (18-decimal base
units), so every amount column is stored as decimal TEXT.

Usage:
    store = StakeStore("data/sharestake.db")
    store.save_state(engine.state, custody=custody)
    ...
    custody = store.load_custody()
    state = store.load_state()
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Any, Optional

from sharestake_core.custody import InMemoryCustody
from sharestake_core.engine import EngineState
from sharestake_core.invariants import InvariantChecker
from sharestake_core.reward_pool import RewardPool
from sharestake_core.shares import ShareAccount
from sharestake_core.staking import StakeLedger, StakeLimits, StakeRecord

logger = logging.getLogger("sharestake.storage")

_INT_GLOBALS = (
    "share_price",
    "total_shares",
    "pool_balance",
    "acc_yield_per_share",
    "total_topped_up",
    "total_staked",
    "treasury_balance",
    "total_burned",
    "total_yield_paid",
    "total_penalties",
    "min_amount",
    "max_amount",
    "min_days",
    "max_days",
)


class StakeStore:
    """Thin SQLite wrapper for persisting engine state."""

    CURRENT_SCHEMA_VERSION = 2

    def __init__(self, db_path: str = "data/sharestake.db"):
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA busy_timeout = 5000")
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._create_tables()
        self._ensure_schema_version()
        logger.info(f"Storage opened: {db_path}")

    # ── schema ───────────────────────────────────────────────────

    def _create_tables(self) -> None:
        c = self._conn
        c.execute("""
            CREATE TABLE IF NOT EXISTS stakes (
                id               INTEGER PRIMARY KEY AUTOINCREMENT,
                account          TEXT NOT NULL,
                amount           TEXT NOT NULL,
                duration_days    INTEGER NOT NULL,
                start_time       REAL NOT NULL,
                shares           TEXT NOT NULL,
                yield_checkpoint TEXT NOT NULL DEFAULT '0',
                earned_yield     TEXT NOT NULL DEFAULT '0',
                active           INTEGER NOT NULL DEFAULT 1,
                closed_time      REAL NOT NULL DEFAULT 0,
                closure_kind     TEXT NOT NULL DEFAULT '',
                payout           TEXT NOT NULL DEFAULT '0',
                penalty          TEXT NOT NULL DEFAULT '0'
            )
        """)
        c.execute("""
            CREATE UNIQUE INDEX IF NOT EXISTS one_active_stake_per_account
            ON stakes (account) WHERE active = 1
        """)
        c.execute("""
            CREATE TABLE IF NOT EXISTS globals (
                name  TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
        c.execute("""
            CREATE TABLE IF NOT EXISTS custody_accounts (
                account TEXT PRIMARY KEY,
                balance TEXT NOT NULL
            )
        """)
        c.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                id      INTEGER PRIMARY KEY CHECK (id = 1),
                version INTEGER NOT NULL
            )
        """)
        c.commit()

    def _ensure_schema_version(self) -> None:
        row = self._conn.execute(
            "SELECT version FROM schema_version WHERE id = 1"
        ).fetchone()
        if row is None:
            self._conn.execute(
                "INSERT INTO schema_version (id, version) VALUES (1, ?)",
                (self.CURRENT_SCHEMA_VERSION,),
            )
            self._conn.commit()
        elif row["version"] > self.CURRENT_SCHEMA_VERSION:
            raise RuntimeError(
                f"Database schema v{row['version']} is newer than this software "
                f"(v{self.CURRENT_SCHEMA_VERSION}).  Upgrade ShareStake."
            )
        elif row["version"] < self.CURRENT_SCHEMA_VERSION:
            # v1 -> v2 only adds custody_accounts, created above
            logger.info(
                f"Upgrading schema v{row['version']} -> v{self.CURRENT_SCHEMA_VERSION}"
            )
            self._conn.execute(
                "UPDATE schema_version SET version = ? WHERE id = 1",
                (self.CURRENT_SCHEMA_VERSION,),
            )
            self._conn.commit()

    @property
    def schema_version(self) -> int:
        row = self._conn.execute(
            "SELECT version FROM schema_version WHERE id = 1"
        ).fetchone()
        return int(row["version"])

    # ── save ─────────────────────────────────────────────────────

    @staticmethod
    def _stake_row(s: StakeRecord) -> tuple:
        return (
            s.account, str(s.amount), s.duration_days, s.start_time,
            str(s.shares), str(s.yield_checkpoint), str(s.earned_yield),
            int(s.active), s.closed_time, s.closure_kind,
            str(s.payout), str(s.penalty),
        )

    def save_state(
        self, state: EngineState, custody: Optional[InMemoryCustody] = None,
    ) -> None:
        """
        Replace the stored state with *state* in one transaction.

        When *custody* is given its balances are written in the same
        transaction, so the books and the funds backing them never diverge
        on disk.
        """
        ledger = state.ledger
        limits = ledger.limits
        values: dict[str, Any] = {
            "admin": state.admin,
            "treasury_account": state.treasury_account,
            "paused": int(state.paused),
            "last_top_up": repr(state.pool.last_top_up),
            "share_price": state.shares.share_price,
            "total_shares": state.shares.total_shares,
            "pool_balance": state.pool.balance,
            "acc_yield_per_share": state.pool.acc_yield_per_share,
            "total_topped_up": state.pool.total_topped_up,
            "total_staked": state.total_staked,
            "treasury_balance": state.treasury_balance,
            "total_burned": state.total_burned,
            "total_yield_paid": state.total_yield_paid,
            "total_penalties": state.total_penalties,
            "min_amount": limits.min_amount,
            "max_amount": limits.max_amount,
            "min_days": limits.min_days,
            "max_days": limits.max_days,
        }
        rows = [
            self._stake_row(s)
            for account in sorted(ledger.history)
            for s in ledger.history[account]
        ]
        rows.extend(self._stake_row(ledger.active[a]) for a in sorted(ledger.active))

        with self._conn:
            self._conn.execute("DELETE FROM stakes")
            self._conn.executemany(
                """INSERT INTO stakes
                   (account, amount, duration_days, start_time, shares,
                    yield_checkpoint, earned_yield, active, closed_time,
                    closure_kind, payout, penalty)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                rows,
            )
            self._conn.executemany(
                "INSERT OR REPLACE INTO globals (name, value) VALUES (?, ?)",
                [(k, str(v)) for k, v in values.items()],
            )
            if custody is not None:
                self._conn.execute("DELETE FROM custody_accounts")
                self._conn.executemany(
                    "INSERT INTO custody_accounts (account, balance) VALUES (?, ?)",
                    [(a, str(b)) for a, b in sorted(custody.accounts.items())],
                )
                self._conn.execute(
                    "INSERT OR REPLACE INTO globals (name, value) VALUES ('custodied', ?)",
                    (str(custody.custodied),),
                )
        logger.debug(f"Saved {len(rows)} stake record(s)")

    # ── load ─────────────────────────────────────────────────────

    def load_globals(self) -> dict[str, str]:
        rows = self._conn.execute("SELECT name, value FROM globals").fetchall()
        return {r["name"]: r["value"] for r in rows}

    def load_stakes(self) -> list[StakeRecord]:
        rows = self._conn.execute("SELECT * FROM stakes ORDER BY id").fetchall()
        return [
            StakeRecord(
                account=r["account"],
                amount=int(r["amount"]),
                duration_days=r["duration_days"],
                start_time=r["start_time"],
                shares=int(r["shares"]),
                yield_checkpoint=int(r["yield_checkpoint"]),
                earned_yield=int(r["earned_yield"]),
                active=bool(r["active"]),
                closed_time=r["closed_time"],
                closure_kind=r["closure_kind"],
                payout=int(r["payout"]),
                penalty=int(r["penalty"]),
            )
            for r in rows
        ]

    def load_state(self) -> Optional[EngineState]:
        """Rebuild an ``EngineState``; None when nothing has been saved yet."""
        g = self.load_globals()
        if not g:
            return None
        n = {k: int(g[k]) for k in _INT_GLOBALS}

        ledger = StakeLedger(StakeLimits(
            min_amount=n["min_amount"],
            max_amount=n["max_amount"],
            min_days=n["min_days"],
            max_days=n["max_days"],
        ))
        for stake in self.load_stakes():
            if stake.active:
                ledger.record(stake)
            else:
                ledger.history.setdefault(stake.account, []).append(stake)

        state = EngineState(
            admin=g["admin"],
            treasury_account=g["treasury_account"],
            shares=ShareAccount(total_shares=n["total_shares"], share_price=n["share_price"]),
            pool=RewardPool(
                balance=n["pool_balance"],
                last_top_up=float(g["last_top_up"]),
                acc_yield_per_share=n["acc_yield_per_share"],
                total_topped_up=n["total_topped_up"],
            ),
            ledger=ledger,
            total_staked=n["total_staked"],
            treasury_balance=n["treasury_balance"],
            total_burned=n["total_burned"],
            total_yield_paid=n["total_yield_paid"],
            total_penalties=n["total_penalties"],
            paused=bool(int(g["paused"])),
        )
        ok, msg = InvariantChecker.check_share_supply(state)
        if not ok:
            raise RuntimeError(f"Stored state is inconsistent: {msg}")
        logger.info(
            f"Loaded {ledger.active_count} active stake(s), "
            f"share price {state.shares.share_price}"
        )
        return state

    def load_custody(self) -> Optional[InMemoryCustody]:
        """Rebuild the saved in-memory custody; None when none was saved."""
        g = self.load_globals()
        if "custodied" not in g:
            return None
        custody = InMemoryCustody(custodied=int(g["custodied"]))
        rows = self._conn.execute(
            "SELECT account, balance FROM custody_accounts"
        ).fetchall()
        custody.accounts = {r["account"]: int(r["balance"]) for r in rows}
        logger.info(f"Loaded custody holding {custody.custodied}")
        return custody

    def close(self) -> None:
        self._conn.close()
