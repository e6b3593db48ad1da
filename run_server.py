#!/usr/bin/env python3
"""
ShareStake service runner — starts the staking engine behind the REST API.

  - Loads ``sharestake.toml`` (plus SHARESTAKE_* environment overrides)
  - Restores engine state and custody balances from SQLite when storage
    is enabled, refusing a restore whose custody cannot cover the books
  - Serves the HTTP API until interrupted, checkpointing state periodically

The bundled custody is the in-memory one; on a fresh start
``--fund-account`` credits a test balance so the API can be exercised
locally.  Account keys for the stake endpoints come from
``[api.account_keys]`` or ``SHARESTAKE_ACCOUNT_KEYS``.

Usage:
    python run_server.py --config sharestake.toml \\
                         --fund-account alice --fund-tokens 50000 \\
                         --reserve-tokens 1000000
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
from typing import Optional

from sharestake_core.api import APIServer
from sharestake_core.config import ShareStakeConfig, load_config
from sharestake_core.custody import InMemoryCustody
from sharestake_core.engine import StakingEngine
from sharestake_core.logging_config import setup_logging
from sharestake_core.precision import format_amount, tokens_to_units
from sharestake_core.storage import StakeStore

logger = logging.getLogger("sharestake.runner")

CHECKPOINT_INTERVAL = 30  # seconds


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="ShareStake staking service")
    p.add_argument("--config", default=None, help="Path to sharestake.toml")
    p.add_argument("--host", default=None, help="API listen host")
    p.add_argument("--port", type=int, default=None, help="API listen port")
    p.add_argument("--fund-account", action="append", default=[],
                   help="Credit this account in the in-memory custody (repeatable)")
    p.add_argument("--fund-tokens", type=int, default=10_000,
                   help="Whole tokens credited to each --fund-account")
    p.add_argument("--reserve-tokens", type=int, default=0,
                   help="Whole tokens pre-loaded into custody to back yield payouts")
    return p.parse_args(argv)


def build_custody(
    store: Optional[StakeStore],
    reserve: int = 0,
    fund_accounts: tuple[str, ...] = (),
    fund_amount: int = 0,
) -> InMemoryCustody:
    """Restore the saved custody, or create and fund a fresh one."""
    if store is not None:
        custody = store.load_custody()
        if custody is not None:
            if fund_accounts:
                logger.warning("Custody restored from storage; --fund-account ignored")
            return custody
    custody = InMemoryCustody(custodied=reserve)
    for account in fund_accounts:
        custody.fund(account, fund_amount)
        logger.info(f"Funded {account} with {format_amount(fund_amount)}")
    return custody


def build_engine(
    cfg: ShareStakeConfig,
    custody: InMemoryCustody,
    store: Optional[StakeStore] = None,
) -> StakingEngine:
    engine = StakingEngine.from_config(cfg.engine, custody)
    if store is not None:
        state = store.load_state()
        if state is not None:
            engine.state = state
            ok, msg = engine.verify_solvency()
            if not ok:
                raise RuntimeError(f"Refusing to restore insolvent state: {msg}")
    return engine


async def _checkpoint_loop(engine: StakingEngine, store: StakeStore) -> None:
    while True:
        await asyncio.sleep(CHECKPOINT_INTERVAL)
        engine.save_to(store)


async def main(argv: Optional[list[str]] = None) -> None:
    args = parse_args(argv)
    cfg = load_config(args.config)
    if args.host:
        cfg.api.host = args.host
    if args.port:
        cfg.api.port = args.port

    setup_logging(cfg.logging.level, cfg.logging.format, cfg.logging.file)

    store = StakeStore(cfg.storage.path) if cfg.storage.enabled else None
    custody = build_custody(
        store,
        reserve=tokens_to_units(args.reserve_tokens),
        fund_accounts=tuple(args.fund_account),
        fund_amount=tokens_to_units(args.fund_tokens),
    )
    engine = build_engine(cfg, custody, store)

    if not cfg.api.admin_key:
        logger.warning("No admin key configured; /admin endpoints are disabled")

    api = APIServer(engine, api_config=cfg.api)
    await api.start()

    checkpoint = None
    if store is not None:
        checkpoint = asyncio.create_task(_checkpoint_loop(engine, store))

    try:
        while True:
            await asyncio.sleep(3600)
    except asyncio.CancelledError:
        pass
    finally:
        if checkpoint is not None:
            checkpoint.cancel()
        await api.stop()
        if store is not None:
            engine.save_to(store)
            store.close()
        logger.info("Stopped")


def main_sync():
    """Synchronous entry point for console_scripts."""
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(main())


if __name__ == "__main__":
    main_sync()
