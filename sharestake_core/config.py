"""
TOML-based configuration for the ShareStake service.

Loads settings from a TOML file and/or environment variables.
Environment variables take precedence over file values.

Amounts in ``[engine]`` are given in whole tokens and converted to base
units by ``EngineConfig``'s unit properties.

Usage:
    from sharestake_core.config import load_config
    cfg = load_config("sharestake.toml")
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from sharestake_core.precision import tokens_to_units
from sharestake_core.staking import MAX_STAKE_DAYS, MIN_STAKE_DAYS

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib  # type: ignore[import,no-redef]


@dataclass
class EngineConfig:
    """Economic parameters and privileged accounts."""
    admin: str = "admin"
    treasury: str = ""                 # empty = same as admin
    min_stake_tokens: int = 1_000
    max_stake_tokens: int = 1_000_000_000
    min_stake_days: int = MIN_STAKE_DAYS
    max_stake_days: int = MAX_STAKE_DAYS
    initial_share_price_tokens: int = 10_000

    @property
    def min_stake_amount(self) -> int:
        return tokens_to_units(self.min_stake_tokens)

    @property
    def max_stake_amount(self) -> int:
        return tokens_to_units(self.max_stake_tokens)

    @property
    def initial_share_price(self) -> int:
        return tokens_to_units(self.initial_share_price_tokens)


@dataclass
class APIConfig:
    """REST API settings."""
    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 8080
    api_key: str = ""                  # require this key on POST endpoints (empty = no auth)
    admin_key: str = ""                # required on /admin/* (empty = admin routes disabled)
    # account -> key sent as X-Account-Key (empty = stake POST routes disabled)
    account_keys: dict[str, str] = field(default_factory=dict)
    max_body_bytes: int = 65_536


@dataclass
class StorageConfig:
    """Persistence settings."""
    enabled: bool = False
    path: str = "data/sharestake.db"


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = "INFO"
    format: str = "human"   # "human" or "json"
    file: str | None = None


@dataclass
class ShareStakeConfig:
    """Top-level configuration container."""
    engine: EngineConfig = field(default_factory=EngineConfig)
    api: APIConfig = field(default_factory=APIConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _merge(dc: Any, raw: dict[str, Any]) -> None:
    """Merge a raw dict into a dataclass instance (in-place)."""
    for key, value in raw.items():
        key_under = key.replace("-", "_")
        if hasattr(dc, key_under):
            setattr(dc, key_under, value)


def _parse_account_keys(raw: str) -> dict[str, str]:
    """Parse ``"alice:k1,bob:k2"`` into a mapping."""
    keys: dict[str, str] = {}
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        account, sep, key = item.partition(":")
        if not sep or not account or not key:
            raise ValueError(f"Malformed account key entry: {item!r}")
        keys[account.strip()] = key.strip()
    return keys


def load_config(path: str | None = None) -> ShareStakeConfig:
    """
    Load configuration from a TOML file, then overlay environment variables.

    Env-var mapping:
        SHARESTAKE_ADMIN      -> engine.admin
        SHARESTAKE_TREASURY   -> engine.treasury
        SHARESTAKE_HOST       -> api.host
        SHARESTAKE_PORT       -> api.port
        SHARESTAKE_API_KEY    -> api.api_key
        SHARESTAKE_ADMIN_KEY  -> api.admin_key
        SHARESTAKE_ACCOUNT_KEYS -> api.account_keys  ("alice:k1,bob:k2")
        SHARESTAKE_DB_PATH    -> storage.path   (also enables storage)
        SHARESTAKE_LOG_LEVEL  -> logging.level
        SHARESTAKE_LOG_FMT    -> logging.format
    """
    cfg = ShareStakeConfig()

    # ── TOML file ────────────────────────────────────────────────
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p, "rb") as f:
                data = tomllib.load(f)
            for section_name, section_dc in [
                ("engine", cfg.engine),
                ("api", cfg.api),
                ("storage", cfg.storage),
                ("logging", cfg.logging),
            ]:
                if section_name in data:
                    _merge(section_dc, data[section_name])

    # ── Environment variable overrides ───────────────────────────
    if v := os.environ.get("SHARESTAKE_ADMIN"):
        cfg.engine.admin = v
    if v := os.environ.get("SHARESTAKE_TREASURY"):
        cfg.engine.treasury = v
    if v := os.environ.get("SHARESTAKE_HOST"):
        cfg.api.host = v
    if v := os.environ.get("SHARESTAKE_PORT"):
        cfg.api.port = int(v)
    if v := os.environ.get("SHARESTAKE_API_KEY"):
        cfg.api.api_key = v
    if v := os.environ.get("SHARESTAKE_ADMIN_KEY"):
        cfg.api.admin_key = v
    if v := os.environ.get("SHARESTAKE_ACCOUNT_KEYS"):
        cfg.api.account_keys = _parse_account_keys(v)
    if v := os.environ.get("SHARESTAKE_DB_PATH"):
        cfg.storage.path = v
        cfg.storage.enabled = True
    if v := os.environ.get("SHARESTAKE_LOG_LEVEL"):
        cfg.logging.level = v.upper()
    if v := os.environ.get("SHARESTAKE_LOG_FMT"):
        cfg.logging.format = v

    return cfg
