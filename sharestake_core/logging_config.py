"""
Logging setup for the ShareStake service.

Every module logs under the ``sharestake`` namespace (``sharestake.engine``,
``sharestake.api``, ``sharestake.storage`` …) and attaches structured
context through ``extra=`` (account, amount, payout, penalty …).  Both
formatters carry that context:

  - **human** – ``12:00:01 WARNING sharestake.engine: msg account=alice``
  - **json**  – one JSON object per line, context as top-level keys

A log file, when configured, is always JSON.

Usage:
    from sharestake_core.logging_config import setup_logging
    setup_logging(level="DEBUG", fmt="json", log_file="sharestake.log")
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

ROOT_LOGGER = "sharestake"

_RESERVED = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime"}


def record_context(record: logging.LogRecord) -> dict[str, Any]:
    """The ``extra=`` fields attached to *record*, in insertion order."""
    return {
        k: v for k, v in record.__dict__.items()
        if k not in _RESERVED and not k.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            **record_context(record),
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanFormatter(logging.Formatter):
    """Single line per record with ``key=value`` context appended."""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        parts = [f"{ts} {record.levelname} {record.name}: {record.getMessage()}"]
        parts.extend(f"{k}={v}" for k, v in record_context(record).items())
        line = " ".join(parts)
        if record.exc_info and record.exc_info[1]:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    level: str = "INFO",
    fmt: str = "human",
    log_file: Optional[str] = None,
) -> logging.Logger:
    """
    Point the ``sharestake`` logger at stderr (and optionally a JSON file).

    Calling it again replaces the previous handlers.  Unknown level names
    fall back to INFO.  The logger does not propagate, so the host
    application's root handlers are left alone.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.propagate = False
    while logger.handlers:
        old = logger.handlers[0]
        logger.removeHandler(old)
        old.close()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    handlers[0].setFormatter(JSONFormatter() if fmt == "json" else HumanFormatter())
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path)
        file_handler.setFormatter(JSONFormatter())
        handlers.append(file_handler)

    for handler in handlers:
        logger.addHandler(handler)
    return logger
