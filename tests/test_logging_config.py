"""Tests for sharestake_core.logging_config."""

import json
import logging
import sys

import pytest

from sharestake_core.logging_config import (
    ROOT_LOGGER,
    HumanFormatter,
    JSONFormatter,
    record_context,
    setup_logging,
)


def _record(msg="hello", level=logging.INFO, **extra):
    record = logging.LogRecord("sharestake.engine", level, __file__, 1, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture(autouse=True)
def _reset_root_logger():
    yield
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True


class TestJSONFormatter:
    def test_basic_fields(self):
        out = json.loads(JSONFormatter().format(_record()))
        assert out["level"] == "INFO"
        assert out["logger"] == "sharestake.engine"
        assert out["msg"] == "hello"
        assert "ts" in out

    def test_extra_fields_included(self):
        out = json.loads(JSONFormatter().format(_record(account="alice", payout=10 ** 24)))
        assert out["account"] == "alice"
        assert out["payout"] == 10 ** 24

    def test_exception(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", (),
                                       sys.exc_info())
        out = json.loads(JSONFormatter().format(record))
        assert "ValueError: boom" in out["exception"]


class TestHumanFormatter:
    def test_plain(self):
        line = HumanFormatter().format(_record(level=logging.WARNING))
        assert " WARNING sharestake.engine: hello" in line
        assert "\033[" not in line

    def test_context_appended(self):
        line = HumanFormatter().format(_record(account="alice", penalty=5))
        assert line.endswith("hello account=alice penalty=5")

    def test_exception(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", (),
                                       sys.exc_info())
        line = HumanFormatter().format(record)
        assert line.splitlines()[0].endswith("x: failed")
        assert "ValueError: boom" in line


def test_record_context_skips_standard_fields():
    assert record_context(_record()) == {}
    assert record_context(_record(amount=3, _private=1)) == {"amount": 3}


class TestSetupLogging:
    def test_returns_configured_logger(self):
        logger = setup_logging("DEBUG", "json")
        assert logger.name == ROOT_LOGGER
        assert logger.level == logging.DEBUG
        assert logger.propagate is False
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, JSONFormatter)

    def test_repeated_setup_does_not_duplicate(self):
        setup_logging()
        logger = setup_logging()
        assert len(logger.handlers) == 1

    def test_unknown_level_falls_back_to_info(self):
        assert setup_logging("chatty").level == logging.INFO

    def test_log_file(self, tmp_path):
        path = tmp_path / "logs" / "sharestake.log"
        logger = setup_logging("INFO", "human", str(path))
        logging.getLogger("sharestake.engine").info("written")
        for handler in logger.handlers:
            handler.flush()
        line = path.read_text().strip().splitlines()[-1]
        assert json.loads(line)["msg"] == "written"

    def test_engine_context_reaches_log_file(self, tmp_path):
        path = tmp_path / "sharestake.log"
        logger = setup_logging("INFO", "human", str(path))
        logging.getLogger("sharestake.engine").warning(
            "transfer_out failed", extra={"account": "bob", "amount": 7},
        )
        for handler in logger.handlers:
            handler.flush()
        entry = json.loads(path.read_text().strip().splitlines()[-1])
        assert entry["account"] == "bob"
        assert entry["amount"] == 7
