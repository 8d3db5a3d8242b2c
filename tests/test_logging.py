"""
Tests for the log output format.
"""

import json
import logging

import pytest

from bank_ledger.logging_config import setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    before, level = set(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        if handler not in before:
            root.removeHandler(handler)
    root.setLevel(level)


class TestJsonLogging:

    def test_extra_fields_become_top_level_keys(self, capsys, restore_root_logger):
        setup_logging(level="INFO", json_output=True)

        logging.getLogger("bank_ledger.ledger.poster").warning(
            "Posting denied",
            extra={"account_id": "a-1", "amount_cents": -15000, "reason": "insufficient_funds"},
        )

        record = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert record["message"] == "Posting denied"
        assert record["level"] == "WARNING"
        assert record["name"] == "bank_ledger.ledger.poster"
        assert record["amount_cents"] == -15000
        assert record["reason"] == "insufficient_funds"
        assert "timestamp" in record

    def test_plain_text_mode(self, capsys, restore_root_logger):
        setup_logging(level="INFO", json_output=False)

        logging.getLogger("bank_ledger.services.account_service").info("Account opened")

        line = capsys.readouterr().out.strip().splitlines()[-1]
        assert line.endswith("bank_ledger.services.account_service: Account opened")
        assert "INFO" in line

    def test_level_filters_records(self, capsys, restore_root_logger):
        setup_logging(level="WARNING", json_output=True)

        logging.getLogger("bank_ledger").info("not shown")

        assert capsys.readouterr().out == ""

    def test_setup_is_idempotent(self, restore_root_logger):
        setup_logging(json_output=True)
        setup_logging(json_output=True)
        assert len(logging.getLogger().handlers) == 1
