"""Structured Logging — tests for the JSON log formatter."""

import json
import logging
from decimal import Decimal

from desynth.infrastructure.observability import (
    JSONFormatter, KeyValueFormatter, setup_logging,
)


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        "desynth.services.escrow_coordinator", logging.INFO, __file__, 1,
        "Escrow funded", None, None,
    )
    record.__dict__.update(extra)
    return record


def test_formats_settlement_fields():
    line = JSONFormatter().format(_record(
        booking_id="b-1", tx_hash="0xab", confirmations=3, unrelated="dropped",
    ))
    log = json.loads(line)
    assert log["message"] == "Escrow funded"
    assert log["level"] == "INFO"
    assert log["booking_id"] == "b-1"
    assert log["confirmations"] == 3
    assert "unrelated" not in log


def test_omits_absent_fields():
    log = json.loads(JSONFormatter().format(_record()))
    assert "booking_id" not in log
    assert "exception" not in log


def test_decimal_fields_serialize_as_strings():
    log = json.loads(JSONFormatter().format(_record(action=Decimal("10.50"))))
    assert log["action"] == "10.50"


def test_key_value_formatter_appends_fields():
    line = KeyValueFormatter().format(_record(booking_id="b-1", network="sepolia"))
    assert "Escrow funded" in line
    assert line.endswith("booking_id=b-1 network=sepolia")


def test_setup_logging_is_idempotent():
    root = logging.getLogger()
    saved = list(root.handlers), root.level
    try:
        setup_logging("DEBUG", "text")
        setup_logging("DEBUG", "text")
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, KeyValueFormatter)
        assert logging.getLogger("httpx").level == logging.WARNING
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
        for handler in saved[0]:
            root.addHandler(handler)
        root.setLevel(saved[1])
