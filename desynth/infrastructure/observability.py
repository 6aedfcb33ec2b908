"""Structured Logging — settlement log records as JSON lines or key=value text.

Invariants:
    - Every line carries timestamp, level, logger and message
    - Settlement fields (booking_id, tx_hash, action, ...) appear only when set
      on the record via extra={...}; other extras are dropped
    - Decimal amounts and UUIDs serialize as strings, never as floats

Design Decisions:
    - stdlib logging + hand-written formatters: services only call logging.getLogger
    - setup_logging replaces root handlers, so calling it twice (tests, reload)
      does not duplicate lines
"""

import json
import logging
from datetime import datetime, timezone

SETTLEMENT_FIELDS = (
    "booking_id", "escrow_id", "tx_hash", "action", "error_code",
    "client_key", "network", "path", "confirmations", "block_number",
)

# chatty at INFO: one line per RPC request
_QUIET_LOGGERS = ("httpx", "httpcore")


def settlement_fields(record: logging.LogRecord) -> dict:
    fields = {}
    for key in SETTLEMENT_FIELDS:
        val = record.__dict__.get(key)
        if val is None:
            continue
        fields[key] = val if isinstance(val, (bool, int, float)) else str(val)
    return fields


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log shipping in production."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **settlement_fields(record),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class KeyValueFormatter(logging.Formatter):
    """Readable dev output: `time LEVEL logger: message key=value ...`."""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        pairs = " ".join(f"{k}={v}" for k, v in settlement_fields(record).items())
        return f"{line} {pairs}" if pairs else line


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter() if fmt == "json" else KeyValueFormatter())
    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
