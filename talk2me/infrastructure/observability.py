"""Structured Logging — JSON formatter and setup for session observability.

Invariants:
    - All logs include timestamp, level, logger name, and message
    - Extra fields (actor, room_id, tx_id, error_code, ...) surfaced when present
    - JSON format by default, human-readable in development

Design Decisions:
    - Stdlib logging with a JSONFormatter; extras are an explicit allow-list
    - setup_logging called once on startup via lifespan (or by embedding callers)
"""

import json
import logging
from datetime import datetime, timezone

EXTRA_FIELDS = (
    "actor", "room_id", "tx_id", "tx_hash", "purpose", "status",
    "error_code", "attempt", "chain_id", "cache_key", "seq",
)


class JSONFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in EXTRA_FIELDS:
            val = record.__dict__.get(key)
            if val is not None:
                log[key] = val
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", fmt: str = "json"):
    """Configure root logging for the process."""
    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s — %(message)s",
        ))
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level.upper(), logging.INFO))
