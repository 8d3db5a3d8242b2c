"""
Logging setup for the API process.

Every module logs through ``logging.getLogger(__name__)``; this module only
decides where those records go and what they look like. In JSON mode each
record is a single line with the ``extra`` fields (account_id, amount_cents,
idempotency_key, ...) promoted to top-level keys, so a denied or failed
posting can be replayed from the log alone.
"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any

from pythonjsonlogger import jsonlogger

from bank_ledger.config import settings


class LedgerJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that stamps timestamp, level and service name."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.APP_NAME


def setup_logging(level: str | None = None, json_output: bool | None = None) -> None:
    """
    Configure the root logger.

    Called once from the application lifespan. Safe to call again: existing
    root handlers are replaced, not duplicated.
    """
    level = level or settings.LOG_LEVEL
    json_output = settings.LOG_JSON if json_output is None else json_output

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(LedgerJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s"))
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)-8s %(name)s: %(message)s")
        )
    root.addHandler(handler)

    # SQL echo goes through the sqlalchemy.engine logger when DEBUG is on
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.DEBUG else logging.WARNING
    )
