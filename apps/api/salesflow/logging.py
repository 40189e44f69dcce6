"""Structured JSON logging.

Every record is stamped with the request correlation id when it is created,
so handlers added later (test capture included) see the same value. Only
the whitelisted extras in ``LOG_FIELDS`` reach the output.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from salesflow.context import get_correlation_id
from salesflow.core.config import Settings, get_settings


LOG_FIELDS = frozenset(
    {
        "method",
        "path",
        "status_code",
        "duration_ms",
        "record_id",
        "quotation_id",
        "sales_order_id",
        "principal_id",
        "domain",
        "field",
        "stage",
        "target",
        "conversion",
        "reason",
        "event_name",
        "error",
    }
)
MAX_ERROR_LENGTH = 500

_configured = False


def _stamping_factory(factory: Any) -> Any:
    def build(*args: Any, **kwargs: Any) -> logging.LogRecord:
        record = factory(*args, **kwargs)
        if getattr(record, "correlation_id", None) is None:
            record.correlation_id = get_correlation_id()
        return record

    return build


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        fields = {key: value for key, value in record.__dict__.items() if key in LOG_FIELDS}
        if isinstance(fields.get("error"), str):
            fields["error"] = fields["error"][:MAX_ERROR_LENGTH]
        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)

        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None),
            "fields": fields,
        }
        return json.dumps(payload, default=str)


def configure_logging(settings: Settings | None = None) -> None:
    global _configured
    if _configured:
        return

    settings = settings or get_settings()
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonLogFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level)
    root_logger.addHandler(handler)
    logging.setLogRecordFactory(_stamping_factory(logging.getLogRecordFactory()))
    _configured = True
