"""
Logging setup for the toll pipeline.

Every module logs through `get_logger(__name__)` and attaches identifiers
(`batch_id`, `message_id`, `correlation_id`, `plaza_id`) with `extra=`. The
console format keeps the thread name because ingestion workers and report
runs share one process. With `json_logs` each record becomes a single JSON
object whose top-level keys include those identifiers.

    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    log = get_logger(__name__)
    log.info("Batch enqueued", extra={"message_id": str(envelope.message_id)})
"""

from __future__ import annotations

import json
import logging
import logging.config
from typing import Any, Dict, Optional

CONSOLE_FORMAT = "%(asctime)s | %(levelname)s | %(threadName)s | %(name)s | %(message)s"

# The pool reports every reconnect at INFO.
QUIET_LOGGERS = ("psycopg.pool",)

_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys()
) | {"message", "asctime"}


def _json_formatter(record: logging.LogRecord) -> str:
    payload: Dict[str, Any] = {
        "level": record.levelname,
        "logger": record.name,
        "thread": record.threadName,
        "message": record.getMessage(),
    }
    payload.update(
        (key, value)
        for key, value in record.__dict__.items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    )
    if record.exc_info:
        payload["exc_info"] = logging.Formatter().formatException(record.exc_info)
    if record.stack_info:
        payload["stack_info"] = record.stack_info
    # UUIDs, Decimals and datetimes in `extra` fall back to str().
    return json.dumps(payload, default=str)


class JsonFormatter(logging.Formatter):
    """One JSON object per record, `extra` fields promoted to the top level."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        return _json_formatter(record)


def _pipeline_config(level: str, json_logs: bool) -> Dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {"format": CONSOLE_FORMAT, "datefmt": "%Y-%m-%d %H:%M:%S"},
            "json": {"()": JsonFormatter},
        },
        "handlers": {
            "stderr": {
                "class": "logging.StreamHandler",
                "formatter": "json" if json_logs else "console",
                "level": level,
            }
        },
        "loggers": {name: {"level": "WARNING"} for name in QUIET_LOGGERS},
        "root": {"handlers": ["stderr"], "level": level},
    }


def configure_logging(
    level: str = "INFO",
    json_logs: bool = False,
    force: bool = True,
) -> None:
    """
    Install the pipeline's stderr handler on the root logger.

    The CLI calls this once per command with `force=True`. Library callers
    pass `force=False` so a host application's handlers are left alone.
    """
    if not force and logging.getLogger().handlers:
        return
    logging.config.dictConfig(_pipeline_config(level.upper(), json_logs))


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger", "JsonFormatter"]
