"""
Logging setup for Opsboard processes (CLI commands and watchers).

Modules log through logging.getLogger(__name__) and pass structured
fields with `extra=`. configure_logging() decides how records leave the
process:

    OPSBOARD_ENV=production   one JSON object per line on stdout
    anything else             colored single-line text on stderr

OPSBOARD_LOG_LEVEL (DEBUG, INFO, ...) sets the root level unless the
caller passes one.

    from core.observability.logging_config import configure_logging

    configure_logging()
    logger = logging.getLogger(__name__)
    logger.info("view_loaded", extra={"table": "leads", "row_count": 12})

Views record the organization they serve with set_log_organization();
the value lives in a ContextVar, so concurrent asyncio tasks serving
different tenants tag their records independently.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional

_current_org: ContextVar[Optional[str]] = ContextVar(
    "opsboard_log_organization", default=None
)


def set_log_organization(organization_id: Optional[str]) -> None:
    _current_org.set(organization_id)


def get_log_organization() -> Optional[str]:
    return _current_org.get()


def clear_log_organization() -> None:
    _current_org.set(None)


class ContextFilter(logging.Filter):
    """Stamps records with the organization of the current context.

    A record that already carries organization_id (passed via `extra`)
    keeps its own value.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        org = _current_org.get()
        if org is not None and "organization_id" not in record.__dict__:
            record.organization_id = org  # type: ignore[attr-defined]
        return True


# Attributes every LogRecord has; anything else on a record came from `extra`.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {
    "message", "asctime", "taskName",
}


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


def _jsonable(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record, for log shipping in production.

        {"timestamp": "2026-03-01T10:00:00.123+00:00", "level": "INFO",
         "logger": "core.views.base", "message": "view_loaded",
         "organization_id": "org-1", "table": "leads", "row_count": 12}
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict[str, Any] = {
            "timestamp": created.isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            (key, _jsonable(value)) for key, value in _extra_fields(record).items()
        )
        if record.exc_info and record.exc_info[1] is not None:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class DevFormatter(logging.Formatter):
    """
    Terminal-friendly output:

        10:00:00 INFO    core.views.base | view_loaded  organization_id=org-1 table=leads
    """

    PALETTE = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1;31m",
    }
    RESET = "\033[0m"

    # Shown inline, in this order, when present on the record.
    FIELDS = (
        "organization_id", "view", "table", "row_id",
        "event_type", "row_count", "duration_ms",
    )

    def format(self, record: logging.LogRecord) -> str:
        color = self.PALETTE.get(record.levelno, "")
        pairs = [
            f"{key}={record.__dict__[key]}"
            for key in self.FIELDS
            if record.__dict__.get(key) is not None
        ]
        line = "{time} {color}{level:<7}{reset} {name} | {message}".format(
            time=self.formatTime(record, "%H:%M:%S"),
            color=color,
            level=record.levelname,
            reset=self.RESET,
            name=record.name,
            message=record.getMessage(),
        )
        if pairs:
            line += "  " + " ".join(pairs)
        if record.exc_info and record.exc_info[1] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


_QUIET_LOGGERS = ("httpx", "httpcore", "supabase", "realtime", "hpack", "websockets")


def _level_from_env() -> int:
    name = os.environ.get("OPSBOARD_LOG_LEVEL", "").strip().upper()
    level = logging.getLevelName(name) if name else logging.INFO
    return level if isinstance(level, int) else logging.INFO


def configure_logging(
    env: Optional[str] = None,
    level: Optional[int] = None,
) -> None:
    """
    Install a single handler on the root logger.

    Args:
        env: "production" for JSON output; defaults to OPSBOARD_ENV,
             then "development".
        level: Root level; defaults to OPSBOARD_LOG_LEVEL, then INFO.
    """
    env = (env or os.environ.get("OPSBOARD_ENV") or "development").strip().lower()

    if env == "production":
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(DevFormatter())
    handler.addFilter(ContextFilter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level if level is not None else _level_from_env())

    # Client libraries log every HTTP request and websocket frame at INFO/DEBUG.
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
