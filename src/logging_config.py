"""
Logging setup for the auth service.

Records carry the current request id (set by RequestIdMiddleware) and pass
through a redaction step so passwords and tokens handed over via ``extra=``
never reach a sink. Production renders one JSON object per line; every other
environment gets a compact text line.

    from src.logging_config import get_logger
    logger = get_logger(__name__)
    logger.info("Login succeeded", extra={"user_id": str(account.id)})
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

SENSITIVE_KEYS = frozenset({
    "password",
    "password_hash",
    "new_password",
    "current_password",
    "access_token",
    "refresh_token",
    "id_token",
    "code",
    "client_secret",
})
MASK = "***"

TEXT_FORMAT = "%(asctime)s %(levelname)-5s [%(name)s] req=%(request_id)s %(message)s"

# LogRecord's own attributes; everything else on a record came from extra=
_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "request_id"}

_NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx", "httpcore")


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: MASK if key in SENSITIVE_KEYS and value[key] else _redact(value[key])
            for key in value
        }
    return value


class ContextFilter(logging.Filter):
    """Stamp the request id on a record and mask credential-bearing extras."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "-"  # type: ignore[attr-defined]
        for key in list(vars(record)):
            if key in _STANDARD_ATTRS:
                continue
            value = getattr(record, key)
            if key in SENSITIVE_KEYS and value:
                setattr(record, key, MASK)
            elif isinstance(value, dict):
                setattr(record, key, _redact(value))
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record, extras flattened to the top level."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = getattr(record, "request_id", "-")
        if request_id != "-":
            entry["request_id"] = request_id
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        for key, value in vars(record).items():
            if key not in _STANDARD_ATTRS and value is not None:
                entry[key] = value

        return json.dumps(entry, default=str)


def configure_logging(
    *,
    log_level: str = "INFO",
    environment: str = "development",
    debug: bool = False,
) -> None:
    """
    Install the single stderr handler on the root logger.

    ``debug`` forces DEBUG regardless of ``log_level``. Calling this again
    replaces the handler rather than stacking a second one.
    """
    level = logging.DEBUG if debug else logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.addFilter(ContextFilter())
    if environment == "production":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt="%H:%M:%S"))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
