from __future__ import annotations

import json
import logging
import re
import sys
from contextvars import ContextVar, Token
from datetime import UTC, datetime
from typing import Any

from app.core.settings import get_settings

SERVICE_NAME = "tmh-billing-api"

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
_configured = False

# Attributes every LogRecord carries; anything else on a record came from ``extra``.
_RECORD_ATTRIBUTES = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {"message", "asctime"}
_PAYLOAD_KEYS = {"component", "request_id"}

_SENSITIVE_KEY_FRAGMENTS = ("secret", "token", "password", "apikey", "api_key", "signature")
_MAX_ERROR_LENGTH = 500
_SENSITIVE_PATTERNS = (
    re.compile(r"bearer\s+[a-z0-9\-_\.]+", re.IGNORECASE),
    re.compile(r"\b(sk|rk|whsec)_[a-z0-9_]+", re.IGNORECASE),
    re.compile(r"(api[_-]?key|token|secret|password)\s*[:=]\s*[^\s,;]+", re.IGNORECASE),
)

# Both libraries log each outbound request at INFO, including Stripe request bodies.
_CHATTY_LOGGERS = ("httpx", "httpcore", "stripe")


def set_request_id(request_id: str | None) -> Token[str | None]:
    return _request_id_var.set(request_id)


def reset_request_id(token: Token[str | None]) -> None:
    _request_id_var.reset(token)


def get_request_id() -> str | None:
    return _request_id_var.get()


def _scrub(text: str) -> str:
    for pattern in _SENSITIVE_PATTERNS:
        text = pattern.sub("[redacted]", text)
    return text


def sanitize_error(exc: Exception, *, default_message: str) -> str:
    """Render an exception for a log line with credentials scrubbed.

    ``HTTPException.detail`` wins over ``str(exc)`` so store and gateway errors
    log the same message the client saw.
    """
    detail = getattr(exc, "detail", None)
    message = detail.strip() if isinstance(detail, str) and detail.strip() else str(exc).strip()
    return _scrub(message or default_message)[:_MAX_ERROR_LENGTH]


def _loggable(key: str, value: Any) -> Any:
    if any(fragment in key.lower() for fragment in _SENSITIVE_KEY_FRAGMENTS):
        return "[redacted]"
    return _json_safe_value(value)


def _json_safe_value(value: Any) -> Any:
    if value is None or isinstance(value, bool | int | float):
        return value
    if isinstance(value, str):
        return _scrub(value)
    if isinstance(value, dict):
        return {str(k): _loggable(str(k), v) for k, v in value.items()}
    if isinstance(value, list | tuple | set):
        return [_json_safe_value(item) for item in value]
    return _scrub(str(value))


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line, stamped with service, environment and request id."""

    def __init__(self, *, environment: str) -> None:
        super().__init__()
        self.environment = environment

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "service": SERVICE_NAME,
            "env": self.environment,
            "msg": record.getMessage(),
            "component": getattr(record, "component", record.name),
        }

        request_id = getattr(record, "request_id", None) or get_request_id()
        if request_id:
            payload["request_id"] = request_id

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRIBUTES or key in _PAYLOAD_KEYS or key.startswith("_"):
                continue
            payload[key] = _loggable(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["error_type"] = type(exc).__name__
            payload["error"] = sanitize_error(exc, default_message="unknown")

        return json.dumps(payload, separators=(",", ":"), ensure_ascii=True)


def configure_logging() -> None:
    global _configured
    if _configured:
        return

    settings = get_settings()
    level = logging.getLevelName(settings.LOG_LEVEL.strip().upper() or "INFO")
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonLogFormatter(environment=settings.TMH_ENV.strip().lower()))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    _configured = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)
