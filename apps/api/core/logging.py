"""
Logging setup.

JSON lines when LOG_FORMAT=json (always in production), plain text otherwise.
Structured context goes in ``extra={"extra_fields": {...}}``.

Whoop error bodies and token-endpoint failures end up in log messages, so
every record passes through `SecretRedactionFilter` before it is formatted.
"""
import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List, Pattern, Tuple

from core.config import settings

SERVICE_NAME = "daily-health-api"
REDACTED = "[REDACTED]"

_REDACTIONS: List[Tuple[Pattern[str], str]] = [
    (re.compile(r"(Bearer\s+)[A-Za-z0-9._~+/=-]+", re.IGNORECASE), rf"\1{REDACTED}"),
    (re.compile(r"\beyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\b"), REDACTED),
    (
        re.compile(r"""(["']?\b(?:access_token|refresh_token|client_secret|code)["']?\s*[:=]\s*["']?)[^"'&,\s}]+"""),
        rf"\1{REDACTED}",
    ),
]


def redact(text: str) -> str:
    """Mask bearer tokens, JWTs and OAuth token fields in `text`."""
    for pattern, replacement in _REDACTIONS:
        text = pattern.sub(replacement, text)
    return text


class SecretRedactionFilter(logging.Filter):
    """Rewrites the record message with secrets masked. Never drops records."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": SERVICE_NAME,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            log_data["exception"] = redact(self.formatException(record.exc_info))
        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        # extra_fields carry UUIDs and dates
        return json.dumps(log_data, default=str)


def setup_logging() -> logging.Logger:
    """
    Configure the root logger once per process.

    Calling it again replaces the handler instead of stacking another one.
    """
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    if settings.LOG_FORMAT == "json" or settings.ENVIRONMENT == "production":
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(formatter)
    handler.addFilter(SecretRedactionFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    # redis-py logs every lock retry at DEBUG
    logging.getLogger("redis").setLevel(logging.WARNING)
    logging.getLogger("celery").setLevel(logging.INFO)

    return root_logger
