from __future__ import annotations

import logging
import re
import sys
from collections.abc import Callable, Mapping
from typing import Any, TextIO


LOGGER_NAME = "claude_sandbox"
LOG_LEVEL_CHOICES = ("critical", "error", "warning", "info", "debug")
DEFAULT_LOG_LEVEL = "warning"

STRUCTURED_FIELD_DEFAULTS: dict[str, Any] = {
    "component": "",
    "operation": "",
    "container": "",
    "result": "",
    "duration_ms": 0,
    "error_class": "",
}
SECRET_KEYS = ("authorization", "token", "api_key", "password")
LOG_FORMAT = (
    "%(asctime)s %(levelname)s %(name)s: "
    + " ".join(f"{field}=%({field})s" for field in STRUCTURED_FIELD_DEFAULTS)
    + " %(message)s"
)

_SECRET_ASSIGNMENT = re.compile(rf"(?i)({'|'.join(SECRET_KEYS)})=([^\s,;]+)")


def redact_secrets(message: str) -> str:
    if not any(secret in message.lower() for secret in SECRET_KEYS):
        return message
    return _SECRET_ASSIGNMENT.sub(r"\1=[redacted]", message)


class StructuredLogDefaultsFilter(logging.Filter):
    """Guarantee every structured field exists so ``LOG_FORMAT`` never fails."""

    def filter(self, record: logging.LogRecord) -> bool:
        for field, default in STRUCTURED_FIELD_DEFAULTS.items():
            if not hasattr(record, field):
                setattr(record, field, default)
        try:
            message = record.getMessage()
        except Exception:
            return True
        redacted = redact_secrets(message)
        if redacted != message:
            record.msg = redacted
            record.args = ()
        return True


def normalize_log_level(value: Any) -> str:
    normalized = str(value or "").strip().lower()
    return normalized if normalized in LOG_LEVEL_CHOICES else DEFAULT_LOG_LEVEL


def _level_number(level: str) -> int:
    return logging.getLevelName(normalize_log_level(level).upper())


def configure_structured_logger(
    logger: logging.Logger,
    *,
    level: str,
    stream: TextIO | None = None,
) -> logging.Handler:
    handler = logging.StreamHandler(stream or sys.__stderr__)
    handler.addFilter(StructuredLogDefaultsFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(_level_number(level))
    logger.propagate = False
    return handler


def configure_domain_log_levels(
    *,
    domains: Mapping[str, Any] | None,
    logger_prefix: str,
    normalize_level: Callable[[Any], str] = normalize_log_level,
) -> None:
    """Apply ``[logging].domains`` levels to ``<prefix>.<domain>`` child loggers."""
    if not isinstance(domains, Mapping):
        return
    levels = {
        str(domain or "").strip().lower(): normalize_level(level_value)
        for domain, level_value in domains.items()
    }
    for domain, level in levels.items():
        if domain:
            logging.getLogger(f"{logger_prefix}.{domain}").setLevel(_level_number(level))
