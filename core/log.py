"""
core/log.py -- stdlib logging setup with secret redaction.

configure_logging() is called once by the application entry points (api/main.py
and main.py). Every module gets its logger via logging.getLogger("authsvc.<area>").

RedactingFilter masks values whose key looks like a credential (password, token,
secret, authorization, cookie) before a record reaches any handler. It covers
the two ways values enter a record: a dict passed as the single %-format
argument, and attributes attached through `extra=`.
"""

from __future__ import annotations

import logging

_SENSITIVE_KEYS = ("password", "token", "secret", "authorization", "cookie")
_MASK = "[REDACTED]"

# LogRecord attributes that are never user data.
_RESERVED_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys()) | {"message", "asctime"}


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in _SENSITIVE_KEYS)


def redact(data: dict) -> dict:
    """Return a shallow copy of data with credential-like values masked."""
    return {k: (_MASK if _is_sensitive(str(k)) else v) for k, v in data.items()}


class RedactingFilter(logging.Filter):
    """Mask credential-like values in log records. Never drops a record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.args, dict):
            record.args = redact(record.args)
        for key in list(vars(record)):
            if key not in _RESERVED_ATTRS and _is_sensitive(key):
                setattr(record, key, _MASK)
        return True


def configure_logging(level: str = "INFO") -> None:
    """Install the root handler format and the redaction filter.

    Idempotent: repeated calls do not stack duplicate filters.
    """
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, RedactingFilter) for f in handler.filters):
            handler.addFilter(RedactingFilter())
