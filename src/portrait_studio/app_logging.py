"""Logging configuration helpers and secret redaction."""

import logging
import re

REDACTED = "[REDACTED]"

_SENSITIVE_KEY_PARTS = ("token", "secret", "key", "password", "auth")

_SENSITIVE_PATTERNS = [
    re.compile(r"\bsk_[a-zA-Z0-9]{20,}\b"),
    re.compile(r"\br8_[a-zA-Z0-9]{20,}\b"),
    re.compile(r"\bsb_secret_[a-zA-Z0-9_]{20,}\b"),
    re.compile(r"(?<!\d)\d{8,10}:[a-zA-Z0-9_-]{35}(?![a-zA-Z0-9_-])"),
    re.compile(r"\beyJ[a-zA-Z0-9_-]{20,}\.[a-zA-Z0-9_-]{20,}\.[a-zA-Z0-9_-]{20,}"),
    re.compile(r"bearer\s+[a-zA-Z0-9_-]{20,}", re.IGNORECASE),
    re.compile(r"token\s+[a-zA-Z0-9_-]{20,}", re.IGNORECASE),
    re.compile(r"password[\"\s:=]+[^\s\"]{8,}", re.IGNORECASE),
    re.compile(r"secret[\"\s:=]+[^\s\"]{8,}", re.IGNORECASE),
]


def configure_logging() -> None:
    """Configure application logging with a single redacting stream handler."""
    logger = logging.getLogger("portrait_studio")
    logger.setLevel(logging.INFO)
    if logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(levelname)s: %(name)s: %(message)s"))
    handler.addFilter(RedactingFilter())
    logger.addHandler(handler)
    logger.propagate = False


def redact_text(text: str) -> str:
    """Replace known secret patterns in a string."""
    for pattern in _SENSITIVE_PATTERNS:
        text = pattern.sub(REDACTED, text)
    return text


def redact(value: object) -> object:
    """Return a copy of arbitrary data with secrets replaced.

    Mapping keys that look sensitive have their whole value replaced; strings
    anywhere in the structure are scrubbed by pattern.
    """
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, dict):
        redacted: dict[object, object] = {}
        for key, item in value.items():
            if isinstance(key, str) and _is_sensitive_key(key):
                redacted[key] = REDACTED
            else:
                redacted[key] = redact(item)
        return redacted
    if isinstance(value, list | tuple):
        return type(value)(redact(item) for item in value)
    return value


def _is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(part in lowered for part in _SENSITIVE_KEY_PARTS)


def _redact_arg(arg: object) -> object:
    if isinstance(arg, BaseException):
        return redact_text(f"{type(arg).__name__}: {arg}")
    return redact(arg)


class RedactingFilter(logging.Filter):
    """Scrub secrets from log messages, arguments and exception text."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact the record in place; never drops records."""
        if isinstance(record.msg, str):
            record.msg = redact_text(record.msg)
        if isinstance(record.args, dict):
            record.args = redact(record.args)
        elif isinstance(record.args, tuple):
            record.args = tuple(_redact_arg(arg) for arg in record.args)
        if record.exc_info and not record.exc_text:
            record.exc_text = logging.Formatter().formatException(record.exc_info)
        if record.exc_text:
            record.exc_text = redact_text(record.exc_text)
        return True
