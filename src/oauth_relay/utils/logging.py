"""Logging setup for the OAuth relay.

Production environments get one JSON object per line; development gets a
readable ``time | LEVEL | logger | message key=value`` line. Structured
fields are passed with ``extra=`` and rendered by both formatters.
"""

import json
import logging
import sys
from collections.abc import Iterable, Mapping, MutableMapping
from datetime import datetime, timezone
from typing import Any

DEVELOPMENT_ENVIRONMENT = "development"
REDACTED = "***"

_EXCEPTION_FORMATTER = logging.Formatter()

_LEVEL_MAP = {
    "CRITICAL": logging.CRITICAL,
    "FATAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
    "TRACE": logging.DEBUG,
}

# Attributes every LogRecord has; anything else came from `extra=`
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime", "taskName"}


def to_level(level: int | str) -> int:
    """Convert a string/int level to a logging level int (INFO if unknown)."""
    if isinstance(level, int):
        return level
    return _LEVEL_MAP.get(level.strip().upper(), logging.INFO)


def record_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Return the structured fields attached to a record via ``extra=``."""
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_entry.update(record_fields(record))

        if record.exc_text:
            log_entry["exception"] = record.exc_text
        elif record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            log_entry["stack"] = record.stack_info

        return json.dumps(log_entry, default=str, ensure_ascii=False)


class KeyValueFormatter(logging.Formatter):
    """Plain text formatter for local development."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = record_fields(record)
        if fields:
            rendered = " ".join(f"{key}={value}" for key, value in fields.items())
            first, sep, rest = line.partition("\n")
            line = f"{first} {rendered}{sep}{rest}"
        return line


class SecretRedactionFilter(logging.Filter):
    """Replace known secret values in log records with ``***``.

    Applies to the message, its arguments and every structured field.
    """

    def __init__(self, secrets: Iterable[str] = ()) -> None:
        super().__init__()
        self.secrets = tuple(s for s in secrets if s)

    def _redact(self, value: Any) -> Any:
        if isinstance(value, str):
            for secret in self.secrets:
                value = value.replace(secret, REDACTED)
        return value

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.secrets:
            return True

        message = record.getMessage()
        redacted = self._redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = None

        # Render the traceback once so the formatter prints the redacted copy
        if record.exc_info:
            if not record.exc_text:
                record.exc_text = _EXCEPTION_FORMATTER.formatException(record.exc_info)
            record.exc_info = None
        if record.exc_text:
            record.exc_text = self._redact(record.exc_text)
        if record.stack_info:
            record.stack_info = self._redact(record.stack_info)

        for key, value in record_fields(record).items():
            if self._contains_secret(value):
                setattr(record, key, self._redact(str(value)))
        return True

    def _contains_secret(self, value: Any) -> bool:
        text = value if isinstance(value, str) else str(value)
        return any(secret in text for secret in self.secrets)


class RequestLoggerAdapter(logging.LoggerAdapter):
    """Logger bound to one request; adds ``request_id`` to every record."""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        extra = dict(self.extra or {})
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs

    @property
    def request_id(self) -> str | None:
        return (self.extra or {}).get("request_id")


def get_request_logger(
    request_id: str, name: str = "oauth-relay.request", **fields: Any
) -> RequestLoggerAdapter:
    """Create a logger whose records all carry the given request id."""
    context: Mapping[str, Any] = {"request_id": request_id, **fields}
    return RequestLoggerAdapter(logging.getLogger(name), dict(context))


def setup_logging(
    level: int | str = "INFO",
    environment: str = DEVELOPMENT_ENVIRONMENT,
    secrets: Iterable[str] = (),
) -> logging.Logger:
    """Configure application-wide logging.

    Args:
        level: Root log level, e.g. "info" or logging.DEBUG.
        environment: Environment tag; "development" selects the plain
            formatter, anything else JSON.
        secrets: Secret values to redact from every log line.

    Returns:
        The configured root logger.
    """
    root = logging.getLogger()
    root.setLevel(to_level(level))
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    if environment == DEVELOPMENT_ENVIRONMENT:
        handler.setFormatter(KeyValueFormatter())
    else:
        handler.setFormatter(JSONFormatter())
    handler.addFilter(SecretRedactionFilter(secrets))
    root.addHandler(handler)

    # Suppress noisy HTTP client logs
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return root
