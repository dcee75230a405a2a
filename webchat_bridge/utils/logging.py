"""
Structured JSON logging for webchat-bridge.

Provides standardized logging with:
- JSON formatted output to stderr
- UTC timestamps with timezone info
- Structured context fields
- Secret redaction (session tokens, access tokens and cookies never appear in full)

All modules log through Python's standard logging module; nothing is printed
to stdout. Log level defaults to INFO, use setup_logging(verbose=True) for DEBUG.

Examples:
    >>> from webchat_bridge.utils.logging import setup_logging, log_with_context
    >>> setup_logging(verbose=True)
    >>> logger = logging.getLogger("webchat_bridge.exchange")
    >>> log_with_context(logger, logging.INFO, "Exchange settled",
    ...     context={"chars": 120}, exchange_id="6c1f...")

Security:
    - NEVER log session tokens, access tokens, cookies or passwords
    - The redacting filter is a second line of defence, not a licence to log secrets
"""

import json
import logging
import re
import sys
from typing import Any

from webchat_bridge.utils.time import utc_timestamp


class JSONFormatter(logging.Formatter):
    """
    Formatter that outputs logs as JSON with structured fields.

    Each log record is formatted as a JSON object with:
    - timestamp: ISO 8601 UTC timestamp
    - level: Log level
    - component: Logger name
    - message: Human-readable log message
    - context: Additional structured data (from 'context' in extra)
    - exchange_id: Correlating exchange identifier (from 'exchange_id' in extra)
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": utc_timestamp(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "context") and isinstance(record.context, dict):
            log_entry["context"] = record.context

        if hasattr(record, "exchange_id"):
            log_entry["exchange_id"] = record.exchange_id

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry)


class SecretRedactingFilter(logging.Filter):
    """
    Logging filter that redacts credentials from log messages.

    Prevents accidental logging of:
    - Bearer access tokens
    - JWTs (access tokens and encrypted session tokens)
    - Session and clearance cookie values
    - Any long opaque token

    Replaces full secrets with redacted versions showing only last 4 chars:
    "Bearer eyJhbGciOi...xyz789" -> "Bearer ***z789"
    """

    SECRET_PATTERNS = [
        (re.compile(r"\bBearer\s+[A-Za-z0-9._~+/=-]{20,}"), "Bearer ***{last4}"),
        (
            re.compile(
                r"((?:__Secure-next-auth\.session-token|cf_clearance)=)[^;\s\"']+"
            ),
            "{prefix}***{last4}",
        ),
        (re.compile(r"\beyJ[A-Za-z0-9_-]+\.[A-Za-z0-9._-]+"), "***{last4}"),
        (re.compile(r"\b[A-Za-z0-9_-]{32,}\b"), "***{last4}"),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self._redact_secrets(str(record.msg))

        if record.args:
            if isinstance(record.args, dict):
                record.args = {
                    k: self._redact_secrets(str(v)) for k, v in record.args.items()
                }
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    self._redact_secrets(str(arg)) for arg in record.args
                )

        if hasattr(record, "context") and isinstance(record.context, dict):
            record.context = self._redact_dict(record.context)

        return True

    def _redact_secrets(self, text: str) -> str:
        """
        Redact secrets in text, keeping only last 4 characters.

        Args:
            text: Input string potentially containing secrets

        Returns:
            String with secrets replaced by redacted versions
        """
        for pattern, template in self.SECRET_PATTERNS:

            def redact_match(match: re.Match, template: str = template) -> str:
                matched = match.group(0)
                prefix = match.group(1) if match.re.groups else ""
                return template.format(prefix=prefix, last4=matched[-4:])

            text = pattern.sub(redact_match, text)

        return text

    def _redact_dict(self, data: dict[str, Any]) -> dict[str, Any]:
        result = {}
        for key, value in data.items():
            if isinstance(value, str):
                result[key] = self._redact_secrets(value)
            elif isinstance(value, dict):
                result[key] = self._redact_dict(value)
            elif isinstance(value, list):
                result[key] = [
                    self._redact_secrets(v) if isinstance(v, str) else v for v in value
                ]
            else:
                result[key] = value
        return result


def setup_logging(verbose: bool = False) -> None:
    """
    Configure structured JSON logging for the bridge.

    Sets up:
    - JSON formatter for structured output
    - Secret redaction filter
    - stderr output
    - Log level: DEBUG if verbose=True, INFO otherwise

    Args:
        verbose: If True, set log level to DEBUG. Otherwise, use INFO.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    # Remove any existing handlers (prevents duplicate logs)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    handler.setFormatter(JSONFormatter())
    handler.addFilter(SecretRedactingFilter())

    root_logger.addHandler(handler)


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    context: dict[str, Any] | None = None,
    exchange_id: str | None = None,
) -> None:
    """
    Log a message with structured context and optional exchange_id.

    Equivalent to logger.log(level, message, extra={'context': {...}, 'exchange_id': '...'})

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, logging.WARNING, etc.)
        message: Human-readable log message
        context: Optional dict with additional structured data
        exchange_id: Optional exchange identifier to include in log
    """
    extra = {}

    if context is not None:
        extra["context"] = context

    if exchange_id is not None:
        extra["exchange_id"] = exchange_id

    logger.log(level, message, extra=extra if extra else None)
