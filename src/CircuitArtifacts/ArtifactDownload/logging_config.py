"""
Structured Logging Utilities

This module centralizes logging setup for the circuit artifact downloader. It
provides a JSON-lines formatter that lifts the structured ``extra={...}``
fields emitted by the catalog, transport, and storage modules into the log
record, a helper for masking secrets that may appear in gateway URLs or
headers, and :func:`setup_logging`, which the CLI uses to pick console or JSON
output.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Dict, Optional, TextIO

from .settings import LogFormat, LogLevel

LOGGER_NAME = "CircuitArtifacts.ArtifactDownload"

# Attributes present on every LogRecord; anything else came from ``extra``.
_RESERVED_ATTRS = frozenset(
    vars(logging.makeLogRecord({})).keys() | {"message", "asctime", "taskName"}
)


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Remove secrets from structured payloads prior to logging.

    Examples:
        >>> mask_sensitive_data({"token": "secret", "stage": "fetch"})
        {'token': '***masked***', 'stage': 'fetch'}
    """
    sensitive_keys = {"authorization", "api_key", "apikey", "token", "secret", "password"}
    masked: Dict[str, object] = {}
    for key, value in payload.items():
        if key.lower() in sensitive_keys:
            masked[key] = "***masked***"
        else:
            masked[key] = value
    return masked


class JSONFormatter(logging.Formatter):
    """Formatter emitting one JSON object per record.

    Examples:
        >>> formatter = JSONFormatter()
        >>> isinstance(formatter.format(logging.makeLogRecord({'msg': 'test'})), str)
        True
    """

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.fromtimestamp(record.created, tz=timezone.utc)
        log_obj: Dict[str, object] = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key in _RESERVED_ATTRS or key.startswith("_"):
                continue
            log_obj[key] = value
        if record.exc_info:
            log_obj["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(log_obj), default=str)


def setup_logging(
    level: LogLevel | str = LogLevel.INFO,
    fmt: LogFormat | str = LogFormat.CONSOLE,
    *,
    stream: Optional[TextIO] = None,
    propagate: bool = False,
) -> logging.Logger:
    """Configure the package logger for console or JSON output.

    Handlers installed by a previous call are replaced, so the function can be
    invoked once per CLI command. Records stop at the package logger unless
    ``propagate`` is set, so a configured root logger does not repeat them.
    """

    level_name = LogLevel(str(getattr(level, "value", level)).upper()).value
    fmt = LogFormat(getattr(fmt, "value", fmt))

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level_name, logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_circuit_artifacts_managed", False):
            logger.removeHandler(handler)
            handler.close()

    handler = logging.StreamHandler(stream or sys.stderr)
    if fmt is LogFormat.JSON:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    handler._circuit_artifacts_managed = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.propagate = propagate
    return logger


__all__ = ["JSONFormatter", "LOGGER_NAME", "mask_sensitive_data", "setup_logging"]
