"""
Logging for the portfolio backend: one handler on stdout, JSON lines by default.

Access-log records carry their request fields under a single ``request`` key
(see ``request_context``); the JSON formatter flattens that dict into the line.
"""

import json
import logging
import os
import sys
from datetime import UTC, datetime
from typing import Any

REQUEST_CONTEXT_ATTR = "request"

_LEVEL_NAMES = ("DEBUG", "INFO", "WARNING", "ERROR")


def _resolve_level() -> int:
    override = os.environ.get("PORTFOLIO_LOG_LEVEL", "").upper()
    if override in _LEVEL_NAMES:
        return getattr(logging, override)
    return logging.DEBUG if os.environ.get("API_ENV", "prod") == "dev" else logging.INFO


LOG_LEVEL = _resolve_level()


def request_context(method: str, path: str, status_code: int, client: str, duration: float) -> dict[str, Any]:
    """Build the ``extra`` mapping for an access-log record."""
    return {
        REQUEST_CONTEXT_ATTR: {
            "method": method,
            "path": path,
            "status_code": status_code,
            "client": client,
            "duration_ms": round(duration * 1000, 2),
        }
    }


class JSONLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = getattr(record, REQUEST_CONTEXT_ATTR, None)
        if isinstance(context, dict):
            line.update(context)
        if record.exc_info:
            line["exception"] = self.formatException(record.exc_info)
        return json.dumps(line, default=str)


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    if os.environ.get("PORTFOLIO_LOG_FORMAT", "json").lower() == "text":
        handler.setFormatter(logging.Formatter("%(levelname)s [%(name)s] %(message)s"))
    else:
        handler.setFormatter(JSONLogFormatter())
    return handler


def setup_logging() -> None:
    """Install the stdout handler on the root logger and send uvicorn's logs through it."""
    root = logging.getLogger()
    root.setLevel(LOG_LEVEL)
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.addHandler(_console_handler())

    for name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers.clear()
        uvicorn_logger.propagate = True

    logging.getLogger("portfolio_backend").setLevel(LOG_LEVEL)
