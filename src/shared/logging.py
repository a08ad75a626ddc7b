"""Structured JSON logging with invocation_id support."""
from __future__ import annotations

import contextvars
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

# Context variable for the current CLI invocation
invocation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "invocation_id", default=""
)


class JSONFormatter(logging.Formatter):
    """Custom JSON log formatter."""

    def __init__(self, service_name: str = "unknown") -> None:
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service_name": self.service_name,
            "name": record.name,
            "invocation_id": invocation_id_var.get(""),
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = str(record.exc_info[1])
        return json.dumps(log_entry)


def setup_logging(
    service_name: str,
    level: str = "WARNING",
    log_dir: Path | str | None = None,
    namespace: str | None = None,
) -> logging.Logger:
    """Configure structured JSON logging for the launcher.

    Log records never go to stdout: JSON output mode owns stdout.

    Args:
        service_name: Logger name and log file stem.
        level: Log level string (e.g. "INFO", "DEBUG").
        log_dir: Directory for ``<service_name>.log``.  When ``None`` the
            records go to stderr instead.
        namespace: Logger to configure, when it differs from
            *service_name* (e.g. the ``src`` package root).

    Returns:
        Configured logger instance.
    """
    logger = logging.getLogger(namespace or service_name)
    logger.setLevel(getattr(logging, level.upper(), logging.WARNING))

    # Remove existing handlers
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()

    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(
            log_path / f"{service_name}.log", encoding="utf-8"
        )
    else:
        handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter(service_name=service_name))
    logger.addHandler(handler)
    logger.propagate = False

    return logger
