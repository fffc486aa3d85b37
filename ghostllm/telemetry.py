"""Logging and telemetry for the GhostLLM gateway.

Emits log records to stdout and appends them to an append-only log file.
Each handled request produces one structured JSON record.
"""

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger("ghostllm")

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class JsonFormatter(logging.Formatter):
    """Render each record as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def setup_logging(
    log_file: Optional[str], level: str = "info", json_format: bool = False
) -> None:
    """Configure the gateway logger with stdout and file handlers.

    Args:
        log_file: Path to the append-only log file, or None for stdout only.
        level: Log level name (debug, info, warn, error).
        json_format: Emit JSON records instead of plain text lines.
    """
    resolved = _LEVELS.get(level.strip().lower(), logging.INFO)
    logger.setLevel(resolved)

    if logger.handlers:
        return

    if json_format:
        fmt: logging.Formatter = JsonFormatter()
    else:
        fmt = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )

    stdout_handler = logging.StreamHandler()
    stdout_handler.setLevel(resolved)
    stdout_handler.setFormatter(fmt)
    logger.addHandler(stdout_handler)

    if log_file:
        log_path = Path(log_file)
        os.makedirs(log_path.parent, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode="a")
        file_handler.setLevel(resolved)
        file_handler.setFormatter(fmt)
        logger.addHandler(file_handler)


def log_request(
    *,
    method: str,
    path: str,
    status: int,
    outcome: str,
    error: Optional[str] = None,
    duration_ms: Optional[float] = None
) -> None:
    """Log a single request event as a structured JSON line.

    Args:
        method: HTTP method of the request.
        path: Request path as received.
        status: HTTP status code sent back.
        outcome: Short outcome label (e.g. "success", "not_found").
        error: Error message if the request failed.
        duration_ms: Wall-clock handling time.
    """
    record: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "method": method,
        "path": path,
        "status": status,
        "outcome": outcome,
    }

    if error:
        record["error"] = error

    if duration_ms is not None:
        record["duration_ms"] = round(duration_ms, 2)

    logger.info(json.dumps(record))
