# ABOUTME: Configures structured JSON logging for the CLI and the oracle worker process.
# ABOUTME: Nothing is configured on import; entrypoints call setup_logging explicitly.

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

_RESERVED = {
    "name", "msg", "args", "created", "filename", "funcName", "levelname", "levelno",
    "lineno", "module", "msecs", "message", "pathname", "process", "processName",
    "relativeCreated", "thread", "threadName", "exc_info", "exc_text", "stack_info",
    "taskName",
}


class StructuredFormatter(logging.Formatter):
    """JSON formatter; `extra=` fields become top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        for key, value in record.__dict__.items():
            if key not in _RESERVED:
                log_data[key] = str(value)
        return json.dumps(log_data)


def setup_logging(log_level: str = "INFO", log_file: Optional[Path] = None) -> logging.Logger:
    """
    Route the root logger to stderr (and optionally a file) as JSON lines.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file path for file logging
    """
    formatter = StructuredFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
