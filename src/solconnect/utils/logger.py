"""
Unified logging helpers.

The library only creates loggers; handlers are installed by the application
through the setup_* functions.
"""

import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

LOG_DIR = Path("logs")
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(network)s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

MAX_LOG_SIZE_MB = 10
BACKUP_COUNT = 5

EVENTS_LOGGER = "solconnect.events"

_loggers: Dict[str, logging.Logger] = {}
_file_handler_added = False


class NetworkFilter(logging.Filter):
    """Filter that guarantees a network field on every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "network"):
            record.network = "-"
        return True


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    EXTRA_FIELDS = ("event_type", "signature", "network", "subscription_id", "kind")

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.name,
            "message": record.getMessage(),
        }
        for field in self.EXTRA_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)
        extra = getattr(record, "extra_fields", None)
        if extra:
            log_data.update(extra)
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, default=str)


_network_filter = NetworkFilter()


def get_logger(name: str, level: Optional[int] = None) -> logging.Logger:
    """Get or create a logger."""
    if name in _loggers:
        return _loggers[name]
    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(level)
    _loggers[name] = logger
    return logger


def setup_console_logging(level: int = logging.INFO) -> None:
    """Set up console logging."""
    root_logger = logging.getLogger()

    for handler in root_logger.handlers:
        if isinstance(handler, logging.StreamHandler) and getattr(handler, "stream", None) is sys.stdout:
            return

    root_logger.setLevel(level)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    console_handler.addFilter(_network_filter)
    root_logger.addHandler(console_handler)


def setup_file_logging(
    filename: str = "solconnect.log",
    level: int = logging.INFO,
    use_rotation: bool = True,
) -> None:
    """Set up file logging once per process."""
    global _file_handler_added

    if _file_handler_added:
        return

    LOG_DIR.mkdir(exist_ok=True)
    log_path = LOG_DIR / Path(filename).name

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if use_rotation:
        file_handler = logging.handlers.RotatingFileHandler(
            str(log_path),
            maxBytes=MAX_LOG_SIZE_MB * 1024 * 1024,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
    else:
        file_handler = logging.FileHandler(str(log_path), encoding="utf-8")

    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    file_handler.addFilter(_network_filter)
    root_logger.addHandler(file_handler)

    _file_handler_added = True


def setup_json_logging(filename: str = "submissions.jsonl") -> logging.Logger:
    """Write submission events as JSON lines."""
    LOG_DIR.mkdir(exist_ok=True)
    log_path = LOG_DIR / filename

    json_logger = logging.getLogger(EVENTS_LOGGER)
    json_logger.setLevel(logging.INFO)
    json_logger.propagate = False

    for handler in json_logger.handlers:
        if isinstance(handler, logging.FileHandler):
            return json_logger

    json_handler = logging.handlers.RotatingFileHandler(
        str(log_path),
        maxBytes=MAX_LOG_SIZE_MB * 1024 * 1024,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    json_handler.setFormatter(JSONFormatter())
    json_logger.addHandler(json_handler)
    return json_logger


def log_submission_event(
    event_type: str,
    signature: str,
    network: str,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """Log a structured transaction submission event."""
    events_logger = get_logger(EVENTS_LOGGER)
    events_logger.info(
        f"{event_type}: {signature[:16]}... on {network}",
        extra={
            "event_type": event_type,
            "signature": signature,
            "network": network,
            "extra_fields": dict(extra or {}),
        },
    )
