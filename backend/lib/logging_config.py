"""
Logging configuration for the meter telemetry service.

Console output goes to stdout, either as one JSON object per line
(for log shippers) or as plain text (for local development).
"""
import json
import logging
import sys
from datetime import datetime, timezone


class JSONFormatter(logging.Formatter):
    """Formats a log record as a single JSON line"""

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_obj)


class TextFormatter(logging.Formatter):
    """Human-readable formatter for console output"""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def setup_logging(level: str = "INFO", log_format: str = "text") -> None:
    """
    Configure the root logger.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL (unknown values fall back to INFO)
        log_format: 'json' or 'text'
    """
    level_value = getattr(logging, level.upper(), logging.INFO)
    if not isinstance(level_value, int):
        level_value = logging.INFO

    formatter = JSONFormatter() if log_format.lower() == "json" else TextFormatter()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level_value)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level_value)
    root_logger.handlers = [handler]

    root_logger.debug(f"Logging configured: level={level.upper()}, format={log_format}")
