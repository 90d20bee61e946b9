"""
Logging configuration.

JSON lines for production, readable text for development. The correlation
id of the current request lives in a context variable so concurrent
requests never see each other's ids.
"""
import os
import sys
import json
import logging
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="system")

# Attributes every LogRecord carries; anything else came in through `extra`
_RESERVED_ATTRS = frozenset((
    'name', 'msg', 'args', 'created', 'filename', 'funcName', 'levelname',
    'levelno', 'lineno', 'module', 'msecs', 'pathname', 'process',
    'processName', 'relativeCreated', 'stack_info', 'thread', 'threadName',
    'exc_info', 'exc_text', 'message', 'correlation_id', 'taskName',
))


class CorrelationIdFilter(logging.Filter):
    """Stamp every record with the correlation id of the running request."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, 'correlation_id'):
            record.correlation_id = correlation_id_var.get()
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line with timestamp, level, location and extra fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "function": record.funcName,
            "line": record.lineno,
            "correlation_id": getattr(record, 'correlation_id', correlation_id_var.get()),
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith('_'):
                log_data[key] = value

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    def __init__(self):
        super().__init__(
            fmt='%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s] - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, 'correlation_id'):
            record.correlation_id = correlation_id_var.get()
        return super().format(record)


def configure_logging(log_level: Optional[str] = None) -> None:
    """
    Install a single stdout handler on the root logger.

    LOG_FORMAT selects 'json' or 'text' (default). The level comes from the
    argument, then LOG_LEVEL, then INFO.
    """
    log_format = os.getenv('LOG_FORMAT', 'text').lower()
    level = (log_level or os.getenv('LOG_LEVEL', 'INFO')).upper()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level, logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(CorrelationIdFilter())
    handler.setFormatter(JSONFormatter() if log_format == 'json' else TextFormatter())
    root_logger.addHandler(handler)

    # Third-party chatter
    for noisy in ('uvicorn.access', 'httpx', 'httpcore', 'pdfminer'):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    if log_format == 'json':
        root_logger.info("Structured JSON logging enabled")
