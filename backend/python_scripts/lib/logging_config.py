import json
import logging
import os
import sys
from typing import Any, Dict, Optional

# LogRecord attributes that are part of every record, not caller extras
_RESERVED_ATTRS = frozenset((
    "args", "msg", "levelname", "levelno", "name", "pathname", "filename",
    "module", "exc_info", "exc_text", "stack_info", "lineno", "funcName",
    "created", "msecs", "relativeCreated", "thread", "threadName",
    "processName", "process", "taskName",
))


class JsonFormatter(logging.Formatter):
    def __init__(self, service: Optional[str] = None) -> None:
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if self.service:
            payload["service"] = self.service
        # Attach extra fields (e.g. asset_id, actor_id)
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS:
                continue
            payload.setdefault("extra", {})[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


_configured = False


def configure_logging(level: Optional[str] = None, service: Optional[str] = None) -> None:
    """Configure root logger once with JSON output to stdout.

    ``level`` falls back to the LOG_LEVEL environment variable, then INFO.
    """
    global _configured
    if _configured:
        return

    level = level or os.getenv("LOG_LEVEL", "INFO")

    root = logging.getLogger()
    root.setLevel(level.upper())

    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter(service=service))
    root.addHandler(handler)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
