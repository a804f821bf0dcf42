import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from .. import config

PACKAGE_LOGGER = "strategy_lab"

_RESERVED_ATTRS = frozenset((
    "name", "msg", "args", "levelname", "levelno", "pathname", "filename",
    "module", "exc_info", "exc_text", "stack_info", "lineno", "funcName",
    "created", "msecs", "relativeCreated", "thread", "threadName",
    "processName", "process", "taskName", "message",
))


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        # Include any extra fields
        for k, v in record.__dict__.items():
            if k not in payload and k not in _RESERVED_ATTRS:
                payload[k] = v
        return json.dumps(payload, default=str)


def setup_logger(level: Optional[str] = None, json_format: Optional[bool] = None) -> logging.Logger:
    """
    Install a stdout handler on the package logger.

    Args:
        level: Log level name (defaults to LOG_LEVEL)
        json_format: Emit JSON lines (defaults to LOG_FORMAT == 'json')

    Returns:
        The configured 'strategy_lab' logger
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    if json_format is None:
        json_format = config.LOG_FORMAT.lower() == "json"
    logger.setLevel((level or config.LOG_LEVEL).upper())

    for handler in list(logger.handlers):
        if getattr(handler, "_strategy_lab", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler._strategy_lab = True
    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
