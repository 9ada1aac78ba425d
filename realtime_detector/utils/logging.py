import json
import logging
import time
from typing import Any, Dict

import colorlog


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": int(time.time() * 1000),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True)


def _console_formatter() -> logging.Formatter:
    return colorlog.ColoredFormatter(
        "[{asctime}]{log_color}[{levelname:^8s}] ({name}): {message}",
        style="{",
        log_colors={
            "DEBUG": "cyan",
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
            "CRITICAL": "bold_red",
        },
    )


def setup_logging(level: str, fmt: str = "json") -> None:
    root = logging.getLogger()
    handler = logging.StreamHandler()
    if fmt == "console":
        handler.setFormatter(_console_formatter())
    else:
        handler.setFormatter(JsonFormatter())
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
