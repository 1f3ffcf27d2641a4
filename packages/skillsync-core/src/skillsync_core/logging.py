from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    levels: Mapping[str, str] | None = None,
) -> logging.Logger:
    """Configure and return the root skillsync logger.

    *levels* sets individual component loggers (``"registry.watcher"``,
    ``"registry.scanner"``) above or below the overall level.
    """
    logger = logging.getLogger("skillsync")

    for name, component_level in (levels or {}).items():
        get_logger(name).setLevel(getattr(logging, component_level.upper(), logging.INFO))

    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stderr)

    if json_output:
        import json

        class JSONFormatter(logging.Formatter):
            def format(self, record: logging.LogRecord) -> str:
                return json.dumps({
                    "ts": record.created,
                    "level": record.levelname,
                    "logger": record.name,
                    "thread": record.threadName,
                    "msg": record.getMessage(),
                    **({"exc": self.formatException(record.exc_info)} if record.exc_info else {}),
                })

        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        ))

    logger.addHandler(handler)
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a child logger under the skillsync namespace."""
    return logging.getLogger(f"skillsync.{name}")
