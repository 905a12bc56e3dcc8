"""
Logging setup.

Human-readable console output, plus an optional daily-rotating log file
with one JSON object per line for log shippers.
"""

import json
import logging
import os
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Optional, Union

LOG_LEVEL_ENV = "BANKGPT_LOG_LEVEL"
LOG_DIR_ENV = "BANKGPT_LOG_DIR"
LOG_FILE_NAME = "bankgpt.log"
LOG_BACKUP_DAYS = 14


class JSONLineFormatter(logging.Formatter):
    """Formats each record as a single-line JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def resolve_level(level: Optional[Union[int, str]] = None) -> int:
    """Resolve a log level name or number.

    Args:
        level: Explicit level; falls back to BANKGPT_LOG_LEVEL, then INFO

    Returns:
        Numeric logging level

    Raises:
        ValueError: If the level name is unknown
    """
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV, "INFO")
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved


def setup_logging(
    level: Optional[Union[int, str]] = None,
    log_dir: Optional[Union[str, Path]] = None
) -> logging.Logger:
    """Configure the root logger.

    Replaces any handlers from an earlier call, so it is safe to call
    once per CLI invocation.

    Args:
        level: Log level (see resolve_level)
        log_dir: Directory for bankgpt.log; console only when None

    Returns:
        The configured root logger
    """
    level = resolve_level(level)
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)

    root.setLevel(level)

    ch = logging.StreamHandler()
    ch.setLevel(level)
    ch.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(name)s - %(message)s"))
    root.addHandler(ch)

    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        fh = TimedRotatingFileHandler(
            str(log_dir / LOG_FILE_NAME), when="midnight", backupCount=LOG_BACKUP_DAYS, encoding="utf-8"
        )
        fh.setLevel(level)
        fh.setFormatter(JSONLineFormatter())
        root.addHandler(fh)

    # the openai client logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))

    return root
