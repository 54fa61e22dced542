"""Logging helpers for the transcoder service."""
from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

_LOG_FILE: Optional[Path] = None
_CONFIGURED = False

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class JsonFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def parse_level(value: Optional[str]) -> int:
    """Map a level name to a ``logging`` constant; unknown names fall back to INFO."""

    if not value:
        return logging.INFO
    return _LEVELS.get(str(value).strip().lower(), logging.INFO)


def build_formatter(fmt: Optional[str]) -> logging.Formatter:
    if (fmt or "").strip().lower() == "json":
        return JsonFormatter()
    return logging.Formatter(fmt=TEXT_FORMAT, datefmt=DATE_FORMAT)


def configure_logging(
    prefix: str,
    *,
    level: Optional[str] = None,
    fmt: Optional[str] = None,
    log_dir: Optional[Path] = None,
    force: bool = False,
) -> Optional[Path]:
    """Configure root logging to stdout and, when a directory is known, a log file.

    Returns the log file path, or ``None`` when logging only to stdout.
    """

    global _CONFIGURED, _LOG_FILE

    if _CONFIGURED and not force:
        return _LOG_FILE

    level_name = level or os.getenv("TRANSCODER_LOG_LEVEL")
    format_name = fmt or os.getenv("TRANSCODER_LOG_FORMAT")
    env_dir = os.getenv("TRANSCODER_LOG_DIR")
    log_directory: Optional[Path] = None
    if log_dir is not None:
        log_directory = Path(log_dir)
    elif env_dir:
        log_directory = Path(env_dir).expanduser()

    root = logging.getLogger()
    root.setLevel(parse_level(level_name))
    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = build_formatter(format_name)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    log_file: Optional[Path] = None
    if log_directory is not None:
        log_directory.mkdir(parents=True, exist_ok=True)
        log_file = log_directory / f"{prefix}-{datetime.now().strftime('%Y%m%d-%H%M%S')}.log"
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    _CONFIGURED = True
    _LOG_FILE = log_file
    if log_file is not None:
        root.info("Logging to %s", log_file)
    return log_file


__all__ = ["JsonFormatter", "build_formatter", "configure_logging", "parse_level"]
