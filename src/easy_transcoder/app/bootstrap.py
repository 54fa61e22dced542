"""Bootstrap helpers for the transcoder Flask application."""
from __future__ import annotations

import logging
import os
from typing import Any, Mapping, Optional

from flask import Flask

from ..config import build_default_config, validate_config
from ..logging_config import configure_logging

LOGGER = logging.getLogger(__name__)


def load_configuration(app: Flask, overrides: Optional[Mapping[str, Any]] = None) -> None:
    """Populate configuration values on the Flask app and validate them."""

    app.config.from_mapping(build_default_config())
    if overrides:
        app.config.from_mapping(overrides)
    validate_config(app.config)


def init_logging(app: Flask) -> None:
    """Configure logging from the application's settings."""

    configure_logging(
        "easy-transcoder",
        level=app.config.get("TRANSCODER_LOG_LEVEL"),
        fmt=app.config.get("TRANSCODER_LOG_FORMAT"),
        log_dir=app.config.get("TRANSCODER_LOG_DIR"),
    )


def ensure_single_worker() -> None:
    """Validate that the service is running with a single worker process."""

    worker_count = 1
    raw_worker_count = os.getenv("GUNICORN_WORKERS") or os.getenv("WEB_CONCURRENCY")
    if raw_worker_count:
        try:
            worker_count = max(1, int(raw_worker_count))
        except ValueError:
            worker_count = 1
    if worker_count != 1:
        raise RuntimeError(
            "easy-transcoder keeps its task registry in memory and requires a single worker process. "
            "Set GUNICORN_WORKERS=1 (or WEB_CONCURRENCY=1) before launching. "
            f"Detected {worker_count}."
        )


__all__ = ["ensure_single_worker", "init_logging", "load_configuration"]
