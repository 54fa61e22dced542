"""Transcoder application factory."""
from __future__ import annotations

import atexit
from typing import Any, Mapping, Optional

from flask import Flask

from ..engine import TaskProcessor
from .bootstrap import ensure_single_worker, init_logging, load_configuration
from .extensions import (
    init_processor,
    init_status_broadcaster,
    init_task_services,
    register_blueprints,
    shutdown_app,
)


def create_app(
    config: Optional[Mapping[str, Any]] = None,
    *,
    processor: Optional[TaskProcessor] = None,
) -> Flask:
    """Create and configure the transcoder Flask application.

    ``config`` overrides values read from the environment and YAML file;
    ``processor`` replaces the one built from configuration.
    """

    app = Flask(__name__)
    load_configuration(app, config)
    init_logging(app)
    ensure_single_worker()

    task_processor = init_processor(app, processor)
    init_status_broadcaster(app, task_processor)
    init_task_services(app, task_processor)

    register_blueprints(app)
    atexit.register(shutdown_app, app)

    return app


__all__ = ["create_app", "shutdown_app"]
