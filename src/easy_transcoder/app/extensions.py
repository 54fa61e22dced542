"""Extension wiring for the transcoder Flask application."""
from __future__ import annotations

import logging
from typing import Optional

from flask import Flask

from ..engine import (
    MediaProber,
    ProcessRunner,
    ProfileRegistry,
    TaskProcessor,
    TaskStatusBroadcaster,
)
from ..routes import api_bp
from ..services import AutoRejectPolicy, TaskService

LOGGER = logging.getLogger(__name__)


def init_processor(app: Flask, processor: Optional[TaskProcessor] = None) -> TaskProcessor:
    if processor is None:
        processor = TaskProcessor(
            profiles=ProfileRegistry.from_config(app.config.get("TRANSCODER_PROFILES") or []),
            temp_dir=app.config.get("TRANSCODER_TEMP_DIR"),
            ffmpeg_binary=app.config.get("TRANSCODER_FFMPEG_BINARY", "ffmpeg"),
            queue_size=int(app.config.get("TRANSCODER_QUEUE_SIZE", 100)),
            prober=MediaProber(app.config.get("TRANSCODER_FFPROBE_BINARY", "ffprobe")),
            runner=ProcessRunner(niceness=int(app.config.get("TRANSCODER_NICENESS", 0) or 0)),
        )
    app.extensions["task_processor"] = processor
    if app.config.get("TRANSCODER_START_WORKER", True):
        processor.start()
    LOGGER.info("Loaded %d profile(s): %s", len(processor.profiles), ", ".join(processor.profiles.names()))
    return processor


def init_status_broadcaster(app: Flask, processor: TaskProcessor) -> Optional[TaskStatusBroadcaster]:
    redis_url = app.config.get("TRANSCODER_STATUS_REDIS_URL")
    if not redis_url:
        return None
    status_broadcaster = TaskStatusBroadcaster(
        redis_url=redis_url,
        prefix=app.config.get("TRANSCODER_STATUS_PREFIX", "easy-transcoder"),
        namespace=app.config.get("TRANSCODER_STATUS_NAMESPACE", "tasks"),
        channel=app.config.get("TRANSCODER_STATUS_CHANNEL"),
        ttl_seconds=int(app.config.get("TRANSCODER_STATUS_TTL_SECONDS", 0) or 0),
    )
    if not status_broadcaster.available:
        LOGGER.warning(
            "Task status broadcasting unavailable: %s",
            status_broadcaster.last_error,
        )
    processor.registry.add_listener(status_broadcaster.publish)
    app.extensions["task_status_broadcaster"] = status_broadcaster
    return status_broadcaster


def init_task_services(app: Flask, processor: TaskProcessor) -> TaskService:
    auto_reject = AutoRejectPolicy(
        processor,
        enabled=bool(app.config.get("TRANSCODER_AUTO_REJECT_LARGER")),
        tolerance_percent=float(app.config.get("TRANSCODER_AUTO_REJECT_TOLERANCE_PERCENT", 0.0) or 0.0),
        scan_interval=float(app.config.get("TRANSCODER_AUTO_REJECT_INTERVAL_SECONDS", 30.0) or 30.0),
    )
    auto_reject.attach()
    service = TaskService(processor, prober=processor.prober, auto_reject=auto_reject)
    app.extensions["task_service"] = service
    return service


def register_blueprints(app: Flask) -> None:
    app.register_blueprint(api_bp)


def shutdown_app(app: Flask) -> None:
    """Stop background threads and the encoder owned by ``app``."""

    service = app.extensions.get("task_service")
    if isinstance(service, TaskService):
        service.auto_reject.detach()
    processor = app.extensions.get("task_processor")
    if isinstance(processor, TaskProcessor):
        processor.shutdown()
    broadcaster = app.extensions.get("task_status_broadcaster")
    if isinstance(broadcaster, TaskStatusBroadcaster):
        broadcaster.close()


__all__ = [
    "init_processor",
    "init_status_broadcaster",
    "init_task_services",
    "register_blueprints",
    "shutdown_app",
]
