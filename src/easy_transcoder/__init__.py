"""Root package for the easy-transcoder service."""
from __future__ import annotations

from .app import create_app, shutdown_app
from .engine import TaskProcessor, TaskSnapshot, TaskStatus, TaskStatusBroadcaster
from .routes import api_bp

__all__ = [
    "create_app",
    "shutdown_app",
    "api_bp",
    "TaskProcessor",
    "TaskSnapshot",
    "TaskStatus",
    "TaskStatusBroadcaster",
]
