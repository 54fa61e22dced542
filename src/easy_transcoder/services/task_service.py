"""Facade over the processor used by the HTTP layer."""
from __future__ import annotations

import threading
from typing import Any, Dict, List, Optional

from flask import Flask

from ..engine import (
    MediaProber,
    ProfileNotFoundError,
    TaskNotFoundError,
    TaskProcessor,
    TaskSnapshot,
)
from .auto_reject import AutoRejectPolicy
from .batch import BatchSubmitter
from .metrics import QualityMetrics


class TaskService:
    """Domain-facing operations shared by routes and background policies."""

    def __init__(
        self,
        processor: TaskProcessor,
        *,
        prober: MediaProber,
        auto_reject: AutoRejectPolicy,
        metrics: Optional[QualityMetrics] = None,
    ) -> None:
        self._processor = processor
        self._auto_reject = auto_reject
        self._batch = BatchSubmitter(processor, prober)
        self._metrics = metrics or QualityMetrics(processor.ffmpeg_binary)

    @property
    def processor(self) -> TaskProcessor:
        return self._processor

    @property
    def auto_reject(self) -> AutoRejectPolicy:
        return self._auto_reject

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------
    def list_tasks(self) -> List[Dict[str, Any]]:
        return [snapshot.to_dict() for snapshot in self._processor.list()]

    def task(self, task_id: int) -> TaskSnapshot:
        snapshot = self._processor.get(task_id)
        if snapshot is None:
            raise TaskNotFoundError(task_id)
        return snapshot

    def submit(self, path: str, profile_name: str) -> int:
        if self._processor.profiles.get(profile_name) is None:
            raise ProfileNotFoundError(profile_name)
        return self._processor.submit(path, profile_name)

    def submit_batch(self, directory: str, profile_name: str) -> threading.Thread:
        return self._batch.start(directory, profile_name)

    def cancel(self, task_id: int) -> None:
        self._processor.cancel(task_id)

    def resolve(self, task_id: int, replace: bool) -> threading.Thread:
        return self._processor.resolve(task_id, replace)

    def profiles(self) -> List[Dict[str, Any]]:
        return [profile.to_dict() for profile in self._processor.profiles]

    # ------------------------------------------------------------------
    # Settings and metrics
    # ------------------------------------------------------------------
    def settings_payload(self) -> Dict[str, Any]:
        return {
            "enabled": self._auto_reject.enabled,
            "tolerance_percent": self._auto_reject.tolerance_percent,
        }

    def set_auto_reject(self, enabled: bool) -> Dict[str, Any]:
        self._auto_reject.set_enabled(enabled)
        return self.settings_payload()

    def metric(self, name: str, reference: str, distorted: str) -> float:
        return self._metrics.calculate(name, reference, distorted)


def get_task_service(app: Flask) -> TaskService:
    service = app.extensions.get("task_service")
    if isinstance(service, TaskService):
        return service
    raise RuntimeError("Task service not initialised on Flask app.")


__all__ = ["TaskService", "get_task_service"]
