"""Service helpers layered over the task processor."""
from __future__ import annotations

from .auto_reject import AutoRejectPolicy
from .batch import BatchReport, BatchSubmitter
from .metrics import METRICS, QualityMetrics
from .task_service import TaskService, get_task_service

__all__ = [
    "AutoRejectPolicy",
    "BatchReport",
    "BatchSubmitter",
    "METRICS",
    "QualityMetrics",
    "TaskService",
    "get_task_service",
]
