"""Custom exceptions raised by the transcoding engine."""
from __future__ import annotations

from typing import Optional


class TranscoderError(RuntimeError):
    """Base error for the easy_transcoder package."""


class TaskNotFoundError(TranscoderError, LookupError):
    """Raised when a task id is not known to the registry."""

    def __init__(self, task_id: int) -> None:
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class QueueFullError(TranscoderError):
    """Raised when the pending queue cannot accept another submission."""


class InvalidTransitionError(TranscoderError):
    """Raised when a status change is not an edge of the task state machine."""


class ProbeError(TranscoderError):
    """Raised when a source file cannot be inspected with ffprobe."""


class ProfileNotFoundError(TranscoderError):
    """Raised when a task references an unknown encoding profile."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Profile not found: {name}")
        self.name = name


class TempAllocationError(TranscoderError):
    """Raised when the isolated per-task temp directory cannot be created."""


class ProcessError(TranscoderError):
    """Raised when the encoder exits non-zero without a cancel request."""

    def __init__(self, returncode: Optional[int], stderr: str = "") -> None:
        detail = stderr.strip()
        message = f"Encoder exited with {returncode}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class ResolutionStateError(TranscoderError):
    """Raised when resolving a task that is not waiting for resolution."""


class FileSwapError(TranscoderError):
    """Raised when replacing the original file with the result fails."""


class MetricError(TranscoderError):
    """Raised when a quality metric cannot be computed."""


class ConfigError(TranscoderError):
    """Raised when configuration is unreadable or fails validation."""


__all__ = [
    "TranscoderError",
    "TaskNotFoundError",
    "QueueFullError",
    "InvalidTransitionError",
    "ProbeError",
    "ProfileNotFoundError",
    "TempAllocationError",
    "ProcessError",
    "ResolutionStateError",
    "FileSwapError",
    "MetricError",
    "ConfigError",
]
