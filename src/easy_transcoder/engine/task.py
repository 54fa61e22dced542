"""Task records and the transition rules that govern them."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from .exceptions import (
    InvalidTransitionError,
    ProcessError,
    ResolutionStateError,
)


class TaskStatus(str, Enum):
    """Lifecycle states of a transcoding task."""

    PENDING = "pending"
    PROCESSING = "processing"
    # Encoder finished; a keep/replace decision is required.
    WAITING_FOR_RESOLUTION = "waiting_for_resolution"
    REPLACING = "replacing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.CANCELLED, TaskStatus.FAILED})

TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.PROCESSING}),
    TaskStatus.PROCESSING: frozenset(
        {TaskStatus.WAITING_FOR_RESOLUTION, TaskStatus.FAILED, TaskStatus.CANCELLED}
    ),
    TaskStatus.WAITING_FOR_RESOLUTION: frozenset({TaskStatus.REPLACING}),
    TaskStatus.REPLACING: frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.CANCELLED: frozenset(),
    TaskStatus.FAILED: frozenset(),
}


class CancelState(str, Enum):
    """Cancellation is requested by callers and observed by the worker."""

    NONE = "none"
    REQUESTED = "requested"
    OBSERVED = "observed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TaskSnapshot:
    """Immutable copy of a task handed out by the registry."""

    id: int
    input: str
    profile_name: str
    status: TaskStatus
    progress: float
    created_at: datetime
    temp_output: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    cancel_requested: bool = False
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    @property
    def finished(self) -> bool:
        return self.status.terminal

    @property
    def duration(self) -> float:
        """Seconds spent since processing started (frozen once finished)."""

        if self.started_at is None:
            return 0.0
        end = self.ended_at or _utcnow()
        return max(0.0, (end - self.started_at).total_seconds())

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "input": self.input,
            "profile": self.profile_name,
            "status": self.status.value,
            "progress": self.progress,
            "temp_output": self.temp_output,
            "cancel_requested": self.cancel_requested,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration": self.duration,
        }
        if self.error is not None:
            payload["error"] = {"kind": self.error_kind, "message": self.error}
        return payload


@dataclass
class Task:
    """Canonical, mutable task record.

    Only :class:`~easy_transcoder.engine.registry.TaskRegistry` holds these;
    every method below is meant to run inside ``TaskRegistry.update``.
    """

    id: int
    input: str
    profile_name: str
    status: TaskStatus = TaskStatus.PENDING
    progress: float = 0.0
    temp_output: Optional[str] = None
    error: Optional[BaseException] = None
    cancel_state: CancelState = CancelState.NONE
    created_at: datetime = field(default_factory=_utcnow)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    @property
    def cancel_requested(self) -> bool:
        return self.cancel_state is not CancelState.NONE

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def _transition(self, target: TaskStatus) -> None:
        if target not in TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Task {self.id}: cannot move from {self.status.value} to {target.value}"
            )
        self.status = target

    def mark_processing(self) -> None:
        self._transition(TaskStatus.PROCESSING)
        self.started_at = _utcnow()

    def mark_failed(self, error: BaseException) -> None:
        self._transition(TaskStatus.FAILED)
        self.error = error
        self.ended_at = _utcnow()

    def mark_cancelled(self) -> None:
        self._transition(TaskStatus.CANCELLED)
        self.cancel_state = CancelState.OBSERVED
        self.ended_at = _utcnow()

    def mark_waiting_for_resolution(self) -> None:
        self._transition(TaskStatus.WAITING_FOR_RESOLUTION)
        self.progress = 1.0
        self.ended_at = _utcnow()

    def begin_replacing(self) -> None:
        if self.status is not TaskStatus.WAITING_FOR_RESOLUTION:
            raise ResolutionStateError(
                f"Task {self.id} is {self.status.value}, not waiting for resolution"
            )
        self._transition(TaskStatus.REPLACING)

    def mark_completed(self) -> None:
        self._transition(TaskStatus.COMPLETED)
        self.progress = 1.0
        self.ended_at = _utcnow()

    def finish_run(self, returncode: Optional[int], stderr: str = "") -> None:
        """Classify a just-exited encoder; the single cancellation checkpoint."""

        if self.cancel_requested:
            self.mark_cancelled()
        elif returncode != 0:
            self.mark_failed(ProcessError(returncode, stderr))
        else:
            self.mark_waiting_for_resolution()

    # ------------------------------------------------------------------
    # Field updates
    # ------------------------------------------------------------------
    def request_cancel(self) -> bool:
        """Flag the task for cancellation; ``False`` when it is past the point of cancelling."""

        if self.status not in (TaskStatus.PENDING, TaskStatus.PROCESSING):
            return False
        if self.cancel_state is CancelState.NONE:
            self.cancel_state = CancelState.REQUESTED
        return True

    def set_progress(self, value: float) -> None:
        if self.status is not TaskStatus.PROCESSING:
            return
        clamped = min(1.0, max(0.0, float(value)))
        if clamped > self.progress:
            self.progress = clamped

    def set_temp_output(self, path: str) -> None:
        if self.temp_output is not None:
            raise InvalidTransitionError(f"Task {self.id}: temp output already assigned")
        self.temp_output = path

    def snapshot(self) -> TaskSnapshot:
        error = self.error
        return TaskSnapshot(
            id=self.id,
            input=self.input,
            profile_name=self.profile_name,
            status=self.status,
            progress=self.progress,
            created_at=self.created_at,
            temp_output=self.temp_output,
            error=str(error) if error is not None else None,
            error_kind=type(error).__name__ if error is not None else None,
            cancel_requested=self.cancel_requested,
            started_at=self.started_at,
            ended_at=self.ended_at,
        )


__all__ = [
    "CancelState",
    "Task",
    "TaskSnapshot",
    "TaskStatus",
    "TERMINAL_STATUSES",
    "TRANSITIONS",
]
