"""Lock-guarded store for every task known to the process."""
from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional

from .exceptions import TaskNotFoundError
from .runner import EncoderHandle
from .task import Task, TaskSnapshot, TaskStatus

LOGGER = logging.getLogger(__name__)

TaskListener = Callable[[TaskSnapshot], None]


class TaskRegistry:
    """Own the canonical task records and their live encoder handles."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        # Held from snapshot to listener dispatch so listeners see updates in order.
        self._notify_lock = threading.RLock()
        self._last_id = 0
        self._tasks: Dict[int, Task] = {}
        self._handles: Dict[int, EncoderHandle] = {}
        self._listeners: List[TaskListener] = []

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def create(self, input_path: str, profile_name: str) -> TaskSnapshot:
        with self._notify_lock:
            with self._lock:
                self._last_id += 1
                task = Task(id=self._last_id, input=input_path, profile_name=profile_name)
                self._tasks[task.id] = task
                snapshot = task.snapshot()
            self._notify(snapshot)
        return snapshot

    def get(self, task_id: int) -> Optional[TaskSnapshot]:
        with self._lock:
            task = self._tasks.get(task_id)
            return task.snapshot() if task is not None else None

    def require(self, task_id: int) -> TaskSnapshot:
        snapshot = self.get(task_id)
        if snapshot is None:
            raise TaskNotFoundError(task_id)
        return snapshot

    def list(self) -> List[TaskSnapshot]:
        with self._lock:
            return [self._tasks[task_id].snapshot() for task_id in sorted(self._tasks)]

    def find_active(self, input_path: str, profile_name: str) -> Optional[TaskSnapshot]:
        """Return a live or finished-successfully task for the same input and profile."""

        with self._lock:
            for task_id in sorted(self._tasks):
                task = self._tasks[task_id]
                if task.input != input_path or task.profile_name != profile_name:
                    continue
                if task.cancel_requested or task.status in (TaskStatus.CANCELLED, TaskStatus.FAILED):
                    continue
                return task.snapshot()
        return None

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def update(self, task_id: int, mutator: Callable[[Task], object]) -> TaskSnapshot:
        """Apply ``mutator`` to the task atomically and return the new snapshot."""

        with self._notify_lock:
            with self._lock:
                task = self._tasks.get(task_id)
                if task is None:
                    raise TaskNotFoundError(task_id)
                mutator(task)
                snapshot = task.snapshot()
            self._notify(snapshot)
        return snapshot

    def request_cancel(self, task_id: int) -> tuple[bool, Optional[EncoderHandle]]:
        """Flag a task for cancellation.

        Returns whether the flag was set and the live handle (if any) that the
        caller should signal.
        """

        with self._notify_lock:
            with self._lock:
                task = self._tasks.get(task_id)
                if task is None:
                    raise TaskNotFoundError(task_id)
                accepted = task.request_cancel()
                handle = self._handles.get(task_id) if accepted else None
                snapshot = task.snapshot()
            if accepted:
                self._notify(snapshot)
        return accepted, handle

    def attach_handle(self, task_id: int, handle: EncoderHandle) -> bool:
        """Register the live encoder handle; returns ``True`` if a cancel is already pending."""

        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                raise TaskNotFoundError(task_id)
            self._handles[task_id] = handle
            return task.cancel_requested

    def detach_handle(self, task_id: int) -> Optional[EncoderHandle]:
        with self._lock:
            return self._handles.pop(task_id, None)

    def live_handles(self) -> Dict[int, EncoderHandle]:
        with self._lock:
            return dict(self._handles)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------
    def add_listener(self, listener: TaskListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def _notify(self, snapshot: TaskSnapshot) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception:
                LOGGER.exception("Task listener failed for task %s", snapshot.id)


__all__ = ["TaskListener", "TaskRegistry"]
