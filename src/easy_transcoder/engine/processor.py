"""Queue and worker loop that drive tasks through the state machine."""
from __future__ import annotations

import logging
import queue
import tempfile
import threading
from pathlib import Path
from typing import Callable, List, Optional

from .exceptions import (
    ProfileNotFoundError,
    QueueFullError,
    TempAllocationError,
    TranscoderError,
)
from .probe import MediaProber
from .profiles import ProfileRegistry
from .progress import ProgressChannel
from .registry import TaskRegistry
from .resolver import Resolver, remove_task_directory
from .runner import ProcessRunner
from .stop_strategy import StopStrategy
from .task import Task, TaskSnapshot, TaskStatus

LOGGER = logging.getLogger(__name__)

WaitingCallback = Callable[[TaskSnapshot], None]

DEFAULT_QUEUE_SIZE = 100


class TaskProcessor:
    """Accept submissions and run them one at a time on a worker thread."""

    def __init__(
        self,
        *,
        profiles: ProfileRegistry,
        temp_dir: Optional[str | Path] = None,
        ffmpeg_binary: str = "ffmpeg",
        queue_size: int = DEFAULT_QUEUE_SIZE,
        registry: Optional[TaskRegistry] = None,
        prober: Optional[MediaProber] = None,
        runner: Optional[ProcessRunner] = None,
        stop_strategy: Optional[StopStrategy] = None,
        resolver: Optional[Resolver] = None,
        socket_dir: Optional[str | Path] = None,
    ) -> None:
        self.profiles = profiles
        self.registry = registry or TaskRegistry()
        self.ffmpeg_binary = ffmpeg_binary
        self._temp_root = Path(temp_dir) if temp_dir else Path(tempfile.gettempdir()) / "easy-transcoder"
        self._socket_dir = Path(socket_dir) if socket_dir else None
        self._prober = prober or MediaProber()
        self._runner = runner or ProcessRunner()
        self._stopper = stop_strategy or StopStrategy()
        self._resolver = resolver or Resolver(self.registry)
        self._queue: "queue.Queue[int]" = queue.Queue(maxsize=max(1, int(queue_size)))
        self._submit_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._on_waiting: Optional[WaitingCallback] = None

    @property
    def temp_root(self) -> Path:
        return self._temp_root

    @property
    def prober(self) -> MediaProber:
        return self._prober

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        thread = self._thread
        if thread and thread.is_alive():
            return
        self._stop_event.clear()
        thread = threading.Thread(target=self._worker, name="transcoder-worker", daemon=True)
        self._thread = thread
        thread.start()
        LOGGER.info("Task processor worker started (queue capacity=%d)", self._queue.maxsize)

    def shutdown(self, timeout: float = 10.0) -> None:
        """Stop the worker loop, stopping a running encoder if necessary."""

        self._stop_event.set()
        for task_id, handle in self.registry.live_handles().items():
            LOGGER.info("Stopping encoder for task %s during shutdown", task_id)
            self.registry.request_cancel(task_id)
            self._stopper.shutdown(handle)
        thread = self._thread
        if thread is not None and thread.is_alive():
            thread.join(timeout=timeout)
        self._thread = None

    def running(self) -> bool:
        thread = self._thread
        return bool(thread and thread.is_alive())

    def set_on_waiting_for_resolution(self, callback: Optional[WaitingCallback]) -> None:
        self._on_waiting = callback

    # ------------------------------------------------------------------
    # Registry query surface
    # ------------------------------------------------------------------
    def submit(self, input_path: str, profile_name: str) -> int:
        """Create a pending task and enqueue it; raises ``QueueFullError`` when saturated."""

        with self._submit_lock:
            # Only submitters add to the queue, so a non-full check holds until put.
            if self._queue.full():
                raise QueueFullError(
                    f"Task queue is full ({self._queue.maxsize} pending); try again later"
                )
            snapshot = self.registry.create(input_path, profile_name)
            self._queue.put_nowait(snapshot.id)
        LOGGER.info(
            "Task %s added to queue (input=%s profile=%s)",
            snapshot.id,
            input_path,
            profile_name,
        )
        return snapshot.id

    def get(self, task_id: int) -> Optional[TaskSnapshot]:
        return self.registry.get(task_id)

    def list(self) -> List[TaskSnapshot]:
        return self.registry.list()

    def has_task(self, input_path: str, profile_name: str) -> bool:
        return self.registry.find_active(input_path, profile_name) is not None

    def cancel(self, task_id: int) -> None:
        """Request cancellation; does not wait for the task to stop."""

        accepted, handle = self.registry.request_cancel(task_id)
        if not accepted:
            snapshot = self.registry.require(task_id)
            LOGGER.info("Task %s is %s; cancel ignored", task_id, snapshot.status.value)
            return
        LOGGER.info("Cancellation requested for task %s", task_id)
        if handle is not None:
            handle.terminate()

    def resolve(self, task_id: int, replace: bool) -> threading.Thread:
        return self._resolver.resolve(task_id, replace)

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------
    def _worker(self) -> None:
        while not self._stop_event.is_set():
            try:
                task_id = self._queue.get(timeout=0.5)
            except queue.Empty:
                continue
            try:
                self.process_task(task_id)
            except Exception as exc:
                LOGGER.exception("Unexpected error while processing task %s", task_id)
                self._fail_if_running(task_id, exc)
            finally:
                self._queue.task_done()
        LOGGER.info("Task processor worker stopped")

    def process_task(self, task_id: int) -> TaskSnapshot:
        """Run one dequeued task to its post-encoder status."""

        snapshot = self.registry.update(task_id, Task.mark_processing)
        if snapshot.cancel_requested:
            LOGGER.info("Task %s cancelled before start", task_id)
            return self.registry.update(task_id, Task.mark_cancelled)

        try:
            duration = self._prober.duration(snapshot.input)
            profile = self.profiles.get(snapshot.profile_name)
            if profile is None:
                raise ProfileNotFoundError(snapshot.profile_name)
            if self._cancel_pending(task_id):
                return self._finish_cancelled(task_id)
            temp_output = self._allocate_temp_output(task_id, snapshot.input)
            self.registry.update(task_id, lambda task: task.set_temp_output(str(temp_output)))
            if self._cancel_pending(task_id):
                return self._finish_cancelled(task_id)

            def _on_progress(fraction: float) -> None:
                LOGGER.debug("Task %s progress %.2f%%", task_id, fraction * 100)
                self.registry.update(task_id, lambda task: task.set_progress(fraction))

            with ProgressChannel(
                duration,
                _on_progress,
                directory=self._socket_dir,
                label=str(task_id),
            ) as channel:
                command = profile.compile(
                    snapshot.input,
                    str(temp_output),
                    channel.address,
                    ffmpeg_binary=self.ffmpeg_binary,
                )
                handle = self._runner.launch(command)
                try:
                    if self.registry.attach_handle(task_id, handle):
                        handle.terminate()
                    result = handle.wait()
                finally:
                    self.registry.detach_handle(task_id)
        except (TranscoderError, OSError) as exc:
            LOGGER.error("Task %s failed: %s", task_id, exc)
            return self._finish_failed(task_id, exc)

        final = self.registry.update(
            task_id,
            lambda task: task.finish_run(result.returncode, result.stderr),
        )
        LOGGER.info(
            "Task %s encoder exited with %s -> %s",
            task_id,
            result.returncode,
            final.status.value,
        )
        if final.status is not TaskStatus.WAITING_FOR_RESOLUTION:
            self._discard_output(final)
        else:
            self._notify_waiting(final)
        return final

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _allocate_temp_output(self, task_id: int, input_path: str) -> Path:
        try:
            self._temp_root.mkdir(parents=True, exist_ok=True)
            task_dir = Path(tempfile.mkdtemp(prefix=f"task-{task_id}-", dir=self._temp_root))
        except OSError as exc:
            raise TempAllocationError(
                f"Cannot create temp directory under {self._temp_root}: {exc}"
            ) from exc
        return task_dir / Path(input_path).name

    def _cancel_pending(self, task_id: int) -> bool:
        snapshot = self.registry.require(task_id)
        if snapshot.cancel_requested:
            LOGGER.info("Task %s cancelled before launch", task_id)
        return snapshot.cancel_requested

    def _finish_cancelled(self, task_id: int) -> TaskSnapshot:
        snapshot = self.registry.update(task_id, Task.mark_cancelled)
        self._discard_output(snapshot)
        return snapshot

    def _finish_failed(self, task_id: int, error: BaseException) -> TaskSnapshot:
        """Record a pre-exit failure; a pending cancel wins over the error."""

        def _finish(task: Task) -> None:
            if task.cancel_requested:
                task.mark_cancelled()
            else:
                task.mark_failed(error)

        snapshot = self.registry.update(task_id, _finish)
        self._discard_output(snapshot)
        return snapshot

    def _fail_if_running(self, task_id: int, error: BaseException) -> None:
        snapshot = self.registry.get(task_id)
        if snapshot is None or snapshot.status is not TaskStatus.PROCESSING:
            return
        self._finish_failed(task_id, error)

    def _discard_output(self, snapshot: TaskSnapshot) -> None:
        try:
            remove_task_directory(snapshot.temp_output)
        except OSError as exc:
            LOGGER.warning("Task %s: failed to remove temp output: %s", snapshot.id, exc)

    def _notify_waiting(self, snapshot: TaskSnapshot) -> None:
        callback = self._on_waiting
        if callback is None:
            return
        try:
            callback(snapshot)
        except Exception:
            LOGGER.exception("Waiting-for-resolution callback failed for task %s", snapshot.id)


__all__ = ["DEFAULT_QUEUE_SIZE", "TaskProcessor", "WaitingCallback"]
