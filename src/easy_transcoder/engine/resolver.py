"""Keep-or-replace finalisation of transcoded results."""
from __future__ import annotations

import logging
import os
import shutil
import stat
import tempfile
import threading
from pathlib import Path
from typing import Optional

from .exceptions import FileSwapError
from .registry import TaskRegistry
from .task import Task, TaskSnapshot

LOGGER = logging.getLogger(__name__)

_COPY_BUFFER = 1024 * 1024


def _preallocate(fd: int, size: int) -> bool:
    fallocate = getattr(os, "posix_fallocate", None)
    if fallocate is None or size <= 0:
        return False
    try:
        fallocate(fd, 0, size)
    except OSError as exc:
        LOGGER.warning("File preallocation failed, continuing with regular copy: %s", exc)
        return False
    LOGGER.debug("Preallocated %d bytes", size)
    return True


def replace_file(src: str | Path, dst: str | Path, *, preallocate: bool = True) -> int:
    """Replace ``dst`` with the contents of ``src`` without exposing a partial file.

    The bytes are written to a hidden sibling of ``dst`` and renamed over it,
    so readers only ever see the old or the new file. Returns the number of
    bytes written.
    """

    src_path = Path(src)
    dst_path = Path(dst)
    try:
        src_size = src_path.stat().st_size
    except OSError as exc:
        raise FileSwapError(f"Cannot read transcoded file {src_path}: {exc}") from exc

    try:
        fd, tmp_name = tempfile.mkstemp(prefix=f".tmp_{dst_path.name}.", dir=dst_path.parent)
    except OSError as exc:
        raise FileSwapError(f"Cannot create temporary file next to {dst_path}: {exc}") from exc
    tmp_path = Path(tmp_name)

    try:
        with os.fdopen(fd, "wb") as tmp_handle:
            if preallocate:
                _preallocate(tmp_handle.fileno(), src_size)
            with src_path.open("rb") as src_handle:
                shutil.copyfileobj(src_handle, tmp_handle, _COPY_BUFFER)
            # Preallocation may leave the file longer than the payload.
            tmp_handle.truncate()
            tmp_handle.flush()
            os.fsync(tmp_handle.fileno())
        written = tmp_path.stat().st_size

        try:
            mode = stat.S_IMODE(dst_path.stat().st_mode)
        except FileNotFoundError:
            mode = None
        if mode is not None:
            try:
                os.chmod(tmp_path, mode)
            except OSError as exc:
                LOGGER.warning("Failed to preserve permissions of %s: %s", dst_path, exc)

        os.replace(tmp_path, dst_path)
    except OSError as exc:
        try:
            tmp_path.unlink()
        except FileNotFoundError:
            pass
        except OSError:
            LOGGER.warning("Failed to remove temporary file %s", tmp_path)
        raise FileSwapError(f"Failed to replace {dst_path}: {exc}") from exc

    LOGGER.info("Replaced %s (%d bytes)", dst_path, written)
    return written


def remove_task_directory(temp_output: Optional[str]) -> None:
    """Delete the isolated temp directory that holds a task's output."""

    if not temp_output:
        return
    directory = Path(temp_output).parent
    try:
        shutil.rmtree(directory)
    except FileNotFoundError:
        return
    LOGGER.debug("Removed temp directory %s", directory)


class Resolver:
    """Apply keep/replace decisions to tasks waiting for resolution."""

    def __init__(self, registry: TaskRegistry, *, preallocate: bool = True) -> None:
        self._registry = registry
        self._preallocate = preallocate

    def resolve(self, task_id: int, replace: bool) -> threading.Thread:
        """Claim the task and finish it on a background thread.

        Raises ``ResolutionStateError`` (leaving the task untouched) unless it
        is waiting for resolution.
        """

        snapshot = self._registry.update(task_id, Task.begin_replacing)
        LOGGER.info("Resolving task %s (replace=%s)", task_id, replace)
        thread = threading.Thread(
            target=self._run,
            args=(snapshot, replace),
            name=f"resolve-{task_id}",
            daemon=True,
        )
        thread.start()
        return thread

    def _run(self, snapshot: TaskSnapshot, replace: bool) -> None:
        try:
            self.finalize(snapshot, replace)
        except FileSwapError as exc:
            LOGGER.error("Task %s resolution failed: %s", snapshot.id, exc)
            self._registry.update(snapshot.id, lambda task: task.mark_failed(exc))
            return
        except OSError as exc:
            LOGGER.error("Task %s resolution failed: %s", snapshot.id, exc)
            error = FileSwapError(str(exc))
            self._registry.update(snapshot.id, lambda task: task.mark_failed(error))
            return
        except Exception as exc:
            LOGGER.exception("Task %s resolution failed unexpectedly", snapshot.id)
            error = FileSwapError(f"Unexpected resolution error: {exc}")
            self._registry.update(snapshot.id, lambda task: task.mark_failed(error))
            return
        self._registry.update(snapshot.id, Task.mark_completed)
        LOGGER.info("Task %s resolved successfully", snapshot.id)

    def finalize(self, snapshot: TaskSnapshot, replace: bool) -> None:
        if not replace:
            LOGGER.info("Task %s: keeping original %s", snapshot.id, snapshot.input)
            if snapshot.temp_output is None:
                LOGGER.warning("Task %s has no temp output to clean up", snapshot.id)
            remove_task_directory(snapshot.temp_output)
            return

        if not snapshot.temp_output:
            raise FileSwapError(f"Task {snapshot.id} has no transcoded output")
        LOGGER.info("Task %s: replacing %s with transcoded result", snapshot.id, snapshot.input)
        replace_file(snapshot.temp_output, snapshot.input, preallocate=self._preallocate)
        try:
            remove_task_directory(snapshot.temp_output)
        except OSError as exc:
            LOGGER.error(
                "Task %s: failed to remove temp directory for %s: %s",
                snapshot.id,
                snapshot.temp_output,
                exc,
            )


__all__ = ["Resolver", "remove_task_directory", "replace_file"]
