"""Unix-socket endpoint that receives FFmpeg ``-progress`` output."""
from __future__ import annotations

import logging
import os
import re
import socket
import tempfile
import threading
import uuid
from pathlib import Path
from typing import Callable, Optional

LOGGER = logging.getLogger(__name__)

# ``out_time_ms`` is historically misnamed by FFmpeg and carries microseconds too.
_ELAPSED_PATTERN = re.compile(rb"out_time_(?:us|ms)=(\d+)")
_END_MARKER = b"progress=end"
_POLL_INTERVAL = 0.2
_READ_SIZE = 4096

ProgressCallback = Callable[[float], None]


class ProgressParser:
    """Turn the ``key=value`` progress stream into a completion fraction."""

    def __init__(self, total_duration: float, *, scale: float = 1_000_000.0) -> None:
        if total_duration <= 0:
            raise ValueError("total_duration must be positive")
        self._denominator = float(total_duration) * scale
        self._buffer = b""
        self._elapsed: Optional[int] = None
        self._ended = False

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def elapsed(self) -> Optional[int]:
        return self._elapsed

    def feed(self, data: bytes) -> float:
        """Consume a chunk and return the current fraction in ``[0, 1]``."""

        self._buffer += data
        # Keep only the unterminated tail; complete lines are scanned once.
        complete, newline, tail = self._buffer.rpartition(b"\n")
        if newline:
            self._scan(complete)
            self._buffer = tail
        return self.fraction

    def close(self) -> float:
        if self._buffer:
            self._scan(self._buffer)
            self._buffer = b""
        return self.fraction

    @property
    def fraction(self) -> float:
        if self._ended:
            return 1.0
        if self._elapsed is None:
            return 0.0
        return min(1.0, max(0.0, self._elapsed / self._denominator))

    def _scan(self, chunk: bytes) -> None:
        matches = _ELAPSED_PATTERN.findall(chunk)
        if matches:
            self._elapsed = int(matches[-1])
        if _END_MARKER in chunk:
            self._ended = True


class ProgressChannel:
    """Scoped listening endpoint for a single task's encoder progress.

    Use as a context manager: the socket is bound on enter and the listener
    thread, connection and socket file are torn down on exit.
    """

    def __init__(
        self,
        total_duration: float,
        callback: ProgressCallback,
        *,
        directory: Optional[Path] = None,
        label: Optional[str] = None,
    ) -> None:
        self._parser = ProgressParser(total_duration)
        self._callback = callback
        self._directory = Path(directory) if directory else Path(tempfile.gettempdir())
        self._label = label or "progress"
        self._path: Optional[Path] = None
        self._listener: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @property
    def path(self) -> Path:
        if self._path is None:
            raise RuntimeError("Progress channel is not open")
        return self._path

    @property
    def address(self) -> str:
        return f"unix://{self.path}"

    @property
    def parser(self) -> ProgressParser:
        return self._parser

    def open(self) -> "ProgressChannel":
        path = self._directory / f"et-{uuid.uuid4().hex[:12]}.sock"
        listener = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            listener.bind(str(path))
            listener.listen(1)
            listener.settimeout(_POLL_INTERVAL)
        except OSError:
            listener.close()
            raise
        self._path = path
        self._listener = listener
        self._stop_event.clear()
        thread = threading.Thread(
            target=self._serve,
            name=f"progress-{self._label}",
            daemon=True,
        )
        self._thread = thread
        thread.start()
        LOGGER.debug("Progress channel listening on %s", path)
        return self

    def close(self) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread.is_alive():
            thread.join(timeout=2.0)
        self._thread = None
        listener = self._listener
        if listener is not None:
            listener.close()
        self._listener = None
        path = self._path
        if path is not None:
            try:
                os.unlink(path)
            except FileNotFoundError:
                pass
            except OSError as exc:
                LOGGER.warning("Failed to remove progress socket %s: %s", path, exc)
            LOGGER.debug("Progress channel %s closed", path)

    def __enter__(self) -> "ProgressChannel":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Listener thread
    # ------------------------------------------------------------------
    def _serve(self) -> None:
        listener = self._listener
        if listener is None:
            return
        connection: Optional[socket.socket] = None
        while connection is None:
            try:
                connection, _ = listener.accept()
            except socket.timeout:
                if self._stop_event.is_set():
                    return
            except OSError as exc:
                LOGGER.debug("Progress socket accept ended: %s", exc)
                return

        # Drain until EOF; the stop flag only ends an idle connection.
        connection.settimeout(_POLL_INTERVAL)
        try:
            while True:
                try:
                    data = connection.recv(_READ_SIZE)
                except socket.timeout:
                    if self._stop_event.is_set():
                        break
                    continue
                except OSError as exc:
                    LOGGER.debug("Progress socket read ended: %s", exc)
                    break
                if not data:
                    self._emit(self._parser.close())
                    break
                self._emit(self._parser.feed(data))
                if self._parser.ended:
                    LOGGER.debug("Encoder reported progress=end")
        finally:
            connection.close()

    def _emit(self, fraction: float) -> None:
        try:
            self._callback(fraction)
        except Exception:
            LOGGER.exception("Progress callback failed")


__all__ = ["ProgressCallback", "ProgressChannel", "ProgressParser"]
