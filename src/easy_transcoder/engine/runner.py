"""Launch the external encoder and expose a handle to the running process."""
from __future__ import annotations

import logging
import shlex
import signal
import subprocess
from dataclasses import dataclass
from typing import Optional, Sequence

from .exceptions import ProcessError

LOGGER = logging.getLogger(__name__)

_STDERR_TAIL_CHARS = 2000


@dataclass(frozen=True)
class ExitResult:
    """Return code and trailing stderr of a finished encoder."""

    returncode: Optional[int]
    stderr: str = ""


class EncoderHandle:
    """Live encoder process that can be waited on and asked to stop."""

    def __init__(self, process: subprocess.Popen) -> None:
        self.process = process

    @property
    def pid(self) -> int:
        return self.process.pid

    def running(self) -> bool:
        return self.process.poll() is None

    def terminate(self) -> None:
        """Send SIGTERM so the encoder can finish writing and exit."""

        if self.process.poll() is not None:
            return
        try:
            LOGGER.info("Sending SIGTERM to encoder (pid=%s)", self.process.pid)
            self.process.send_signal(signal.SIGTERM)
        except ProcessLookupError:
            LOGGER.debug("Encoder %s exited before it could be signalled", self.process.pid)

    def wait(self) -> ExitResult:
        _, stderr = self.process.communicate()
        tail = (stderr or "")[-_STDERR_TAIL_CHARS:]
        return ExitResult(returncode=self.process.returncode, stderr=tail)


class ProcessRunner:
    """Start encoder commands, optionally at a reduced scheduling priority."""

    def __init__(self, *, niceness: int = 0) -> None:
        self._niceness = int(niceness)

    def build_argv(self, command: Sequence[str]) -> list[str]:
        argv = [str(part) for part in command]
        if self._niceness:
            argv = ["nice", "-n", str(self._niceness), *argv]
        return argv

    def launch(self, command: Sequence[str]) -> EncoderHandle:
        argv = self.build_argv(command)
        LOGGER.info("Starting encoder: %s", shlex.join(argv))
        try:
            process = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
            )
        except OSError as exc:
            raise ProcessError(None, f"failed to start {argv[0]}: {exc}") from exc
        return EncoderHandle(process)


__all__ = ["EncoderHandle", "ExitResult", "ProcessRunner"]
