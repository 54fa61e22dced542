"""Signal escalation used to stop an encoder when the service shuts down."""
from __future__ import annotations

import logging
import signal
from subprocess import TimeoutExpired
from typing import Optional

from .runner import EncoderHandle

LOGGER = logging.getLogger(__name__)


class StopStrategy:
    """Escalate SIGINT, SIGTERM and SIGKILL until the encoder exits."""

    def __init__(
        self,
        *,
        graceful_timeout: float = 5.0,
        terminate_timeout: float = 5.0,
        kill_timeout: float = 2.0,
    ) -> None:
        self._graceful_timeout = max(0.0, graceful_timeout)
        self._terminate_timeout = max(0.0, terminate_timeout)
        self._kill_timeout = max(0.0, kill_timeout)

    def shutdown(self, handle: EncoderHandle) -> Optional[int]:
        """Stop the encoder process and return its exit code when known."""

        process = handle.process
        if process.poll() is not None:
            return process.returncode

        try:
            LOGGER.info("Sending SIGINT to encoder (pid=%s)", process.pid)
            process.send_signal(signal.SIGINT)
        except ProcessLookupError:
            return process.poll()

        returncode = self._wait_for_exit(process, self._graceful_timeout)
        if returncode is None:
            LOGGER.warning("Encoder still running after SIGINT; sending SIGTERM")
            try:
                process.terminate()
            except ProcessLookupError:
                pass
            returncode = self._wait_for_exit(process, self._terminate_timeout)

        if returncode is None:
            LOGGER.error("Encoder ignored SIGTERM; sending SIGKILL")
            try:
                process.kill()
            except ProcessLookupError:
                pass
            returncode = self._wait_for_exit(process, self._kill_timeout)
            if returncode is None:
                LOGGER.error("Encoder process still running after SIGKILL attempt")
                returncode = process.returncode

        if returncode is not None:
            LOGGER.info("Encoder exited with %s", returncode)
        else:
            LOGGER.warning("Encoder exit code unknown after stop sequence")
        return returncode

    def _wait_for_exit(self, process, timeout: float) -> Optional[int]:
        try:
            return process.wait(timeout=timeout)
        except TimeoutExpired:
            return None


__all__ = ["StopStrategy"]
