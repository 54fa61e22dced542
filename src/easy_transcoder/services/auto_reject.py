"""Policy that discards results which came out larger than their source."""
from __future__ import annotations

import logging
import os
import threading
from typing import Optional

from ..engine import (
    HeartbeatLoop,
    ResolutionStateError,
    TaskNotFoundError,
    TaskProcessor,
    TaskSnapshot,
    TaskStatus,
)

LOGGER = logging.getLogger(__name__)


class AutoRejectPolicy:
    """Keep the original whenever the transcoded file is strictly larger.

    ``tolerance_percent`` widens the band: a result is rejected only when it
    exceeds the original by more than that percentage. The default of ``0``
    rejects on any growth and keeps equal-sized results.
    """

    def __init__(
        self,
        processor: TaskProcessor,
        *,
        enabled: bool = False,
        tolerance_percent: float = 0.0,
        scan_interval: float = 30.0,
    ) -> None:
        self._processor = processor
        self._lock = threading.Lock()
        self._enabled = bool(enabled)
        self._tolerance = max(0.0, float(tolerance_percent))
        self._heartbeat = HeartbeatLoop(scan_interval, self._scan_if_enabled, name="auto-reject-scanner")

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------
    @property
    def enabled(self) -> bool:
        with self._lock:
            return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        with self._lock:
            self._enabled = bool(enabled)
        LOGGER.info("Auto-reject setting updated (enabled=%s)", enabled)
        if enabled:
            threading.Thread(target=self.scan, name="auto-reject-scan", daemon=True).start()

    @property
    def tolerance_percent(self) -> float:
        return self._tolerance

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def attach(self) -> None:
        """Register as the waiting-for-resolution hook and start the periodic scanner."""

        self._processor.set_on_waiting_for_resolution(self.handle)
        self._heartbeat.start()
        LOGGER.info("Auto-reject scanner started (interval=%.1fs)", self._heartbeat.interval)

    def detach(self) -> None:
        self._heartbeat.stop()
        self._processor.set_on_waiting_for_resolution(None)

    # ------------------------------------------------------------------
    # Policy
    # ------------------------------------------------------------------
    def should_reject(self, original_size: int, result_size: int) -> bool:
        threshold = original_size * (1.0 + self._tolerance / 100.0)
        return result_size > threshold

    def handle(self, snapshot: TaskSnapshot) -> Optional[threading.Thread]:
        """Apply the policy to one task; returns the resolver thread when it rejects."""

        if not self.enabled:
            return None
        if snapshot.status is not TaskStatus.WAITING_FOR_RESOLUTION:
            return None
        if not snapshot.temp_output:
            LOGGER.warning("Task %s has no result file; skipping auto-reject", snapshot.id)
            return None

        try:
            original_size = os.path.getsize(snapshot.input)
            result_size = os.path.getsize(snapshot.temp_output)
        except OSError as exc:
            LOGGER.error("Task %s: cannot compare file sizes for auto-reject: %s", snapshot.id, exc)
            return None

        LOGGER.debug(
            "Task %s: auto-reject comparing sizes (original=%d result=%d)",
            snapshot.id,
            original_size,
            result_size,
        )
        if not self.should_reject(original_size, result_size):
            return None

        LOGGER.info(
            "Auto-rejecting task %s: result is %d bytes larger than the original",
            snapshot.id,
            result_size - original_size,
        )
        try:
            return self._processor.resolve(snapshot.id, replace=False)
        except (ResolutionStateError, TaskNotFoundError) as exc:
            LOGGER.debug("Task %s was resolved concurrently: %s", snapshot.id, exc)
            return None

    def scan(self) -> int:
        """Apply the policy to every task currently waiting for resolution."""

        waiting = [
            snapshot
            for snapshot in self._processor.list()
            if snapshot.status is TaskStatus.WAITING_FOR_RESOLUTION
        ]
        for snapshot in waiting:
            self.handle(snapshot)
        if waiting:
            LOGGER.info("Processed %d waiting task(s) for auto-reject", len(waiting))
        return len(waiting)

    def _scan_if_enabled(self) -> None:
        if self.enabled:
            LOGGER.debug("Auto-reject scanner checking waiting tasks")
            self.scan()


__all__ = ["AutoRejectPolicy"]
