"""Submit every video under a directory tree with one profile."""
from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from ..engine import (
    MediaProber,
    ProbeError,
    Profile,
    ProfileNotFoundError,
    QueueFullError,
    TaskProcessor,
    VIDEO_EXTENSIONS,
)

LOGGER = logging.getLogger(__name__)


@dataclass
class BatchReport:
    """What a directory walk did with each candidate file."""

    submitted: List[int] = field(default_factory=list)
    skipped_filtered: List[str] = field(default_factory=list)
    skipped_duplicate: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


class BatchSubmitter:
    """Walk a directory and enqueue matching files, skipping duplicates."""

    def __init__(self, processor: TaskProcessor, prober: MediaProber) -> None:
        self._processor = processor
        self._prober = prober

    def validate(self, directory: str, profile_name: str) -> Profile:
        profile = self._processor.profiles.get(profile_name)
        if profile is None:
            raise ProfileNotFoundError(profile_name)
        if not Path(directory).is_dir():
            raise NotADirectoryError(directory)
        return profile

    def start(self, directory: str, profile_name: str) -> threading.Thread:
        """Validate synchronously, then walk the tree on a background thread."""

        profile = self.validate(directory, profile_name)
        thread = threading.Thread(
            target=self.submit_tree,
            args=(directory, profile),
            name="batch-submit",
            daemon=True,
        )
        thread.start()
        return thread

    def submit_tree(self, directory: str, profile: Profile) -> BatchReport:
        report = BatchReport()
        LOGGER.info("Processing batch submission (dir=%s profile=%s)", directory, profile.name)
        for root, dirs, files in os.walk(directory):
            dirs.sort()
            for filename in sorted(files):
                path = os.path.join(root, filename)
                if Path(filename).suffix.lower() not in VIDEO_EXTENSIONS:
                    continue
                try:
                    self._submit_one(path, profile, report)
                except QueueFullError as exc:
                    LOGGER.error("Batch submission stopped: %s", exc)
                    report.errors.append(path)
                    return report
        LOGGER.info(
            "Batch submission finished (submitted=%d filtered=%d duplicates=%d errors=%d)",
            len(report.submitted),
            len(report.skipped_filtered),
            len(report.skipped_duplicate),
            len(report.errors),
        )
        return report

    def _submit_one(self, path: str, profile: Profile, report: BatchReport) -> None:
        if profile.batch_exclude is not None:
            try:
                excluded = profile.batch_exclude.matches(path, self._prober)
            except ProbeError as exc:
                LOGGER.error("Error applying filter to %s: %s", path, exc)
                report.errors.append(path)
                return
            if excluded:
                LOGGER.info("Skipping %s due to filter", path)
                report.skipped_filtered.append(path)
                return

        if self._processor.has_task(path, profile.name):
            LOGGER.info("Skipping %s, task already exists for profile %s", path, profile.name)
            report.skipped_duplicate.append(path)
            return

        report.submitted.append(self._processor.submit(path, profile.name))


__all__ = ["BatchReport", "BatchSubmitter"]
