"""Shared fakes for the test-suite."""
from __future__ import annotations

import sys
import time
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from easy_transcoder.engine import (
    MediaProber,
    ProbeError,
    ProcessRunner,
    Task,
    TaskProcessor,
    TaskSnapshot,
)

FAKE_ENCODER = Path(__file__).resolve().parent / "fake_encoder.py"


class FakeProber(MediaProber):
    """Answers duration and codec queries without running ffprobe."""

    def __init__(self, duration: float = 120.0, codecs: Optional[Dict[str, List[str]]] = None) -> None:
        super().__init__("ffprobe-not-used")
        self._duration = duration
        self._codecs = codecs or {}
        self.probed: List[str] = []

    def probe(self, input_path):
        name = Path(input_path).name
        self.probed.append(str(input_path))
        if "broken" in name:
            raise ProbeError(f"Failed to probe '{input_path}': invalid data")
        streams = [{"codec_name": codec} for codec in self._codecs.get(name, ["h264", "aac"])]
        return {"format": {"duration": str(self._duration)}, "streams": streams}


class FakeRunner(ProcessRunner):
    """Runs ``fake_encoder.py`` in place of the configured ffmpeg binary."""

    def __init__(self) -> None:
        super().__init__()
        self.commands: List[List[str]] = []

    def build_argv(self, command: Sequence[str]) -> List[str]:
        self.commands.append([str(part) for part in command])
        return [sys.executable, str(FAKE_ENCODER), *[str(part) for part in command[1:]]]


def wait_for(predicate: Callable[[], bool], timeout: float = 10.0, interval: float = 0.02) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


def wait_for_status(processor: TaskProcessor, task_id: int, statuses: Iterable, timeout: float = 10.0) -> TaskSnapshot:
    wanted = set(statuses)
    wait_for(lambda: processor.get(task_id).status in wanted, timeout=timeout)
    return processor.get(task_id)


def make_waiting_task(
    processor: TaskProcessor,
    directory: Path,
    *,
    original: bytes,
    result: bytes,
    name: str = "movie.mp4",
    profile: str = "H264-fast",
) -> TaskSnapshot:
    """Drive a task straight to waiting-for-resolution with real files on disk."""

    source = directory / name
    source.write_bytes(original)
    task_id = processor.submit(str(source), profile)
    task_dir = directory / f"task-{task_id}-work"
    task_dir.mkdir()
    output = task_dir / name
    output.write_bytes(result)

    registry = processor.registry
    registry.update(task_id, Task.mark_processing)
    registry.update(task_id, lambda task: task.set_temp_output(str(output)))
    return registry.update(task_id, Task.mark_waiting_for_resolution)
