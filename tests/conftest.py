from __future__ import annotations

from pathlib import Path
from typing import Iterator, List

import pytest

from easy_transcoder.engine import CodecFilter, Profile, ProfileRegistry, TaskProcessor

from support import FakeProber, FakeRunner

_TRANSCODER_ENV = (
    "TRANSCODER_CONFIG_FILE",
    "TRANSCODER_TEMP_DIR",
    "TRANSCODER_NICENESS",
    "TRANSCODER_QUEUE_SIZE",
    "TRANSCODER_FFMPEG_BINARY",
    "TRANSCODER_FFPROBE_BINARY",
    "TRANSCODER_LOG_LEVEL",
    "TRANSCODER_LOG_FORMAT",
    "TRANSCODER_LOG_DIR",
    "TRANSCODER_AUTO_REJECT_LARGER",
    "TRANSCODER_AUTO_REJECT_INTERVAL_SECONDS",
    "TRANSCODER_AUTO_REJECT_TOLERANCE_PERCENT",
    "TRANSCODER_STATUS_REDIS_URL",
    "TRANSCODER_STATUS_CHANNEL",
    "TRANSCODER_START_WORKER",
)


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _TRANSCODER_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def profiles() -> ProfileRegistry:
    return ProfileRegistry(
        [
            Profile("H264-fast", {"c:v": "libx264", "preset": "ultrafast", "c:a": "copy"}),
            Profile(
                "HEVC",
                {"c:v": "libx265", "c:a": "copy"},
                batch_exclude=CodecFilter(("hevc",)),
            ),
        ]
    )


@pytest.fixture
def prober() -> FakeProber:
    return FakeProber()


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def make_processor(tmp_path: Path, profiles: ProfileRegistry, prober: FakeProber, runner: FakeRunner):
    created: List[TaskProcessor] = []

    def _factory(**overrides) -> TaskProcessor:
        options = {
            "profiles": profiles,
            "temp_dir": tmp_path / "work",
            "prober": prober,
            "runner": runner,
        }
        options.update(overrides)
        processor = TaskProcessor(**options)
        created.append(processor)
        return processor

    yield _factory

    for processor in created:
        processor.shutdown(timeout=5.0)


@pytest.fixture
def processor(make_processor) -> Iterator[TaskProcessor]:
    yield make_processor()
