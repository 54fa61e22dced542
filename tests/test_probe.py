from __future__ import annotations

import ffmpeg
import pytest

from easy_transcoder.engine import MediaProber, ProbeError
from easy_transcoder.engine import probe as probe_module


def test_duration_reads_format_section(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list = []

    def _probe(path, cmd="ffprobe"):
        calls.append((path, cmd))
        return {"format": {"duration": "93.5"}, "streams": [{"codec_name": "h264"}, {"codec_name": "aac"}]}

    monkeypatch.setattr(probe_module.ffmpeg, "probe", _probe)
    prober = MediaProber("/opt/ffprobe")

    assert prober.duration("/media/a.mp4") == pytest.approx(93.5)
    assert prober.codecs("/media/a.mp4") == ["h264", "aac"]
    assert calls[0] == ("/media/a.mp4", "/opt/ffprobe")


@pytest.mark.parametrize("fmt", [{}, {"duration": "N/A"}, {"duration": "0"}])
def test_unusable_duration_raises(monkeypatch: pytest.MonkeyPatch, fmt) -> None:
    monkeypatch.setattr(probe_module.ffmpeg, "probe", lambda path, cmd="ffprobe": {"format": fmt})

    with pytest.raises(ProbeError):
        MediaProber().duration("/media/a.mp4")


def test_ffprobe_error_becomes_probe_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def _fail(path, cmd="ffprobe"):
        raise ffmpeg.Error("ffprobe", b"", b"moov atom not found")

    monkeypatch.setattr(probe_module.ffmpeg, "probe", _fail)

    with pytest.raises(ProbeError, match="moov atom not found"):
        MediaProber().duration("/media/a.mp4")


def test_missing_ffprobe_binary_becomes_probe_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def _missing(path, cmd="ffprobe"):
        raise FileNotFoundError(2, "No such file or directory", cmd)

    monkeypatch.setattr(probe_module.ffmpeg, "probe", _missing)

    with pytest.raises(ProbeError):
        MediaProber("/missing/ffprobe").codecs("/media/a.mp4")
