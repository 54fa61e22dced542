"""ffprobe helpers for reading container duration and stream codecs."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List

import ffmpeg  # type: ignore

from .exceptions import ProbeError

LOGGER = logging.getLogger(__name__)


class MediaProber:
    """Thin wrapper around ``ffmpeg.probe`` bound to a configured ffprobe binary."""

    def __init__(self, ffprobe_binary: str = "ffprobe") -> None:
        self.ffprobe_binary = ffprobe_binary

    def probe(self, input_path: str | Path) -> Dict[str, Any]:
        try:
            return ffmpeg.probe(str(input_path), cmd=self.ffprobe_binary)
        except ffmpeg.Error as exc:  # type: ignore[attr-defined]
            stderr = getattr(exc, "stderr", None)
            detail = stderr.decode(errors="ignore").strip() if isinstance(stderr, bytes) else str(exc)
            raise ProbeError(f"Failed to probe '{input_path}': {detail}") from exc
        except OSError as exc:
            raise ProbeError(f"Failed to run {self.ffprobe_binary}: {exc}") from exc

    def duration(self, input_path: str | Path) -> float:
        """Return the container duration in seconds."""

        data = self.probe(input_path)
        fmt = data.get("format") if isinstance(data, dict) else None
        raw = fmt.get("duration") if isinstance(fmt, dict) else None
        try:
            duration = float(raw)
        except (TypeError, ValueError) as exc:
            raise ProbeError(f"No usable duration for '{input_path}' (got {raw!r})") from exc
        if duration <= 0:
            raise ProbeError(f"Non-positive duration for '{input_path}': {duration}")
        LOGGER.debug("Probed %s: duration=%.3fs", input_path, duration)
        return duration

    def codecs(self, input_path: str | Path) -> List[str]:
        data = self.probe(input_path)
        codecs: List[str] = []
        for stream in data.get("streams", []) if isinstance(data, dict) else []:
            name = stream.get("codec_name") if isinstance(stream, dict) else None
            if isinstance(name, str):
                codecs.append(name)
        return codecs


__all__ = ["MediaProber"]
