"""One-shot quality metrics computed by scraping FFmpeg filter output."""
from __future__ import annotations

import logging
import re
import subprocess
from dataclasses import dataclass
from typing import Dict, Optional, Pattern

from ..engine import MetricError

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetricSpec:
    name: str
    filter_name: str
    pattern: Pattern[str]


METRICS: Dict[str, MetricSpec] = {
    # [libvmaf @ 0x1b5b700] VMAF score: 99.055347
    "vmaf": MetricSpec("vmaf", "libvmaf", re.compile(r"\[libvmaf[^\]]*\]\s*VMAF score:\s*(\d+\.\d+)")),
    # PSNR y:56.15 u:62.11 v:61.48 average:57.360421 min:53.95 max:76.37
    "psnr": MetricSpec("psnr", "psnr", re.compile(r"PSNR.*average:(\d+\.\d+|inf)")),
    # SSIM Y:0.999334 (31.76) U:0.999581 (33.77) V:0.999555 (33.51) All:0.999412 (32.30)
    "ssim": MetricSpec("ssim", "ssim", re.compile(r"SSIM [^A]*All:(\d+\.\d+)")),
}


class QualityMetrics:
    """Compare a distorted file against its reference with FFmpeg filters."""

    def __init__(self, ffmpeg_binary: str = "ffmpeg", *, timeout: Optional[float] = None) -> None:
        self.ffmpeg_binary = ffmpeg_binary
        self.timeout = timeout

    def build_command(self, metric: str, reference: str, distorted: str) -> list[str]:
        spec = self._spec(metric)
        return [
            self.ffmpeg_binary,
            "-hide_banner",
            "-nostdin",
            "-hwaccel",
            "auto",
            "-i",
            distorted,
            "-i",
            reference,
            "-filter_complex",
            spec.filter_name,
            "-f",
            "null",
            "-",
        ]

    def calculate(self, metric: str, reference: str, distorted: str) -> float:
        spec = self._spec(metric)
        command = self.build_command(metric, reference, distorted)
        LOGGER.info("Calculating %s (reference=%s distorted=%s)", spec.name, reference, distorted)
        try:
            result = subprocess.run(
                command,
                text=True,
                capture_output=True,
                check=False,
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise MetricError(f"{spec.name.upper()} calculation could not run: {exc}") from exc
        if result.returncode != 0:
            raise MetricError(
                f"FFmpeg exited with {result.returncode}: {result.stderr.strip()[-500:]}"
            )
        return self.parse(metric, result.stderr)

    def parse(self, metric: str, output: str) -> float:
        spec = self._spec(metric)
        match = spec.pattern.search(output)
        if not match:
            raise MetricError(f"{spec.name.upper()} score not found in output")
        return float(match.group(1))

    @staticmethod
    def _spec(metric: str) -> MetricSpec:
        spec = METRICS.get(metric.lower())
        if spec is None:
            raise MetricError(f"Unknown metric: {metric}")
        return spec


__all__ = ["METRICS", "MetricSpec", "QualityMetrics"]
