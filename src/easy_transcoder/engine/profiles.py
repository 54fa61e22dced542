"""Named encoder profiles and the registry that looks them up."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ..utils import to_string_sequence
from .probe import MediaProber

LOGGER = logging.getLogger(__name__)

VIDEO_EXTENSIONS = frozenset(
    {".mp4", ".mkv", ".avi", ".mov", ".wmv", ".flv", ".webm", ".m4v", ".3gp", ".ts", ".mpg", ".mpeg"}
)


@dataclass(frozen=True)
class CodecFilter:
    """Matches files that contain a stream whose codec name includes any listed codec."""

    codecs: Tuple[str, ...] = ()

    def matches(self, input_path: str, prober: MediaProber) -> bool:
        if not self.codecs:
            return False
        for codec_name in prober.codecs(input_path):
            if any(codec in codec_name for codec in self.codecs):
                return True
        return False


@dataclass(frozen=True)
class Profile:
    """An FFmpeg parameter set addressed by name."""

    name: str
    params: Mapping[str, str] = field(default_factory=dict)
    batch_exclude: Optional[CodecFilter] = None

    def compile(
        self,
        input_path: str,
        output_path: str,
        progress_address: str,
        *,
        ffmpeg_binary: str = "ffmpeg",
    ) -> List[str]:
        """Build the encoder argument vector for one task."""

        args: Dict[str, str] = {"map": "0"}
        args.update({str(key): str(value) for key, value in self.params.items()})

        cmd: List[str] = [
            ffmpeg_binary,
            "-hide_banner",
            "-nostdin",
            "-nostats",
            "-loglevel",
            "error",
            "-progress",
            progress_address,
            "-y",
            "-i",
            str(input_path),
        ]
        for key, value in args.items():
            cmd.extend([f"-{key.lstrip('-')}", value])
        cmd.append(str(output_path))
        return cmd

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": self.name, "params": dict(self.params)}
        if self.batch_exclude is not None:
            payload["batch_exclude_codecs"] = list(self.batch_exclude.codecs)
        return payload

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "Profile":
        name = str(raw.get("name") or "").strip()
        if not name:
            raise ValueError("Profile entries require a non-empty 'name'")
        params_raw = raw.get("params") or {}
        if not isinstance(params_raw, Mapping):
            raise ValueError(f"Profile '{name}': 'params' must be a mapping")
        exclude_raw = raw.get("batch_exclude_filter") or raw.get("batch_exclude")
        if isinstance(exclude_raw, Mapping):
            exclude_raw = exclude_raw.get("codecs")
        codecs = to_string_sequence(exclude_raw)
        batch_exclude = CodecFilter(codecs=codecs) if codecs else None
        return cls(
            name=name,
            params={str(key): str(value) for key, value in params_raw.items()},
            batch_exclude=batch_exclude,
        )


class ProfileRegistry:
    """Read-only lookup of profiles by name."""

    def __init__(self, profiles: Iterable[Profile] = ()) -> None:
        self._profiles: Dict[str, Profile] = {}
        for profile in profiles:
            if profile.name in self._profiles:
                LOGGER.warning("Duplicate profile %r; keeping the first definition", profile.name)
                continue
            self._profiles[profile.name] = profile

    @classmethod
    def from_config(cls, entries: Iterable[Mapping[str, Any]]) -> "ProfileRegistry":
        return cls(Profile.from_mapping(entry) for entry in entries)

    def get(self, name: str) -> Optional[Profile]:
        profile = self._profiles.get(name)
        if profile is None:
            LOGGER.warning("Profile not found: %s", name)
        return profile

    def names(self) -> List[str]:
        return list(self._profiles)

    def __iter__(self):
        return iter(self._profiles.values())

    def __len__(self) -> int:
        return len(self._profiles)


__all__ = ["CodecFilter", "Profile", "ProfileRegistry", "VIDEO_EXTENSIONS"]
