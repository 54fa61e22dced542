"""Configuration helpers for the transcoder service.

Values come from three layers, later ones winning: built-in defaults, the
YAML file named by ``TRANSCODER_CONFIG_FILE`` (``config.yaml`` by default)
and ``TRANSCODER_*`` environment variables. A ``.env`` file found from the
working directory is loaded first without overriding the real environment.
"""
from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping, Optional

import yaml
from dotenv import find_dotenv, load_dotenv

from .engine import ConfigError, Profile
from .utils import coerce_float, coerce_int, to_bool, to_optional_str

LOGGER = logging.getLogger(__name__)


def _ensure_dotenv_loaded() -> None:
    dotenv_path = find_dotenv(usecwd=True)
    if dotenv_path:
        load_dotenv(dotenv_path, override=False)


_ensure_dotenv_loaded()

DEFAULT_CONFIG_FILE = "config.yaml"
NICENESS_RANGE = (-20, 19)

DEFAULT_PROFILES: list[Dict[str, Any]] = [
    {
        "name": "H264 Ultra Fast",
        "params": {"c:v": "libx264", "preset": "ultrafast", "c:a": "copy"},
    },
    {
        "name": "H264 Slow",
        "params": {"c:v": "libx264", "preset": "slow", "c:a": "copy"},
    },
]

DEFAULT_FILE_CONFIG: Dict[str, Any] = {
    "tempdir": None,
    "profiles": DEFAULT_PROFILES,
    "logging": {"level": "info", "format": "text", "dir": None},
    "transcoding_niceness": 0,
    "auto_reject_larger": False,
    "ffmpeg_binary": "ffmpeg",
    "ffprobe_binary": "ffprobe",
}


def _load_yaml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Configuration file {path} is not valid YAML: {exc}") from exc
    if not isinstance(data, MutableMapping):
        raise ConfigError(f"Configuration file {path} must contain a mapping at the root")
    return dict(data)


def _deep_merge(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = dict(base)
    for key, value in overlay.items():
        if (
            key in merged
            and isinstance(merged[key], MutableMapping)
            and isinstance(value, MutableMapping)
        ):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_file_config(path: Optional[str | Path] = None) -> Dict[str, Any]:
    """Return the defaults merged with the YAML file, if it exists."""

    config = copy.deepcopy(DEFAULT_FILE_CONFIG)
    config_path = Path(path or os.getenv("TRANSCODER_CONFIG_FILE") or DEFAULT_CONFIG_FILE).expanduser()
    if not config_path.exists():
        LOGGER.debug("Configuration file %s not found; using defaults", config_path)
        return config
    data = _load_yaml(config_path)
    # A bare `profiles:` key keeps the built-in profiles.
    if "profiles" in data and data["profiles"] is None:
        data.pop("profiles")
    return _deep_merge(config, data)


def _env(name: str) -> Optional[str]:
    return to_optional_str(os.getenv(name))


def build_default_config(path: Optional[str | Path] = None) -> Dict[str, Any]:
    """Return the configuration mapping for the Flask application."""

    file_cfg = load_file_config(path)
    logging_cfg = file_cfg.get("logging") or {}

    cfg: Dict[str, Any] = {
        "TRANSCODER_TEMP_DIR": _env("TRANSCODER_TEMP_DIR") or to_optional_str(file_cfg.get("tempdir")),
        "TRANSCODER_PROFILES": list(file_cfg.get("profiles") or []),
        "TRANSCODER_NICENESS": coerce_int(
            _env("TRANSCODER_NICENESS"),
            coerce_int(file_cfg.get("transcoding_niceness"), 0),
        ),
        "TRANSCODER_QUEUE_SIZE": coerce_int(_env("TRANSCODER_QUEUE_SIZE"), 100),
        "TRANSCODER_FFMPEG_BINARY": _env("TRANSCODER_FFMPEG_BINARY") or file_cfg.get("ffmpeg_binary") or "ffmpeg",
        "TRANSCODER_FFPROBE_BINARY": _env("TRANSCODER_FFPROBE_BINARY") or file_cfg.get("ffprobe_binary") or "ffprobe",
        "TRANSCODER_LOG_LEVEL": _env("TRANSCODER_LOG_LEVEL") or logging_cfg.get("level") or "info",
        "TRANSCODER_LOG_FORMAT": _env("TRANSCODER_LOG_FORMAT") or logging_cfg.get("format") or "text",
        "TRANSCODER_LOG_DIR": _env("TRANSCODER_LOG_DIR") or to_optional_str(logging_cfg.get("dir")),
        "TRANSCODER_AUTO_REJECT_LARGER": to_bool(
            _env("TRANSCODER_AUTO_REJECT_LARGER") or file_cfg.get("auto_reject_larger")
        ),
        "TRANSCODER_AUTO_REJECT_INTERVAL_SECONDS": coerce_float(
            _env("TRANSCODER_AUTO_REJECT_INTERVAL_SECONDS"),
            30.0,
        ),
        "TRANSCODER_AUTO_REJECT_TOLERANCE_PERCENT": coerce_float(
            _env("TRANSCODER_AUTO_REJECT_TOLERANCE_PERCENT"),
            0.0,
        ),
        "TRANSCODER_STATUS_REDIS_URL": _env("TRANSCODER_STATUS_REDIS_URL"),
        "TRANSCODER_STATUS_PREFIX": _env("TRANSCODER_STATUS_PREFIX") or "easy-transcoder",
        "TRANSCODER_STATUS_NAMESPACE": _env("TRANSCODER_STATUS_NAMESPACE") or "tasks",
        "TRANSCODER_STATUS_CHANNEL": _env("TRANSCODER_STATUS_CHANNEL"),
        "TRANSCODER_STATUS_TTL_SECONDS": coerce_int(_env("TRANSCODER_STATUS_TTL_SECONDS"), 0),
        "TRANSCODER_START_WORKER": to_bool(os.getenv("TRANSCODER_START_WORKER", "true")),
    }
    return cfg


def validate_config(cfg: Mapping[str, Any]) -> None:
    """Raise ``ConfigError`` when settings are out of range or unusable."""

    niceness = cfg.get("TRANSCODER_NICENESS", 0)
    low, high = NICENESS_RANGE
    if not isinstance(niceness, int) or not low <= niceness <= high:
        raise ConfigError(f"transcoding_niceness must be between {low} and {high}")

    temp_dir = cfg.get("TRANSCODER_TEMP_DIR")
    if temp_dir:
        path = Path(temp_dir)
        if not path.exists():
            raise ConfigError(f"tempdir does not exist: {temp_dir}")
        if not path.is_dir():
            raise ConfigError(f"tempdir is not a directory: {temp_dir}")

    queue_size = cfg.get("TRANSCODER_QUEUE_SIZE", 100)
    if not isinstance(queue_size, int) or queue_size < 1:
        raise ConfigError("queue size must be a positive integer")

    profiles = cfg.get("TRANSCODER_PROFILES") or []
    if not isinstance(profiles, list):
        raise ConfigError("profiles must be a list")
    for entry in profiles:
        if not isinstance(entry, Mapping):
            raise ConfigError("each profile must be a mapping")
        try:
            Profile.from_mapping(entry)
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc


__all__ = [
    "ConfigError",
    "DEFAULT_PROFILES",
    "build_default_config",
    "load_file_config",
    "validate_config",
]
