from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from easy_transcoder.config import (
    DEFAULT_PROFILES,
    ConfigError,
    build_default_config,
    validate_config,
)
from easy_transcoder.logging_config import JsonFormatter, build_formatter, parse_level


def _write_yaml(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults_without_config_file(tmp_path: Path) -> None:
    cfg = build_default_config(tmp_path / "missing.yaml")

    assert cfg["TRANSCODER_PROFILES"] == DEFAULT_PROFILES
    assert [profile["name"] for profile in cfg["TRANSCODER_PROFILES"]] == ["H264 Ultra Fast", "H264 Slow"]
    assert cfg["TRANSCODER_NICENESS"] == 0
    assert cfg["TRANSCODER_QUEUE_SIZE"] == 100
    assert cfg["TRANSCODER_TEMP_DIR"] is None
    assert cfg["TRANSCODER_AUTO_REJECT_LARGER"] is False
    assert cfg["TRANSCODER_AUTO_REJECT_INTERVAL_SECONDS"] == 30.0
    validate_config(cfg)


def test_yaml_file_supplies_profiles_and_settings(tmp_path: Path) -> None:
    temp_dir = tmp_path / "scratch"
    temp_dir.mkdir()
    config_file = _write_yaml(
        tmp_path / "config.yaml",
        f"""
tempdir: {temp_dir}
transcoding_niceness: 10
auto_reject_larger: true
logging:
  level: debug
  format: json
profiles:
  - name: AV1
    params:
      c:v: libsvtav1
      crf: 30
    batch_exclude_filter:
      codecs: [av1]
""",
    )

    cfg = build_default_config(config_file)

    assert cfg["TRANSCODER_TEMP_DIR"] == str(temp_dir)
    assert cfg["TRANSCODER_NICENESS"] == 10
    assert cfg["TRANSCODER_AUTO_REJECT_LARGER"] is True
    assert cfg["TRANSCODER_LOG_LEVEL"] == "debug"
    assert cfg["TRANSCODER_LOG_FORMAT"] == "json"
    assert [profile["name"] for profile in cfg["TRANSCODER_PROFILES"]] == ["AV1"]
    validate_config(cfg)


def test_environment_overrides_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_file = _write_yaml(tmp_path / "config.yaml", "transcoding_niceness: 5\n")
    monkeypatch.setenv("TRANSCODER_CONFIG_FILE", str(config_file))
    monkeypatch.setenv("TRANSCODER_NICENESS", "-5")
    monkeypatch.setenv("TRANSCODER_QUEUE_SIZE", "7")
    monkeypatch.setenv("TRANSCODER_AUTO_REJECT_LARGER", "yes")

    cfg = build_default_config()

    assert cfg["TRANSCODER_NICENESS"] == -5
    assert cfg["TRANSCODER_QUEUE_SIZE"] == 7
    assert cfg["TRANSCODER_AUTO_REJECT_LARGER"] is True


def test_invalid_yaml_root_raises_config_error(tmp_path: Path) -> None:
    config_file = _write_yaml(tmp_path / "config.yaml", "- just\n- a list\n")

    with pytest.raises(ConfigError):
        build_default_config(config_file)


@pytest.mark.parametrize("niceness", [-21, 20])
def test_niceness_out_of_range_is_rejected(tmp_path: Path, niceness: int) -> None:
    cfg = build_default_config(tmp_path / "missing.yaml")
    cfg["TRANSCODER_NICENESS"] = niceness

    with pytest.raises(ConfigError, match="transcoding_niceness"):
        validate_config(cfg)


def test_temp_dir_must_exist_and_be_a_directory(tmp_path: Path) -> None:
    cfg = build_default_config(tmp_path / "missing.yaml")

    cfg["TRANSCODER_TEMP_DIR"] = str(tmp_path / "nope")
    with pytest.raises(ConfigError, match="does not exist"):
        validate_config(cfg)

    not_a_dir = tmp_path / "file"
    not_a_dir.write_text("x")
    cfg["TRANSCODER_TEMP_DIR"] = str(not_a_dir)
    with pytest.raises(ConfigError, match="not a directory"):
        validate_config(cfg)


def test_profile_entries_are_validated(tmp_path: Path) -> None:
    cfg = build_default_config(tmp_path / "missing.yaml")
    cfg["TRANSCODER_PROFILES"] = [{"params": {"c:v": "libx264"}}]

    with pytest.raises(ConfigError):
        validate_config(cfg)


@pytest.mark.parametrize(
    ("name", "level"),
    [("debug", logging.DEBUG), ("WARN", logging.WARNING), ("warning", logging.WARNING), ("error", logging.ERROR), ("bogus", logging.INFO), (None, logging.INFO)],
)
def test_parse_level(name, level) -> None:
    assert parse_level(name) == level


def test_json_formatter_emits_one_object_per_record() -> None:
    formatter = build_formatter("json")
    record = logging.LogRecord("easy_transcoder.test", logging.INFO, __file__, 1, "task %s done", (3,), None)

    payload = json.loads(formatter.format(record))

    assert isinstance(formatter, JsonFormatter)
    assert payload["level"] == "INFO"
    assert payload["logger"] == "easy_transcoder.test"
    assert payload["message"] == "task 3 done"
    assert not isinstance(build_formatter("text"), JsonFormatter)
