"""Tests for core.settings helpers."""

from __future__ import annotations

import json
from pathlib import Path

from core.settings import SETTINGS_VERSION, load_settings, merge_defaults, save_settings


def test_merge_defaults_includes_backup_block() -> None:
    merged = merge_defaults({})

    backup = merged["backup"]
    assert backup["safety"]["keep_last"] == 3
    remote = backup["remote"]
    assert remote["enable"] is False
    assert remote["directory"] is None
    assert remote["keep_last"] == 5
    assert remote["max_age_days"] == 30
    assert merged["logging"]["level"] == "INFO"


def test_merge_defaults_keeps_user_values() -> None:
    merged = merge_defaults({"backup": {"remote": {"enable": True, "directory": "/mnt/cloud"}}})

    assert merged["backup"]["remote"]["enable"] is True
    assert merged["backup"]["remote"]["directory"] == "/mnt/cloud"
    assert merged["backup"]["remote"]["keep_last"] == 5


def test_load_settings_migrates_legacy_safety_key(tmp_path: Path) -> None:
    working_dir = tmp_path
    path = working_dir / "settings.json"
    path.write_text(json.dumps({"version": 1, "safety_keep_last": 7}), encoding="utf-8")

    loaded = load_settings(working_dir)

    assert loaded["version"] == SETTINGS_VERSION
    assert loaded["backup"]["safety"]["keep_last"] == 7
    assert "safety_keep_last" not in loaded


def test_unknown_keys_are_reported(tmp_path: Path) -> None:
    working_dir = tmp_path
    (working_dir / "settings.json").write_text(
        json.dumps({"backup": {"remote": {"bucket": "x"}}, "theme": "dark"}), encoding="utf-8"
    )

    load_settings(working_dir)

    report = json.loads((working_dir / "logs" / "settings_unknown.json").read_text(encoding="utf-8"))
    assert report["unknown"] == ["backup.remote.bucket", "theme"]


def test_save_settings_round_trips(tmp_path: Path) -> None:
    save_settings({"device_name": "garage-mac"}, tmp_path)

    stored = json.loads((tmp_path / "settings.json").read_text(encoding="utf-8"))
    assert stored["device_name"] == "garage-mac"
    assert stored["backup"]["remote"]["max_age_days"] == 30
    assert load_settings(tmp_path)["device_name"] == "garage-mac"
