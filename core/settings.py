from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Dict

from .settings_schema import SETTINGS_VALIDATOR

from .paths import get_default_settings_paths, get_logs_dir

__all__ = [
    "DEFAULT_SETTINGS",
    "SETTINGS_VERSION",
    "load_settings",
    "merge_defaults",
    "save_settings",
]

SETTINGS_VERSION = 2


DEFAULT_SETTINGS: Dict[str, Any] = {
    "version": SETTINGS_VERSION,
    "device_name": None,
    "backup": {
        "exports_dir": None,
        "safety": {
            "keep_last": 3,
        },
        "remote": {
            "enable": False,
            "directory": None,
            "keep_last": 5,
            "max_age_days": 30,
            "probe_url": None,
            "probe_timeout_s": 5.0,
        },
    },
    "logging": {
        "level": "INFO",
        "json": True,
    },
}


def merge_defaults(data: Dict[str, Any]) -> Dict[str, Any]:
    def _merge(default: Dict[str, Any], payload: Dict[str, Any]) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for key, value in default.items():
            if isinstance(value, dict):
                current = payload.get(key)
                if isinstance(current, dict):
                    result[key] = _merge(value, current)
                else:
                    result[key] = _merge(value, {})
            elif isinstance(value, list):
                current = payload.get(key)
                result[key] = list(current) if isinstance(current, list) else list(value)
            else:
                result[key] = payload.get(key, value)
        for key, value in payload.items():
            if key not in result:
                result[key] = value
        return result

    return _merge(DEFAULT_SETTINGS, data or {})


def _apply_migrations(settings: Dict[str, Any]) -> Dict[str, Any]:
    version = settings.get("version")
    try:
        version_int = int(version)
    except (TypeError, ValueError):
        version_int = 0
    if version_int < 2:
        # v1 kept a flat "safety_keep_last" next to the backup block.
        legacy_keep = settings.pop("safety_keep_last", None)
        if isinstance(legacy_keep, int) and legacy_keep > 0:
            settings["backup"]["safety"]["keep_last"] = legacy_keep
    if version_int < SETTINGS_VERSION:
        settings["version"] = SETTINGS_VERSION
    return settings


def _log_unknown_keys(settings: Dict[str, Any], working_dir: Path) -> None:
    unknown = list(SETTINGS_VALIDATOR.unknown_keys(settings))
    if not unknown:
        return
    logs_dir = get_logs_dir(working_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)
    payload = {
        "ts": time.time(),
        "unknown": unknown,
    }
    target = logs_dir / "settings_unknown.json"
    try:
        with open(target, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, ensure_ascii=False, indent=2)
    except OSError:
        return


def load_settings(working_dir: Path) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    for candidate in get_default_settings_paths(working_dir):
        try:
            with open(candidate, "r", encoding="utf-8") as handle:
                loaded = json.load(handle)
        except FileNotFoundError:
            continue
        except json.JSONDecodeError:
            continue
        except OSError:
            continue
        if isinstance(loaded, dict):
            data = loaded
            break
    merged = merge_defaults(data)
    merged = _apply_migrations(merged)
    merged.setdefault("working_dir", str(working_dir))
    _log_unknown_keys(merged, working_dir)
    return merged


def save_settings(settings: Dict[str, Any], working_dir: Path) -> None:
    merged = merge_defaults(dict(settings))
    merged = _apply_migrations(merged)
    merged.setdefault("working_dir", str(working_dir))
    path = working_dir / "settings.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as handle:
        json.dump(merged, handle, ensure_ascii=False, indent=2)
