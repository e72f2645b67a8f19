from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any, Mapping, Optional

__all__ = [
    "ensure_working_dir_structure",
    "get_data_dir",
    "get_database_path",
    "get_default_settings_paths",
    "get_exports_dir",
    "get_logs_dir",
    "get_remote_backups_dir",
    "get_safety_backups_dir",
    "resolve_working_dir",
]

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_APP_DIRNAME = "ev_charging_tracker"
_DATABASE_NAME = "tesla_charging.sqlite3"


def _expand_path(value: str) -> Path:
    expanded = os.path.expandvars(os.path.expanduser(value))
    return Path(expanded).resolve()


def _ensure_writable_dir(path: Path) -> bool:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        return False
    test_file = path / f".write_test_{os.getpid()}"
    try:
        with open(test_file, "w", encoding="utf-8") as handle:
            handle.write("ok")
        test_file.unlink(missing_ok=True)
        return True
    except OSError:
        try:
            if test_file.exists():
                test_file.unlink()
        except OSError:  # pragma: no cover - cleanup only
            pass
        return False


def _prepare_working_dir(candidate: Path) -> Optional[Path]:
    if not _ensure_writable_dir(candidate):
        return None
    try:
        get_data_dir(candidate).mkdir(parents=True, exist_ok=True)
        return candidate
    except OSError:
        return None


def resolve_working_dir() -> Path:
    """Resolve the application working directory, creating it if required."""

    env_home = os.environ.get("EVTRACKER_HOME")
    if env_home:
        try:
            env_path = _expand_path(env_home)
        except (OSError, RuntimeError):
            env_path = None
        if env_path:
            prepared = _prepare_working_dir(env_path)
            if prepared is not None:
                return prepared

    prepared = _prepare_working_dir(Path.home() / f".{_APP_DIRNAME}")
    if prepared is not None:
        return prepared

    fallback = Path(tempfile.gettempdir()) / _APP_DIRNAME
    fallback.mkdir(parents=True, exist_ok=True)
    get_data_dir(fallback).mkdir(parents=True, exist_ok=True)
    return fallback


def get_data_dir(working_dir: Path) -> Path:
    return working_dir / "data"


def get_database_path(working_dir: Path) -> Path:
    return get_data_dir(working_dir) / _DATABASE_NAME


def get_logs_dir(working_dir: Path) -> Path:
    return working_dir / "logs"


def get_safety_backups_dir(working_dir: Path) -> Path:
    """Local, app-private directory holding pre-import safety snapshots."""

    return working_dir / _APP_DIRNAME / "safety_backups"


def get_exports_dir(settings: Optional[Mapping[str, Any]] = None) -> Path:
    """Scratch directory for user-facing exports.

    Exports live outside the working directory: they are handed to
    the user and must not be swept into the application's own data.
    """

    backup = (settings or {}).get("backup")
    if isinstance(backup, Mapping):
        configured = backup.get("exports_dir")
        if isinstance(configured, str) and configured.strip():
            return _expand_path(configured)
    return Path(tempfile.gettempdir()) / f"{_APP_DIRNAME}_exports"


def get_remote_backups_dir(settings: Optional[Mapping[str, Any]] = None) -> Optional[Path]:
    """Return the configured shared (cloud-synced) backup directory, if any."""

    backup = (settings or {}).get("backup")
    if not isinstance(backup, Mapping):
        return None
    remote = backup.get("remote")
    if not isinstance(remote, Mapping):
        return None
    directory = remote.get("directory")
    if not isinstance(directory, str) or not directory.strip():
        return None
    return _expand_path(directory)


def ensure_working_dir_structure(working_dir: Path) -> None:
    for directory in (
        working_dir,
        get_data_dir(working_dir),
        get_logs_dir(working_dir),
        get_safety_backups_dir(working_dir),
    ):
        directory.mkdir(parents=True, exist_ok=True)


def get_default_settings_paths(working_dir: Path) -> list[Path]:
    """Return the search order for settings.json files."""

    return [working_dir / "settings.json", _PROJECT_ROOT / "settings.json"]
