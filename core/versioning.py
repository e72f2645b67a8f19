"""Helpers for resolving the running EV Charging Tracker application version."""
from __future__ import annotations

import platform
import re
import socket
from functools import lru_cache
from importlib import metadata
from pathlib import Path
from typing import Optional

_DISTRIBUTION = "ev-charging-tracker-backup"
_PYPROJECT = Path(__file__).resolve().parent.parent / "pyproject.toml"
_VERSION_PATTERN = re.compile(r'^version\s*=\s*"([^"]+)"', re.MULTILINE)


def _load_installed_version() -> Optional[str]:
    """Return the version recorded in the installed distribution metadata."""
    try:
        return metadata.version(_DISTRIBUTION)
    except metadata.PackageNotFoundError:
        return None


def _load_version_from_file() -> Optional[str]:
    """Read ``version`` from the repository ``pyproject.toml`` when running from a checkout."""
    try:
        text = _PYPROJECT.read_text(encoding="utf-8")
    except OSError:
        return None
    match = _VERSION_PATTERN.search(text)
    return match.group(1) if match else None


@lru_cache(maxsize=1)
def get_app_version() -> str:
    """Return the application version string embedded in exported snapshots.

    Installed metadata wins over the checkout's ``pyproject.toml`` so that a
    wheel built from a tagged release reports the tagged version. When
    neither source is available a safe default is returned.
    """

    version = _load_installed_version()
    if version:
        return version
    version = _load_version_from_file()
    if version:
        return version
    return "0.0.0"


def get_device_name() -> str:
    """Return a human readable name for the machine producing a snapshot."""

    name = platform.node() or socket.gethostname()
    return name or "unknown"


__all__ = ["get_app_version", "get_device_name"]
