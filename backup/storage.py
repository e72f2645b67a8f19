"""File access used by the backup service, local and remote."""
from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol, TypeVar

import requests

from .errors import BackupIOError, NetworkUnavailable, RemoteUnavailable

LOGGER = logging.getLogger("evtracker.backup.storage")

T = TypeVar("T")

# https://bford.info/cachedir/ - honoured by tar --exclude-caches, borg, restic.
CACHEDIR_TAG_NAME = "CACHEDIR.TAG"
_CACHEDIR_TAG = (
    "Signature: 8a477f597d28d172789f06886806bc55\n"
    "# This file marks EV Charging Tracker exports as excluded from system backups.\n"
)


class LocalFileSystem:
    """Plain file operations; ``OSError`` surfaces as ``BackupIOError``."""

    def read_file(self, path: Path) -> bytes:
        try:
            return Path(path).read_bytes()
        except OSError as exc:
            raise BackupIOError("read", path, exc) from exc

    def write_file(self, path: Path, data: bytes) -> None:
        """Write ``data`` atomically; the file is durable when this returns."""
        target = Path(path)
        tmp = target.with_name(target.name + ".tmp")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp, target)
        except OSError as exc:
            try:
                if tmp.exists():
                    tmp.unlink()
            except OSError:
                pass
            raise BackupIOError("write", target, exc) from exc

    def list_directory(self, path: Path, pattern: str = "*.json") -> List[Path]:
        base = Path(path)
        if not base.exists():
            return []
        try:
            return sorted(child for child in base.glob(pattern) if child.is_file() and not child.name.startswith("."))
        except OSError as exc:
            raise BackupIOError("list", base, exc) from exc

    def size(self, path: Path) -> int:
        try:
            return Path(path).stat().st_size
        except OSError as exc:
            raise BackupIOError("stat", path, exc) from exc

    def delete(self, path: Path) -> None:
        try:
            Path(path).unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise BackupIOError("delete", path, exc) from exc

    def mark_excluded_from_backup(self, directory: Path) -> None:
        tag = Path(directory) / CACHEDIR_TAG_NAME
        if tag.exists():
            return
        self.write_file(tag, _CACHEDIR_TAG.encode("ascii"))


class FileCoordinator(Protocol):
    def coordinate(self, path: Path, action: Callable[[Path], T]) -> T:
        """Run ``action(path)`` with exclusive, coherent access to ``path``."""
        ...


class LockingFileCoordinator:
    """In-process coordinator serializing access per path.

    Cloud sync providers that need OS-level coordination plug in their own
    ``FileCoordinator``; errors raised by ``action`` always propagate.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def _lock_for(self, path: Path) -> threading.Lock:
        key = os.path.normcase(str(Path(path).resolve()))
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def coordinate(self, path: Path, action: Callable[[Path], T]) -> T:
        with self._lock_for(path):
            return action(Path(path))


class AvailabilityCheck(Protocol):
    def check(self) -> None:
        """Return when reachable, raise ``RemoteUnavailable`` otherwise."""
        ...


class DirectoryAvailability:
    def __init__(self, directory: Optional[Path]) -> None:
        self._directory = Path(directory) if directory is not None else None

    def check(self) -> None:
        if self._directory is None:
            raise RemoteUnavailable("Remote backups are not configured (backup.remote.directory is empty)")
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise RemoteUnavailable(f"Remote backup directory {self._directory} is not reachable: {exc}") from exc
        if not os.access(self._directory, os.W_OK):
            raise RemoteUnavailable(f"Remote backup directory {self._directory} is not writable")


class HttpConnectivityProbe:
    def __init__(self, url: str, *, timeout: float = 5.0, session: Optional[requests.Session] = None) -> None:
        self._url = url
        self._timeout = timeout
        self._session = session or requests.Session()

    def check(self) -> None:
        try:
            response = self._session.head(self._url, timeout=self._timeout, allow_redirects=True)
        except requests.RequestException as exc:
            LOGGER.warning("Connectivity probe %s failed: %s", self._url, exc)
            raise NetworkUnavailable(f"Network is unavailable ({self._url}): {exc}") from exc
        if response.status_code >= 500:
            raise NetworkUnavailable(f"Network is unavailable ({self._url} answered {response.status_code})")


__all__ = [
    "AvailabilityCheck",
    "CACHEDIR_TAG_NAME",
    "DirectoryAvailability",
    "FileCoordinator",
    "HttpConnectivityProbe",
    "LocalFileSystem",
    "LockingFileCoordinator",
]
