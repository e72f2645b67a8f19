"""Backups kept in a shared, cloud-synced directory."""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from core.paths import get_remote_backups_dir

from .api import BackupService, CancelToken
from .create import REMOTE_PREFIX, unique_snapshot_path
from .errors import BackupError, RemoteUnavailable
from .retention import REMOTE_RETENTION, RetentionPolicy, apply_retention, describe, list_descriptors
from .storage import (
    AvailabilityCheck,
    DirectoryAvailability,
    FileCoordinator,
    HttpConnectivityProbe,
    LockingFileCoordinator,
)
from .types import BackupDescriptor, BackupState, ImportSummary


def _remote_settings(settings: Dict[str, Any]) -> Dict[str, Any]:
    backup = settings.get("backup")
    remote = backup.get("remote") if isinstance(backup, dict) else None
    return remote if isinstance(remote, dict) else {}


def _policy_from_settings(remote: Dict[str, Any]) -> RetentionPolicy:
    try:
        keep_last = int(remote.get("keep_last", REMOTE_RETENTION.keep_last))
    except (TypeError, ValueError):
        keep_last = REMOTE_RETENTION.keep_last
    max_age = remote.get("max_age_days", REMOTE_RETENTION.max_age_days)
    try:
        max_age_days = int(max_age) if max_age is not None else None
    except (TypeError, ValueError):
        max_age_days = REMOTE_RETENTION.max_age_days
    return RetentionPolicy(keep_last=max(keep_last, 1), max_age_days=max_age_days)


class RemoteBackupManager:
    """Create, list, rotate, delete and restore remote snapshots.

    Every remote file access goes through the injected ``FileCoordinator``
    and is preceded by the availability checks.
    """

    def __init__(
        self,
        service: BackupService,
        *,
        directory: Optional[Path] = None,
        coordinator: Optional[FileCoordinator] = None,
        checks: Optional[Sequence[AvailabilityCheck]] = None,
        policy: Optional[RetentionPolicy] = None,
    ) -> None:
        remote = _remote_settings(service.settings)
        self._service = service
        self._enabled = directory is not None or bool(remote.get("enable"))
        self._directory = Path(directory) if directory is not None else get_remote_backups_dir(service.settings)
        self._coordinator = coordinator or LockingFileCoordinator()
        self._policy = policy or _policy_from_settings(remote)
        if checks is None:
            built: List[AvailabilityCheck] = [DirectoryAvailability(self._directory)]
            probe_url = remote.get("probe_url")
            if isinstance(probe_url, str) and probe_url.strip():
                timeout = float(remote.get("probe_timeout_s") or 5.0)
                built.append(HttpConnectivityProbe(probe_url.strip(), timeout=timeout))
            checks = built
        self._checks = list(checks)

    # ------------------------------------------------------------------
    @property
    def directory(self) -> Optional[Path]:
        return self._directory

    @property
    def policy(self) -> RetentionPolicy:
        return self._policy

    def check_availability(self) -> None:
        """Raise ``RemoteUnavailable`` or ``NetworkUnavailable`` when remote access is impossible."""

        if not self._enabled:
            raise RemoteUnavailable("Remote backups are disabled (backup.remote.enable is false)")
        for check in self._checks:
            try:
                check.check()
            except RemoteUnavailable as exc:
                self._service.logger.warning("remote_unavailable", error=str(exc), error_type=type(exc).__name__)
                raise

    def _require_directory(self) -> Path:
        if self._directory is None:
            raise RemoteUnavailable("Remote backups are not configured (backup.remote.directory is empty)")
        return self._directory

    def _read(self, path: Path) -> bytes:
        return self._coordinator.coordinate(path, self._service.fs.read_file)

    def _delete(self, path: Path) -> None:
        self._coordinator.coordinate(path, self._service.fs.delete)

    def _owned(self, path: Path) -> Path:
        directory = self._require_directory()
        candidate = Path(path)
        if candidate.parent.resolve() != directory.resolve():
            raise BackupError(f"{candidate} is not a remote backup in {directory}")
        return candidate

    # ------------------------------------------------------------------
    def create_backup(self) -> BackupDescriptor:
        self.check_availability()
        directory = self._require_directory()
        logger = self._service.logger
        with self._service.operation(BackupState.REMOTE_SYNC):
            created_at = datetime.now(timezone.utc).replace(microsecond=0)
            data = self._service.snapshot_bytes(created_at=created_at)
            target = unique_snapshot_path(directory, REMOTE_PREFIX, created_at)
            self._coordinator.coordinate(target, lambda path: self._service.fs.write_file(path, data))
            descriptor = describe(target, data)
            logger.event(event="remote_backup_created", phase="remote", ok=True, file=target.name, bytes=len(data))
            apply_retention(
                self._list(directory),
                self._policy,
                fs=self._service.fs,
                logger=logger,
                delete=self._delete,
            )
        return descriptor

    def _list(self, directory: Path) -> List[BackupDescriptor]:
        return list_descriptors(
            directory,
            fs=self._service.fs,
            prefix=REMOTE_PREFIX,
            logger=self._service.logger,
            read=self._read,
        )

    def list_backups(self) -> List[BackupDescriptor]:
        self.check_availability()
        directory = self._require_directory()
        with self._service.operation(BackupState.REMOTE_SYNC):
            return self._list(directory)

    def delete_backup(self, backup: BackupDescriptor | Path) -> None:
        path = backup.path if isinstance(backup, BackupDescriptor) else Path(backup)
        self.check_availability()
        target = self._owned(path)
        with self._service.operation(BackupState.REMOTE_SYNC):
            self._delete(target)
        self._service.logger.event(event="remote_backup_deleted", phase="remote", ok=True, file=target.name)

    def restore_backup(
        self,
        backup: BackupDescriptor | Path,
        *,
        cancel: Optional[CancelToken] = None,
    ) -> ImportSummary:
        """Import a remote snapshot through the same pipeline as a local file."""

        path = backup.path if isinstance(backup, BackupDescriptor) else Path(backup)
        self.check_availability()
        target = self._owned(path)
        return self._service.import_data(target, cancel=cancel, read=self._read)


__all__ = ["RemoteBackupManager"]
