"""Public API for export and import of the tracker data."""
from __future__ import annotations

import contextlib
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Protocol

from core.paths import get_exports_dir, get_safety_backups_dir, resolve_working_dir
from core.versioning import get_device_name
from store.contracts import EntityStore

from . import codec
from .create import SAFETY_PREFIX, snapshot_bytes, write_export, write_safety_backup
from .errors import BackupBusyError, BackupError, ImportCancelled
from .logs import BackupLogger
from .restore import apply_snapshot
from .retention import RetentionPolicy, apply_retention, list_descriptors
from .storage import LocalFileSystem
from .types import BackupDescriptor, BackupState, ImportSummary, RetentionSummary
from .verify import validate_snapshot


class CancelToken(Protocol):
    def is_set(self) -> bool: ...


def _section(settings: Dict[str, Any], *keys: str) -> Dict[str, Any]:
    current: Any = settings
    for key in keys:
        current = current.get(key) if isinstance(current, dict) else None
    return current if isinstance(current, dict) else {}


class BackupService:
    """Sequence exports, safety backups and transactional imports.

    One operation runs at a time per instance; a second caller gets
    ``BackupBusyError`` instead of waiting.
    """

    def __init__(
        self,
        store: EntityStore,
        *,
        working_dir: Optional[Path] = None,
        settings: Optional[Dict[str, Any]] = None,
        fs: Optional[LocalFileSystem] = None,
        logger: Optional[BackupLogger] = None,
    ) -> None:
        self._store = store
        self._working_dir = Path(working_dir or resolve_working_dir())
        self._settings = dict(settings or {})
        self._fs = fs or LocalFileSystem()
        self._logger = logger or BackupLogger(self._working_dir)
        self._busy = threading.Lock()
        self._state = BackupState.IDLE

    # ------------------------------------------------------------------
    @property
    def working_dir(self) -> Path:
        return self._working_dir

    @property
    def state(self) -> BackupState:
        return self._state

    @property
    def logger(self) -> BackupLogger:
        return self._logger

    @property
    def fs(self) -> LocalFileSystem:
        return self._fs

    @property
    def settings(self) -> Dict[str, Any]:
        return self._settings

    @property
    def safety_dir(self) -> Path:
        return get_safety_backups_dir(self._working_dir)

    @property
    def exports_dir(self) -> Path:
        return get_exports_dir(self._settings)

    @property
    def device_name(self) -> str:
        configured = self._settings.get("device_name")
        if isinstance(configured, str) and configured.strip():
            return configured.strip()
        return get_device_name()

    def _safety_policy(self) -> RetentionPolicy:
        raw = _section(self._settings, "backup", "safety").get("keep_last", 3)
        try:
            keep_last = int(raw)
        except (TypeError, ValueError):
            keep_last = 3
        return RetentionPolicy(keep_last=max(keep_last, 1))

    def _set_state(self, state: BackupState) -> None:
        self._state = state

    # ------------------------------------------------------------------
    @contextlib.contextmanager
    def operation(self, state: BackupState) -> Iterator[None]:
        """Hold the single-flight slot for the duration of the block."""

        if not self._busy.acquire(blocking=False):
            raise BackupBusyError(f"Backup service is busy ({self._state.value})")
        self._state = state
        try:
            yield
        finally:
            self._state = BackupState.IDLE
            self._busy.release()

    # ------------------------------------------------------------------
    def snapshot_bytes(self, *, created_at: Optional[datetime] = None) -> bytes:
        """Encode the live store; callers must hold ``operation``."""

        return snapshot_bytes(self._store, device_name=self.device_name, created_at=created_at)

    def export_data(self) -> Path:
        with self.operation(BackupState.EXPORTING):
            try:
                path = write_export(
                    self._store, self.exports_dir, fs=self._fs, device_name=self.device_name, logger=self._logger
                )
            except BackupError as exc:
                self._logger.error("export_failed", error=str(exc))
                raise
        self._logger.event(event="export_completed", phase="export", ok=True, path=str(path))
        return path

    # ------------------------------------------------------------------
    def import_data(
        self,
        path: Path,
        *,
        cancel: Optional[CancelToken] = None,
        read: Optional[Callable[[Path], bytes]] = None,
    ) -> ImportSummary:
        """Replace the store with the snapshot at ``path``.

        ``MalformedDocument``, any ``ValidationError``, ``ImportCancelled``
        and a failed safety backup leave the store untouched. Failures after
        the wipe surface as ``ImportRolledBack`` or ``RollbackFailed``.
        """

        source = Path(path)
        reader = read or self._fs.read_file
        with self.operation(BackupState.VALIDATING):
            self._logger.info("import_started", source=str(source))
            try:
                snapshot = codec.decode(reader(source))
                validate_snapshot(snapshot, current_schema_version=self._store.schema_version)
            except BackupError as exc:
                self._logger.error("import_rejected", source=str(source), error=str(exc), error_type=type(exc).__name__)
                raise
            self._check_cancel(cancel, source)

            self._set_state(BackupState.BACKING_UP)
            try:
                safety_path = write_safety_backup(
                    self._store, self.safety_dir, fs=self._fs, device_name=self.device_name, logger=self._logger
                )
            except BackupError as exc:
                self._logger.error("safety_backup_failed", source=str(source), error=str(exc))
                raise
            try:
                self._check_cancel(cancel, source)
            except ImportCancelled:
                # Nothing changed, so the safety copy duplicates the live data.
                self._fs.delete(safety_path)
                raise

            counts, car_ids = apply_snapshot(
                self._store,
                snapshot,
                safety_path=safety_path,
                fs=self._fs,
                logger=self._logger,
                on_phase=self._set_state,
            )
            pruned = self._prune_safety_backups()

        self._logger.event(
            event="import_completed",
            phase="import",
            ok=True,
            source=str(source),
            safety_backup=str(safety_path),
            **counts.as_dict(),
        )
        return ImportSummary(
            source=source,
            safety_backup=safety_path,
            counts=counts,
            car_id_map=car_ids,
            pruned_safety_backups=pruned,
        )

    def _check_cancel(self, cancel: Optional[CancelToken], source: Path) -> None:
        if cancel is not None and cancel.is_set():
            self._logger.warning("import_cancelled", source=str(source), state=self._state.value)
            raise ImportCancelled(f"Import of {source} was cancelled before any data was changed")

    # ------------------------------------------------------------------
    def list_safety_backups(self) -> List[BackupDescriptor]:
        return list_descriptors(self.safety_dir, fs=self._fs, prefix=SAFETY_PREFIX, logger=self._logger)

    def _prune_safety_backups(self) -> List[str]:
        try:
            summary = self.prune_safety_backups()
        except BackupError as exc:
            # The import already succeeded; stale safety files are retried next time.
            self._logger.warning("safety_prune_failed", error=str(exc))
            return []
        return summary.removed

    def prune_safety_backups(self) -> RetentionSummary:
        return apply_retention(
            self.list_safety_backups(), self._safety_policy(), fs=self._fs, logger=self._logger
        )


__all__ = ["BackupService", "CancelToken"]
