"""Create snapshot files from the live entity store."""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from core.versioning import get_app_version
from store.contracts import EntityStore
from store.models import DelayedNotification, Expense, PlannedMaintenanceRecord

from . import codec
from .logs import BackupLogger
from .schema import SnapshotMetadata
from .storage import LocalFileSystem
from .types import SettingsBackup

EXPORT_PREFIX = "ev_charging_tracker_export_"
SAFETY_PREFIX = "safety_backup_before_import_"
REMOTE_PREFIX = "ev_charging_tracker_backup_"
FILE_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def snapshot_file_name(prefix: str, when: datetime) -> str:
    return f"{prefix}{when.astimezone(timezone.utc).strftime(FILE_TIMESTAMP_FORMAT)}.json"


def unique_snapshot_path(directory: Path, prefix: str, when: datetime) -> Path:
    name = snapshot_file_name(prefix, when)
    candidate = directory / name
    counter = 1
    while candidate.exists():
        candidate = directory / f"{name[:-len('.json')]}_{counter}.json"
        counter += 1
    return candidate


def collect_entities(store: EntityStore) -> codec.Entities:
    """Read every exportable record through the repository contracts."""

    cars = store.cars.get_all()
    expenses: List[Expense] = []
    maintenance: List[PlannedMaintenanceRecord] = []
    notifications: List[DelayedNotification] = []
    for car in cars:
        if car.id is None:
            continue
        expenses.extend(store.expenses.fetch_all(car.id))
        maintenance.extend(store.maintenance.get_all(car.id))
        notifications.extend(store.notifications.get_all(car.id))
    expenses.extend(store.expenses.fetch_all(None))
    settings = SettingsBackup(
        currency=store.settings.fetch_currency(),
        language=store.settings.fetch_language(),
    )
    return cars, expenses, maintenance, notifications, settings


def build_metadata(store: EntityStore, *, device_name: str, created_at: datetime) -> SnapshotMetadata:
    return SnapshotMetadata(
        created_at=created_at,
        app_version=get_app_version(),
        device_name=device_name,
        schema_version=store.schema_version,
    )


def snapshot_bytes(store: EntityStore, *, device_name: str, created_at: Optional[datetime] = None) -> bytes:
    cars, expenses, maintenance, notifications, settings = collect_entities(store)
    metadata = build_metadata(store, device_name=device_name, created_at=created_at or _utcnow())
    return codec.encode(cars, expenses, maintenance, notifications, settings, metadata)


def write_snapshot(
    store: EntityStore,
    directory: Path,
    *,
    prefix: str,
    fs: LocalFileSystem,
    device_name: str,
    logger: BackupLogger,
    now: Optional[datetime] = None,
) -> Path:
    """Encode the store and write it durably into ``directory``."""

    created_at = now or _utcnow()
    data = snapshot_bytes(store, device_name=device_name, created_at=created_at)
    target = unique_snapshot_path(Path(directory), prefix, created_at)
    fs.write_file(target, data)
    logger.info("snapshot_written", path=str(target), bytes=len(data), prefix=prefix)
    return target


def write_export(
    store: EntityStore,
    exports_dir: Path,
    *,
    fs: LocalFileSystem,
    device_name: str,
    logger: BackupLogger,
    now: Optional[datetime] = None,
) -> Path:
    """Write a user export into the scratch exports directory."""

    path = write_snapshot(
        store, exports_dir, prefix=EXPORT_PREFIX, fs=fs, device_name=device_name, logger=logger, now=now
    )
    # The export is itself the backup; keep device backup tools away from it.
    fs.mark_excluded_from_backup(Path(exports_dir))
    return path


def write_safety_backup(
    store: EntityStore,
    safety_dir: Path,
    *,
    fs: LocalFileSystem,
    device_name: str,
    logger: BackupLogger,
    now: Optional[datetime] = None,
) -> Path:
    return write_snapshot(
        store, safety_dir, prefix=SAFETY_PREFIX, fs=fs, device_name=device_name, logger=logger, now=now
    )


__all__ = [
    "EXPORT_PREFIX",
    "FILE_TIMESTAMP_FORMAT",
    "REMOTE_PREFIX",
    "SAFETY_PREFIX",
    "collect_entities",
    "build_metadata",
    "snapshot_bytes",
    "snapshot_file_name",
    "unique_snapshot_path",
    "write_export",
    "write_safety_backup",
    "write_snapshot",
]
