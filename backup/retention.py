"""Retention policy enforcement for snapshot files."""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from . import codec
from .errors import BackupError
from .logs import BackupLogger
from .storage import LocalFileSystem
from .types import BackupDescriptor, RetentionSummary


@dataclass(slots=True, frozen=True)
class RetentionPolicy:
    keep_last: int
    max_age_days: Optional[int] = None


SAFETY_RETENTION = RetentionPolicy(keep_last=3)
REMOTE_RETENTION = RetentionPolicy(keep_last=5, max_age_days=30)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


_SUFFIX = re.compile(r"^(?P<stem>.*?)(?:_(?P<counter>\d+))?\.json$")


def _age_key(item: BackupDescriptor) -> Tuple[datetime, str, int]:
    # Same-second snapshots carry a numeric ``_N`` suffix; compare it as a number.
    match = _SUFFIX.match(item.file_name)
    if match is None:
        return item.created_at, item.file_name, 0
    return item.created_at, match.group("stem"), int(match.group("counter") or 0)


def describe(path: Path, data: bytes) -> BackupDescriptor:
    """Build a descriptor from the raw bytes of the snapshot at ``path``."""

    snapshot = codec.decode(data)
    metadata = snapshot.metadata
    return BackupDescriptor(
        file_name=Path(path).name,
        path=Path(path),
        created_at=_as_utc(metadata.created_at),
        size_bytes=len(data),
        device_name=metadata.device_name,
        app_version=metadata.app_version,
        schema_version=metadata.schema_version,
        cars_count=len(snapshot.cars),
        expenses_count=len(snapshot.expenses),
        maintenance_count=len(snapshot.planned_maintenance),
        notifications_count=len(snapshot.delayed_notifications),
    )


def list_descriptors(
    directory: Path,
    *,
    fs: LocalFileSystem,
    prefix: str = "",
    logger: Optional[BackupLogger] = None,
    read: Optional[Callable[[Path], bytes]] = None,
) -> List[BackupDescriptor]:
    """Describe every snapshot in ``directory``, newest first.

    Files that cannot be read or decoded are skipped.
    """

    reader = read or fs.read_file
    items: List[BackupDescriptor] = []
    for path in fs.list_directory(directory, pattern=f"{prefix}*.json"):
        try:
            items.append(describe(path, reader(path)))
        except BackupError as exc:
            if logger is not None:
                logger.warning("snapshot_unreadable", path=str(path), error=str(exc))
    items.sort(key=_age_key, reverse=True)
    return items


def select_for_deletion(
    descriptors: Iterable[BackupDescriptor],
    policy: RetentionPolicy,
    *,
    now: Optional[datetime] = None,
) -> List[BackupDescriptor]:
    """Union of snapshots older than the age limit and those past ``keep_last``."""

    ordered = sorted(descriptors, key=_age_key, reverse=True)
    doomed: Dict[Path, BackupDescriptor] = {}
    if policy.max_age_days is not None:
        cutoff = _as_utc(now or datetime.now(timezone.utc)) - timedelta(days=policy.max_age_days)
        for item in ordered:
            if _as_utc(item.created_at) < cutoff:
                doomed[item.path] = item
    for item in ordered[max(policy.keep_last, 0):]:
        doomed.setdefault(item.path, item)
    return [item for item in ordered if item.path in doomed]


def apply_retention(
    descriptors: Iterable[BackupDescriptor],
    policy: RetentionPolicy,
    *,
    fs: LocalFileSystem,
    logger: BackupLogger,
    now: Optional[datetime] = None,
    delete: Optional[Callable[[Path], None]] = None,
) -> RetentionSummary:
    items = list(descriptors)
    remover = delete or fs.delete
    removed: List[str] = []
    freed = 0
    for item in select_for_deletion(items, policy, now=now):
        remover(item.path)
        removed.append(item.file_name)
        freed += item.size_bytes
        logger.warning("backup_removed", file=item.file_name, reason="retention")

    kept = [item.file_name for item in items if item.file_name not in removed]
    logger.event(event="retention_applied", phase="retention", ok=True, removed=len(removed), kept=len(kept))
    return RetentionSummary(removed=removed, kept=kept, freed_bytes=freed)


__all__ = [
    "REMOTE_RETENTION",
    "RetentionPolicy",
    "SAFETY_RETENTION",
    "apply_retention",
    "describe",
    "list_descriptors",
    "select_for_deletion",
]
