"""Common dataclasses shared across backup modules."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from store.models import AppLanguage, Currency


class BackupState(str, Enum):
    IDLE = "idle"
    EXPORTING = "exporting"
    VALIDATING = "importing.validating"
    BACKING_UP = "importing.backing_up"
    WIPING = "importing.wiping"
    RESTORING = "importing.restoring"
    ROLLING_BACK = "importing.rolling_back"
    REMOTE_SYNC = "remote.sync"


@dataclass(slots=True, frozen=True)
class SettingsBackup:
    """The user settings carried inside a snapshot."""

    currency: Optional[Currency]
    language: Optional[AppLanguage]


@dataclass(slots=True, frozen=True)
class BackupDescriptor:
    """Metadata about a stored snapshot file, read from its embedded metadata."""

    file_name: str
    path: Path
    created_at: datetime
    size_bytes: int
    device_name: str
    app_version: str
    schema_version: int
    cars_count: int
    expenses_count: int
    maintenance_count: int
    notifications_count: int


@dataclass(slots=True)
class RestoreCounts:
    cars: int = 0
    expenses: int = 0
    maintenance: int = 0
    notifications: int = 0
    detached_expenses: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "cars": self.cars,
            "expenses": self.expenses,
            "maintenance": self.maintenance,
            "notifications": self.notifications,
            "detached_expenses": self.detached_expenses,
        }


@dataclass(slots=True)
class ImportSummary:
    source: Path
    safety_backup: Path
    counts: RestoreCounts
    car_id_map: Dict[int, int] = field(default_factory=dict)
    pruned_safety_backups: List[str] = field(default_factory=list)


@dataclass(slots=True)
class RetentionSummary:
    removed: List[str]
    kept: List[str]
    freed_bytes: int


__all__ = [
    "BackupDescriptor",
    "BackupState",
    "ImportSummary",
    "RestoreCounts",
    "RetentionSummary",
    "SettingsBackup",
]
