"""Error hierarchy for backup operations."""
from __future__ import annotations

from pathlib import Path
from typing import Optional


class BackupError(RuntimeError):
    """Base exception for backup related failures."""


class MalformedDocument(BackupError):
    """The snapshot file is not a readable snapshot document."""

    def __init__(self, detail: str) -> None:
        super().__init__(f"Backup file is not a valid snapshot: {detail}")
        self.detail = detail


class ValidationError(BackupError):
    """A decoded snapshot failed an integrity check; nothing was modified."""


class NewerSchemaVersion(ValidationError):
    def __init__(self, current: int, file: int) -> None:
        super().__init__(
            f"Backup uses database schema version {file} but this app supports up to {current}; "
            "update the app before importing it"
        )
        self.current = current
        self.file = file


class InvalidDate(ValidationError):
    def __init__(self, record: str, value: object) -> None:
        super().__init__(f"{record} has a date in the future: {value}")
        self.record = record
        self.value = value


class InvalidNumericValue(ValidationError):
    def __init__(self, field: str, value: object = None) -> None:
        message = f"Invalid value for {field}"
        if value is not None:
            message = f"{message}: {value!r}"
        super().__init__(message)
        self.field = field
        self.value = value


class InvalidCurrency(ValidationError):
    def __init__(self, code: str) -> None:
        super().__init__(f"Unknown currency code {code!r}")
        self.code = code


class InvalidEnumValue(ValidationError):
    def __init__(self, type: str, value: str) -> None:  # noqa: A002 - mirrors the error payload
        super().__init__(f"Unknown {type} value {value!r}")
        self.type = type
        self.value = value


class InvalidReference(ValidationError):
    def __init__(self, type: str, id: int) -> None:  # noqa: A002 - mirrors the error payload
        super().__init__(f"{type} references car {id} which is not part of the backup")
        self.type = type
        self.id = id


class CorruptedData(BackupError):
    """Raised mid-restore when a record cannot be written back."""

    def __init__(self, detail: str) -> None:
        super().__init__(f"Backup data could not be restored: {detail}")
        self.detail = detail


class BackupIOError(BackupError):
    """Reading, writing or deleting a backup file failed."""

    def __init__(self, action: str, path: Path, error: OSError) -> None:
        super().__init__(f"Failed to {action} {path}: {error}")
        self.action = action
        self.path = Path(path)


class RemoteUnavailable(BackupError):
    """The shared backup directory is not configured or not reachable."""


class NetworkUnavailable(RemoteUnavailable):
    """The network needed to sync remote backups is down."""


class BackupBusyError(BackupError):
    """Another export or import is already running on this service."""


class ImportCancelled(BackupError):
    """The caller cancelled the import before any data was modified."""


class ImportRolledBack(BackupError):
    """Import failed after the wipe; the previous data was restored."""

    def __init__(self, safety_backup_path: Path) -> None:
        super().__init__("Import failed, your data was restored")
        self.safety_backup_path = Path(safety_backup_path)


class RollbackFailed(BackupError):
    """Import failed and the automatic restore from the safety backup failed too."""

    def __init__(self, safety_backup_path: Path, import_error: Optional[BaseException] = None) -> None:
        super().__init__(
            "Import failed and automatic restore failed; "
            f"your previous data is saved at {safety_backup_path}"
        )
        self.safety_backup_path = Path(safety_backup_path)
        self.import_error = import_error


__all__ = [
    "BackupBusyError",
    "BackupError",
    "BackupIOError",
    "CorruptedData",
    "ImportCancelled",
    "ImportRolledBack",
    "InvalidCurrency",
    "InvalidDate",
    "InvalidEnumValue",
    "InvalidNumericValue",
    "InvalidReference",
    "MalformedDocument",
    "NetworkUnavailable",
    "NewerSchemaVersion",
    "RemoteUnavailable",
    "RollbackFailed",
    "ValidationError",
]
