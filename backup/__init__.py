"""Export, import and remote backup of the EV charging tracker data."""
from __future__ import annotations

from .aio import AsyncBackupService
from .api import BackupService
from .errors import BackupError
from .remote import RemoteBackupManager
from .retention import RetentionPolicy
from .types import BackupDescriptor, BackupState, ImportSummary, RetentionSummary

__all__ = [
    "AsyncBackupService",
    "BackupDescriptor",
    "BackupError",
    "BackupService",
    "BackupState",
    "ImportSummary",
    "RemoteBackupManager",
    "RetentionPolicy",
    "RetentionSummary",
]
