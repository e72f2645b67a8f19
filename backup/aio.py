"""Asyncio facade so export and import never block an event loop."""
from __future__ import annotations

import asyncio
import logging
import threading
from pathlib import Path
from typing import Any, Callable, List, Optional

from .api import BackupService
from .errors import ImportCancelled
from .remote import RemoteBackupManager
from .types import BackupDescriptor, ImportSummary

LOGGER = logging.getLogger("evtracker.backup.aio")


class AsyncBackupService:
    """Run ``BackupService`` operations in a worker thread.

    Cancelling an awaiting import asks the worker to stop. The request is
    honoured until the wipe starts; afterwards the worker finishes the import
    (or its rollback) before the cancellation propagates.
    """

    def __init__(self, service: BackupService, remote: Optional[RemoteBackupManager] = None) -> None:
        self._service = service
        self._remote = remote

    @property
    def service(self) -> BackupService:
        return self._service

    async def export_data(self) -> Path:
        return await asyncio.to_thread(self._service.export_data)

    async def import_data(self, path: Path) -> ImportSummary:
        return await self._run_cancellable(self._service.import_data, Path(path))

    async def create_remote_backup(self) -> BackupDescriptor:
        return await asyncio.to_thread(self._require_remote().create_backup)

    async def list_remote_backups(self) -> List[BackupDescriptor]:
        return await asyncio.to_thread(self._require_remote().list_backups)

    async def delete_remote_backup(self, backup: BackupDescriptor | Path) -> None:
        await asyncio.to_thread(self._require_remote().delete_backup, backup)

    async def restore_remote_backup(self, backup: BackupDescriptor | Path) -> ImportSummary:
        return await self._run_cancellable(self._require_remote().restore_backup, backup)

    # ------------------------------------------------------------------
    def _require_remote(self) -> RemoteBackupManager:
        if self._remote is None:
            self._remote = RemoteBackupManager(self._service)
        return self._remote

    async def _run_cancellable(self, func: Callable[..., ImportSummary], *args: Any) -> ImportSummary:
        cancel = threading.Event()
        worker = asyncio.ensure_future(asyncio.to_thread(func, *args, cancel=cancel))
        try:
            return await asyncio.shield(worker)
        except asyncio.CancelledError:
            cancel.set()
            try:
                summary = await worker
            except ImportCancelled:
                LOGGER.info("Import cancelled before any data was changed")
            except Exception as exc:
                LOGGER.warning("Import finished with %s after cancellation was requested", type(exc).__name__)
            else:
                LOGGER.warning(
                    "Cancellation requested after the wipe; import completed (%s)", summary.counts.as_dict()
                )
            raise


__all__ = ["AsyncBackupService"]
