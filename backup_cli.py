#!/usr/bin/env python3
"""Command line access to export, import and remote backups of the tracker."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from backup.api import BackupService
from backup.errors import BackupError, RollbackFailed
from backup.remote import RemoteBackupManager
from backup.types import BackupDescriptor, ImportSummary
from core.logging_utils import configure_json_logging
from core.paths import ensure_working_dir_structure, get_database_path, resolve_working_dir
from core.settings import load_settings
from store.sqlite import SqliteEntityStore

LOGGER = logging.getLogger("evtracker.cli")


def _descriptor_dict(item: BackupDescriptor) -> Dict[str, Any]:
    return {
        "file_name": item.file_name,
        "path": str(item.path),
        "created_at": item.created_at.isoformat(),
        "size_bytes": item.size_bytes,
        "device_name": item.device_name,
        "app_version": item.app_version,
        "schema_version": item.schema_version,
        "cars": item.cars_count,
        "expenses": item.expenses_count,
        "maintenance": item.maintenance_count,
        "notifications": item.notifications_count,
    }


def _import_dict(summary: ImportSummary) -> Dict[str, Any]:
    return {
        "source": str(summary.source),
        "safety_backup": str(summary.safety_backup),
        "counts": summary.counts.as_dict(),
        "car_id_map": {str(old): new for old, new in summary.car_id_map.items()},
        "pruned_safety_backups": list(summary.pruned_safety_backups),
    }


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Export and import EV Charging Tracker data")
    parser.add_argument("--working-dir", dest="working_dir", default=None, help="Override the working directory")
    parser.add_argument("--db", dest="db_path", default=None, help="Override the SQLite database path")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("export", help="Write a snapshot of all data to the exports directory")
    import_parser = sub.add_parser("import", help="Replace all data with a snapshot file")
    import_parser.add_argument("path", help="Snapshot file to import")
    sub.add_parser("safety-list", help="List local safety backups")

    sub.add_parser("remote-list", help="List remote backups")
    sub.add_parser("remote-create", help="Create a remote backup and apply retention")
    restore_parser = sub.add_parser("remote-restore", help="Import a remote backup")
    restore_parser.add_argument("path", help="Remote snapshot file")
    delete_parser = sub.add_parser("remote-delete", help="Delete a remote backup")
    delete_parser.add_argument("path", help="Remote snapshot file")
    return parser


def run(args: argparse.Namespace) -> Dict[str, Any]:
    working_dir = Path(args.working_dir).expanduser().resolve() if args.working_dir else resolve_working_dir()
    ensure_working_dir_structure(working_dir)
    settings = load_settings(working_dir)
    logging_cfg = settings.get("logging") if isinstance(settings.get("logging"), dict) else {}
    configure_json_logging(
        "evtracker",
        working_dir=working_dir,
        level=logging_cfg.get("level", "INFO"),
        json_lines=bool(logging_cfg.get("json", True)),
    )

    db_path = Path(args.db_path).expanduser() if args.db_path else get_database_path(working_dir)
    store = SqliteEntityStore.open(db_path)
    try:
        service = BackupService(store, working_dir=working_dir, settings=settings)
        command = args.command
        if command == "export":
            return {"path": str(service.export_data())}
        if command == "import":
            return _import_dict(service.import_data(Path(args.path).expanduser()))
        if command == "safety-list":
            return {"backups": [_descriptor_dict(item) for item in service.list_safety_backups()]}

        remote = RemoteBackupManager(service)
        if command == "remote-list":
            items: List[BackupDescriptor] = remote.list_backups()
            return {"backups": [_descriptor_dict(item) for item in items]}
        if command == "remote-create":
            return _descriptor_dict(remote.create_backup())
        if command == "remote-restore":
            return _import_dict(remote.restore_backup(Path(args.path).expanduser()))
        if command == "remote-delete":
            remote.delete_backup(Path(args.path).expanduser())
            return {"deleted": str(args.path)}
        raise BackupError(f"Unknown command {command!r}")
    finally:
        store.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        summary = run(args)
    except RollbackFailed as exc:
        LOGGER.critical("%s", exc)
        print(json.dumps({"ok": False, "error": str(exc), "safety_backup": str(exc.safety_backup_path)}, indent=2))
        return 3
    except BackupError as exc:
        LOGGER.error("%s failed: %s", args.command, exc)
        print(json.dumps({"ok": False, "error": str(exc), "type": type(exc).__name__}, indent=2))
        return 1

    print(json.dumps({"ok": True, **summary}, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
