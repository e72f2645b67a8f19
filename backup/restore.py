"""Replace the live store with a snapshot, rolling back on failure."""
from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

from store.contracts import EntityStore

from . import codec
from .errors import CorruptedData, ImportRolledBack, RollbackFailed
from .logs import BackupLogger
from .schema import Snapshot
from .storage import LocalFileSystem
from .types import BackupState, RestoreCounts, SettingsBackup

PhaseCallback = Callable[[BackupState], None]


def _noop(_: BackupState) -> None:
    return None


def _apply_settings(store: EntityStore, settings: SettingsBackup, *, logger: BackupLogger) -> None:
    if settings.currency is not None and not store.settings.upsert_currency(settings.currency.value):
        logger.warning("settings_not_restored", key="currency", value=settings.currency.value)
    if settings.language is not None and not store.settings.upsert_language(settings.language.value):
        logger.warning("settings_not_restored", key="language", value=settings.language.value)


def restore_entities(
    store: EntityStore,
    entities: codec.Entities,
    *,
    logger: BackupLogger,
) -> Tuple[RestoreCounts, Dict[int, int]]:
    """Insert ``entities`` into an empty store, remapping every car reference.

    The store assigns fresh ids; snapshot ids only key the remap tables. Any
    failed insert raises ``CorruptedData`` and stops the pass.
    """

    cars, expenses, maintenance, notifications, settings = entities
    counts = RestoreCounts()
    _apply_settings(store, settings, logger=logger)

    car_ids: Dict[int, int] = {}
    for car in cars:
        new_id = store.cars.insert(car.with_id(None))
        if new_id is None:
            raise CorruptedData(f"car {car.id} ({car.name!r}) could not be inserted")
        if car.id is not None:
            car_ids[car.id] = new_id
        counts.cars += 1

    for expense in expenses:
        record = expense.with_id(None)
        if expense.car_id is not None:
            mapped = car_ids.get(expense.car_id)
            if mapped is None:
                record = record.without_car()
                counts.detached_expenses += 1
            else:
                record = record.with_car_id_unchecked(mapped)
        if store.expenses.insert(record) is None:
            raise CorruptedData(f"expense {expense.id} could not be inserted")
        counts.expenses += 1

    maintenance_ids: Dict[int, int] = {}
    for item in maintenance:
        mapped = car_ids.get(item.car_id)
        if mapped is None:
            raise CorruptedData(f"planned maintenance {item.id} references unknown car {item.car_id}")
        new_id = store.maintenance.insert(item.with_id(None).with_car_id(mapped))
        if new_id is None:
            raise CorruptedData(f"planned maintenance {item.id} could not be inserted")
        if item.id is not None:
            maintenance_ids[item.id] = new_id
        counts.maintenance += 1

    for notification in notifications:
        mapped = car_ids.get(notification.car_id)
        if mapped is None:
            raise CorruptedData(f"delayed notification {notification.id} references unknown car {notification.car_id}")
        record_ref = notification.maintenance_record
        if record_ref is not None:
            record_ref = maintenance_ids.get(record_ref, record_ref)
        record = notification.with_id(None).with_references(car_id=mapped, maintenance_record=record_ref)
        if store.notifications.insert(record) is None:
            raise CorruptedData(f"delayed notification {notification.id} could not be inserted")
        counts.notifications += 1

    if counts.detached_expenses:
        logger.warning("expenses_detached", count=counts.detached_expenses)
    return counts, car_ids


def replace_store(
    store: EntityStore,
    snapshot: Snapshot,
    *,
    logger: BackupLogger,
    on_phase: PhaseCallback = _noop,
) -> Tuple[RestoreCounts, Dict[int, int]]:
    entities = codec.to_entities(snapshot)
    on_phase(BackupState.WIPING)
    store.delete_all_data()
    on_phase(BackupState.RESTORING)
    return restore_entities(store, entities, logger=logger)


def rollback(
    store: EntityStore,
    safety_path: Path,
    *,
    fs: LocalFileSystem,
    logger: BackupLogger,
) -> RestoreCounts:
    """Replay the safety snapshot at ``safety_path`` over the store."""

    snapshot = codec.decode(fs.read_file(safety_path))
    counts, _ = replace_store(store, snapshot, logger=logger)
    return counts


def apply_snapshot(
    store: EntityStore,
    snapshot: Snapshot,
    *,
    safety_path: Path,
    fs: LocalFileSystem,
    logger: BackupLogger,
    on_phase: Optional[PhaseCallback] = None,
) -> Tuple[RestoreCounts, Dict[int, int]]:
    """Wipe and restore ``snapshot``; on failure restore ``safety_path`` instead.

    The safety snapshot must already be durable on disk. Raises
    ``ImportRolledBack`` when the previous data was restored and
    ``RollbackFailed`` when even that failed.
    """

    phase = on_phase or _noop
    try:
        return replace_store(store, snapshot, logger=logger, on_phase=phase)
    except Exception as exc:
        logger.error("import_failed", error=str(exc), error_type=type(exc).__name__, safety_backup=str(safety_path))
        phase(BackupState.ROLLING_BACK)
        try:
            counts = rollback(store, safety_path, fs=fs, logger=logger)
        except Exception as rollback_exc:
            logger.critical(
                "rollback_failed",
                error=str(rollback_exc),
                import_error=str(exc),
                safety_backup=str(safety_path),
            )
            raise RollbackFailed(safety_path, import_error=exc) from rollback_exc
        logger.event(event="rollback_completed", phase="import", ok=True, **counts.as_dict())
        raise ImportRolledBack(safety_path) from exc


__all__ = ["apply_snapshot", "replace_store", "restore_entities", "rollback"]
