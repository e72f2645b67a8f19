"""Two-way mapping between store entities and the snapshot document.

The encoded form is deterministic: keys are sorted, timestamps are written as
``YYYY-MM-DDTHH:MM:SSZ`` in UTC and money is written as decimal text. Encoding
the same entities twice yields the same bytes, which keeps exported files
diffable and lets tests compare raw output.
"""
from __future__ import annotations

import json
import math
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from store.models import (
    AppLanguage,
    Car,
    ChargerType,
    DEFAULT_CURRENCY,
    DEFAULT_LANGUAGE,
    Currency,
    DelayedNotification,
    Expense,
    ExpenseType,
    PlannedMaintenanceRecord,
    coerce_enum,
)

from .errors import InvalidNumericValue, MalformedDocument
from .schema import (
    Snapshot,
    SnapshotCar,
    SnapshotExpense,
    SnapshotMaintenance,
    SnapshotMetadata,
    SnapshotNotification,
    SnapshotSettings,
)
from .types import SettingsBackup

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

Entities = Tuple[
    List[Car],
    List[Expense],
    List[PlannedMaintenanceRecord],
    List[DelayedNotification],
    SettingsBackup,
]


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def format_cost(value: Optional[float]) -> Optional[str]:
    if value is None:
        return None
    number = float(value)
    if not math.isfinite(number):
        raise InvalidNumericValue("cost", value)
    return repr(number)


def parse_cost(text: Optional[str]) -> Optional[Decimal]:
    """Parse the decimal text of an expense cost; ``None`` stays ``None``."""
    if text is None:
        return None
    try:
        value = Decimal(text.strip())
    except InvalidOperation as exc:
        raise InvalidNumericValue("cost", text) from exc
    # Costs are stored as floats; values beyond float range would come back as inf.
    if not value.is_finite() or not math.isfinite(float(value)):
        raise InvalidNumericValue("cost", text)
    return value


def build_snapshot(
    cars: Iterable[Car],
    expenses: Iterable[Expense],
    maintenance: Iterable[PlannedMaintenanceRecord],
    notifications: Iterable[DelayedNotification],
    settings: SettingsBackup,
    metadata: SnapshotMetadata,
) -> Snapshot:
    return Snapshot(
        metadata=metadata,
        cars=[
            SnapshotCar(
                id=car.id,
                name=car.name,
                selected_for_tracking=car.selected_for_tracking,
                battery_capacity=car.battery_capacity,
                expense_currency=car.expense_currency.value,
                current_mileage=car.current_mileage,
                initial_mileage=car.initial_mileage,
                mileage_synced_at=car.mileage_synced_at,
                created_at=car.created_at,
                front_wheel_size=car.front_wheel_size,
                rear_wheel_size=car.rear_wheel_size,
            )
            for car in cars
        ],
        expenses=[
            SnapshotExpense(
                id=expense.id,
                date=expense.date,
                energy_charged=expense.energy_charged,
                charger_type=expense.charger_type.value,
                odometer=expense.odometer,
                cost=format_cost(expense.cost),
                notes=expense.notes,
                is_initial_record=expense.is_initial_record,
                expense_type=expense.expense_type.value,
                currency=expense.currency.value,
                car_id=expense.car_id,
            )
            for expense in expenses
        ],
        planned_maintenance=[
            SnapshotMaintenance(
                id=record.id,
                odometer=record.odometer,
                name=record.name,
                notes=record.notes,
                when=record.when,
                car_id=record.car_id,
                created_at=record.created_at,
            )
            for record in maintenance
        ],
        delayed_notifications=[
            SnapshotNotification(
                id=notification.id,
                when=notification.when,
                notification_id=notification.notification_id,
                maintenance_record=notification.maintenance_record,
                car_id=notification.car_id,
                created_at=notification.created_at,
            )
            for notification in notifications
        ],
        user_settings=SnapshotSettings(
            preferred_currency=(settings.currency or DEFAULT_CURRENCY).value,
            preferred_language=(settings.language or DEFAULT_LANGUAGE).value,
        ),
    )


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_jsonable(item) for item in value]
    if isinstance(value, float) and not math.isfinite(value):
        raise InvalidNumericValue("float", value)
    return value


def snapshot_to_document(snapshot: Snapshot) -> Dict[str, Any]:
    return _jsonable(snapshot.model_dump(by_alias=True))


def encode_snapshot(snapshot: Snapshot) -> bytes:
    document = snapshot_to_document(snapshot)
    text = json.dumps(document, sort_keys=True, indent=2, ensure_ascii=False, allow_nan=False)
    return (text + "\n").encode("utf-8")


def encode(
    cars: Iterable[Car],
    expenses: Iterable[Expense],
    maintenance: Iterable[PlannedMaintenanceRecord],
    notifications: Iterable[DelayedNotification],
    settings: SettingsBackup,
    metadata: SnapshotMetadata,
) -> bytes:
    return encode_snapshot(build_snapshot(cars, expenses, maintenance, notifications, settings, metadata))


def _summarise(exc: PydanticValidationError) -> str:
    parts = []
    for error in exc.errors()[:5]:
        location = ".".join(str(item) for item in error.get("loc", ()))
        parts.append(f"{location or '<root>'}: {error.get('msg')}")
    remaining = exc.error_count() - len(parts)
    if remaining > 0:
        parts.append(f"... {remaining} more")
    return "; ".join(parts)


def decode(data: bytes | str) -> Snapshot:
    """Parse a snapshot document.

    Raises ``MalformedDocument`` for unparsable JSON, missing keys and wrong
    value types, and ``InvalidNumericValue`` when an expense cost is not a
    decimal number. Enum fields are kept as raw text here; unknown values are
    the validator's job.
    """

    try:
        snapshot = Snapshot.model_validate_json(data)
    except PydanticValidationError as exc:
        raise MalformedDocument(_summarise(exc)) from exc
    for expense in snapshot.expenses:
        parse_cost(expense.cost)
    return snapshot


def to_entities(snapshot: Snapshot) -> Entities:
    """Convert a validated snapshot into store entities, keeping snapshot ids.

    Enum conversion is strict. Call this only after ``validate_snapshot``
    accepted the snapshot; an unknown raw value raises ``ValueError``.
    """

    cars = [
        Car(
            id=item.id,
            name=item.name,
            selected_for_tracking=item.selected_for_tracking,
            battery_capacity=item.battery_capacity,
            expense_currency=Currency(item.expense_currency),
            current_mileage=item.current_mileage,
            initial_mileage=item.initial_mileage,
            mileage_synced_at=item.mileage_synced_at,
            created_at=item.created_at,
            front_wheel_size=item.front_wheel_size,
            rear_wheel_size=item.rear_wheel_size,
        )
        for item in snapshot.cars
    ]
    expenses = []
    for item in snapshot.expenses:
        cost = parse_cost(item.cost)
        expense = Expense(
            id=item.id,
            date=item.date,
            energy_charged=item.energy_charged,
            charger_type=ChargerType(item.charger_type),
            odometer=item.odometer,
            cost=float(cost) if cost is not None else None,
            notes=item.notes,
            is_initial_record=item.is_initial_record,
            expense_type=ExpenseType(item.expense_type),
            currency=Currency(item.currency),
        )
        if item.car_id is not None:
            expense = expense.with_car_id_unchecked(item.car_id)
        expenses.append(expense)
    maintenance = [
        PlannedMaintenanceRecord(
            id=item.id,
            name=item.name,
            notes=item.notes,
            when=item.when,
            odometer=item.odometer,
            car_id=item.car_id,
            created_at=item.created_at,
        )
        for item in snapshot.planned_maintenance
    ]
    notifications = [
        DelayedNotification(
            id=item.id,
            when=item.when,
            notification_id=item.notification_id,
            maintenance_record=item.maintenance_record,
            car_id=item.car_id,
            created_at=item.created_at,
        )
        for item in snapshot.delayed_notifications
    ]
    # Unknown setting values are skipped on restore rather than rejected.
    settings = SettingsBackup(
        currency=coerce_enum(Currency, snapshot.user_settings.preferred_currency, None),
        language=coerce_enum(AppLanguage, snapshot.user_settings.preferred_language, None),
    )
    return cars, expenses, maintenance, notifications, settings


__all__ = [
    "TIMESTAMP_FORMAT",
    "build_snapshot",
    "decode",
    "encode",
    "encode_snapshot",
    "format_cost",
    "format_timestamp",
    "parse_cost",
    "snapshot_to_document",
    "to_entities",
]
