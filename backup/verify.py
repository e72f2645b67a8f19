"""Integrity checks run on a decoded snapshot before it may replace live data."""
from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Optional

from store.models import ChargerType, Currency, ExpenseType

from .codec import parse_cost
from .errors import (
    InvalidCurrency,
    InvalidDate,
    InvalidEnumValue,
    InvalidNumericValue,
    InvalidReference,
    NewerSchemaVersion,
)
from .schema import Snapshot

FUTURE_DATE_TOLERANCE = timedelta(days=1)

_CURRENCIES = frozenset(item.value for item in Currency)
_CHARGER_TYPES = frozenset(item.value for item in ChargerType)
_EXPENSE_TYPES = frozenset(item.value for item in ExpenseType)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _non_negative(value: float) -> bool:
    return math.isfinite(value) and value >= 0


def validate_snapshot(
    snapshot: Snapshot,
    *,
    current_schema_version: int,
    now: Optional[datetime] = None,
) -> None:
    """Raise the first ``ValidationError`` found in ``snapshot``.

    Checks run in a fixed order and stop at the first failure: schema version,
    future dates, negative or non-finite numbers, currency codes, enum values,
    then car references. Unknown enum values are rejected here even though
    repository reads silently fall back to a default; the import path must not
    guess.
    """

    metadata = snapshot.metadata
    if metadata.schema_version > current_schema_version:
        raise NewerSchemaVersion(current=current_schema_version, file=metadata.schema_version)

    limit = _as_utc(now or datetime.now(timezone.utc)) + FUTURE_DATE_TOLERANCE
    for car in snapshot.cars:
        if _as_utc(car.created_at) > limit:
            raise InvalidDate(f"Car {car.id} createdAt", car.created_at.isoformat())
    for expense in snapshot.expenses:
        if _as_utc(expense.date) > limit:
            raise InvalidDate(f"Expense {expense.id} date", expense.date.isoformat())

    for car in snapshot.cars:
        if car.battery_capacity is not None and not _non_negative(car.battery_capacity):
            raise InvalidNumericValue("batteryCapacity", car.battery_capacity)
    for expense in snapshot.expenses:
        if not _non_negative(expense.energy_charged):
            raise InvalidNumericValue("energyCharged", expense.energy_charged)
        if expense.odometer < 0:
            raise InvalidNumericValue("odometer", expense.odometer)
        cost = parse_cost(expense.cost)
        if cost is not None and cost < 0:
            raise InvalidNumericValue("cost", expense.cost)

    for expense in snapshot.expenses:
        if expense.currency not in _CURRENCIES:
            raise InvalidCurrency(expense.currency)
    for car in snapshot.cars:
        if car.expense_currency not in _CURRENCIES:
            raise InvalidCurrency(car.expense_currency)

    for expense in snapshot.expenses:
        if expense.charger_type not in _CHARGER_TYPES:
            raise InvalidEnumValue("ChargerType", expense.charger_type)
        if expense.expense_type not in _EXPENSE_TYPES:
            raise InvalidEnumValue("ExpenseType", expense.expense_type)

    car_ids = {car.id for car in snapshot.cars if car.id is not None}
    for expense in snapshot.expenses:
        if expense.car_id is not None and expense.car_id not in car_ids:
            raise InvalidReference("Expense.carId", expense.car_id)
    for record in snapshot.planned_maintenance:
        if record.car_id not in car_ids:
            raise InvalidReference("PlannedMaintenance.carId", record.car_id)
    for notification in snapshot.delayed_notifications:
        if notification.car_id not in car_ids:
            raise InvalidReference("DelayedNotification.carId", notification.car_id)


__all__ = ["FUTURE_DATE_TOLERANCE", "validate_snapshot"]
