from __future__ import annotations

import dataclasses
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from store.models import (
    AppLanguage,
    Car,
    ChargerType,
    Currency,
    DelayedNotification,
    Expense,
    ExpenseType,
    PlannedMaintenanceRecord,
)
from store.sqlite import SqliteEntityStore

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class StubLogger:
    def __init__(self) -> None:
        self.events: List[tuple] = []

    def info(self, event: str, **extra):  # pragma: no cover - recorder
        self.events.append(("info", event, extra))

    def warning(self, event: str, **extra):  # pragma: no cover - recorder
        self.events.append(("warning", event, extra))

    def error(self, event: str, **extra):  # pragma: no cover - recorder
        self.events.append(("error", event, extra))

    def critical(self, event: str, **extra):  # pragma: no cover - recorder
        self.events.append(("critical", event, extra))

    def event(self, *, event: str, phase: str, ok: bool, **extra):  # pragma: no cover - recorder
        self.events.append(("event", event, phase, ok, extra))

    def names(self) -> List[str]:
        return [entry[1] for entry in self.events]


class _Table:
    """Id-assigning list of frozen records, keyed like an autoincrement table."""

    def __init__(self, start_id: int = 1) -> None:
        self.rows: Dict[int, object] = {}
        self.next_id = start_id
        self.fail_on: Optional[int] = None
        self.calls = 0

    def add(self, record) -> Optional[int]:
        self.calls += 1
        if self.fail_on is not None and self.calls == self.fail_on:
            return None
        new_id = self.next_id
        self.next_id += 1
        self.rows[new_id] = dataclasses.replace(record, id=new_id)
        return new_id

    def clear(self) -> None:
        self.rows.clear()


class FakeCars:
    def __init__(self, table: _Table) -> None:
        self.table = table

    def get_all(self) -> List[Car]:
        return [self.table.rows[key] for key in sorted(self.table.rows)]

    def insert(self, car: Car) -> Optional[int]:
        return self.table.add(car)

    def update_mileage(self, car: Car) -> bool:
        if car.id not in self.table.rows:
            return False
        self.table.rows[car.id] = car
        return True


class FakeExpenses:
    def __init__(self, table: _Table) -> None:
        self.table = table

    def fetch_all(self, car_id: Optional[int] = None) -> List[Expense]:
        return [row for _, row in sorted(self.table.rows.items()) if row.car_id == car_id]

    def insert(self, expense: Expense) -> Optional[int]:
        return self.table.add(expense)

    def delete_all_for_car(self, car_id: int) -> None:
        for key in [key for key, row in self.table.rows.items() if row.car_id == car_id]:
            del self.table.rows[key]


class FakeMaintenance(FakeExpenses):
    def get_all(self, car_id: int) -> List[PlannedMaintenanceRecord]:
        return self.fetch_all(car_id)


class FakeNotifications:
    def __init__(self, table: _Table) -> None:
        self.table = table

    def get_all(self, car_id: int) -> List[DelayedNotification]:
        return [row for _, row in sorted(self.table.rows.items()) if row.car_id == car_id]

    def insert(self, notification: DelayedNotification) -> Optional[int]:
        return self.table.add(notification)


class FakeSettings:
    def __init__(self) -> None:
        self.values: Dict[str, str] = {}

    def fetch_currency(self) -> Currency:
        return Currency(self.values.get("currency", Currency.KZT.value))

    def fetch_language(self) -> AppLanguage:
        return AppLanguage(self.values.get("language", AppLanguage.EN.value))

    def upsert_currency(self, code: str) -> bool:
        self.values["currency"] = code
        return True

    def upsert_language(self, code: str) -> bool:
        self.values["language"] = code
        return True


class InMemoryStore:
    """Entity store double with per-table failure injection."""

    schema_version = 6

    def __init__(self, *, car_start_id: int = 1) -> None:
        self.car_table = _Table(car_start_id)
        self.expense_table = _Table()
        self.maintenance_table = _Table()
        self.notification_table = _Table()
        self.cars = FakeCars(self.car_table)
        self.expenses = FakeExpenses(self.expense_table)
        self.maintenance = FakeMaintenance(self.maintenance_table)
        self.notifications = FakeNotifications(self.notification_table)
        self.settings = FakeSettings()
        self.wipes = 0

    def delete_all_data(self) -> None:
        self.wipes += 1
        for table in (self.car_table, self.expense_table, self.maintenance_table, self.notification_table):
            table.clear()


def make_car(name: str = "Model 3", **overrides) -> Car:
    values = dict(
        name=name,
        selected_for_tracking=True,
        battery_capacity=75.0,
        expense_currency=Currency.USD,
        current_mileage=1000,
        initial_mileage=0,
        mileage_synced_at=NOW,
        created_at=NOW,
    )
    values.update(overrides)
    return Car(**values)


def make_expense(car_id: Optional[int], **overrides) -> Expense:
    values = dict(
        date=NOW,
        energy_charged=10.0,
        charger_type=ChargerType.HOME_7KW,
        odometer=1000,
        cost=12.5,
        notes="",
        is_initial_record=False,
        expense_type=ExpenseType.CHARGING,
        currency=Currency.USD,
        car_id=car_id,
    )
    values.update(overrides)
    return Expense(**values)


def make_maintenance(car_id: int, **overrides) -> PlannedMaintenanceRecord:
    values = dict(name="Tyre rotation", notes="front to back", car_id=car_id, created_at=NOW, odometer=20000)
    values.update(overrides)
    return PlannedMaintenanceRecord(**values)


def make_notification(car_id: int, **overrides) -> DelayedNotification:
    values = dict(when=NOW, notification_id="notif-1", car_id=car_id, created_at=NOW)
    values.update(overrides)
    return DelayedNotification(**values)


def populate(store, *, cars: int = 2, expenses_per_car: int = 2) -> None:
    """Insert ``cars`` cars with expenses, one maintenance record and one notification each."""

    for index in range(cars):
        car_id = store.cars.insert(make_car(f"Car {index + 1}", current_mileage=1000 * (index + 1)))
        for number in range(expenses_per_car):
            store.expenses.insert(make_expense(car_id, odometer=100 * (number + 1), notes=f"e{number}"))
        record_id = store.maintenance.insert(make_maintenance(car_id))
        store.notifications.insert(make_notification(car_id, maintenance_record=record_id))


@pytest.fixture
def stub_logger() -> StubLogger:
    return StubLogger()


@pytest.fixture
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def store_factory() -> Callable[..., InMemoryStore]:
    return InMemoryStore


@pytest.fixture
def sqlite_store(tmp_path: Path):
    store = SqliteEntityStore.open(tmp_path / "data" / "tracker.sqlite3")
    try:
        yield store
    finally:
        store.close()


def snapshot_document(**overrides) -> dict:
    """A valid wire document with one car, one expense, one maintenance record and one notification."""

    document = {
        "metadata": {
            "createdAt": "2024-05-01T12:00:00Z",
            "appVersion": "1.6.0",
            "deviceName": "test-device",
            "databaseSchemaVersion": 6,
        },
        "cars": [
            {
                "id": 1,
                "name": "Model Y",
                "selectedForTracking": True,
                "batteryCapacity": 75.0,
                "expenseCurrency": "$",
                "currentMileage": 1000,
                "initialMileage": 0,
                "milleageSyncedAt": "2024-05-01T12:00:00Z",
                "createdAt": "2024-04-01T08:00:00Z",
                "frontWheelSize": None,
                "rearWheelSize": None,
            }
        ],
        "expenses": [
            {
                "id": 1,
                "date": "2024-04-30T18:00:00Z",
                "energyCharged": 10.0,
                "chargerType": "Home (7kW)",
                "odometer": 1000,
                "cost": "12.50",
                "notes": "",
                "isInitialRecord": False,
                "expenseType": "charging",
                "currency": "$",
                "carId": 1,
            }
        ],
        "plannedMaintenance": [
            {
                "id": 3,
                "odometer": 15000,
                "name": "Cabin filter",
                "notes": "",
                "when": None,
                "carId": 1,
                "createdAt": "2024-04-02T08:00:00Z",
            }
        ],
        "delayedNotifications": [
            {
                "id": 4,
                "when": "2024-06-01T09:00:00Z",
                "notificationId": "maintenance-3",
                "maintenanceRecord": 3,
                "carId": 1,
                "createdAt": "2024-04-02T08:00:00Z",
            }
        ],
        "userSettings": {"preferredCurrency": "$", "preferredLanguage": "en"},
    }
    document.update(overrides)
    return document
