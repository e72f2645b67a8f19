"""SQLite implementation of the entity store repositories."""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from core.db import connect, transaction

from .models import (
    CURRENCY_SETTING_KEY,
    DEFAULT_CURRENCY,
    DEFAULT_LANGUAGE,
    LANGUAGE_SETTING_KEY,
    AppLanguage,
    Car,
    ChargerType,
    Currency,
    DelayedNotification,
    Expense,
    ExpenseType,
    PlannedMaintenanceRecord,
    coerce_enum,
)
from .schema import (
    CARS_TABLE,
    DELAYED_NOTIFICATIONS_TABLE,
    EXPENSES_TABLE,
    PLANNED_MAINTENANCE_TABLE,
    SCHEMA_VERSION,
    USER_SETTINGS_TABLE,
    migrate,
)

LOGGER = logging.getLogger("evtracker.store")


def _to_db(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _from_db(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    text = value[:-1] + "+00:00" if value.endswith("Z") else value
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class UserSettingsRepository:
    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def fetch_value(self, key: str) -> Optional[str]:
        try:
            row = self._conn.execute(
                f"SELECT value FROM {USER_SETTINGS_TABLE} WHERE key=? LIMIT 1", (key,)
            ).fetchone()
        except sqlite3.Error as exc:
            LOGGER.error("Failed to fetch user setting %s: %s", key, exc)
            return None
        return str(row["value"]) if row else None

    def upsert_value(self, key: str, value: str) -> bool:
        try:
            row = self._conn.execute(
                f"SELECT id FROM {USER_SETTINGS_TABLE} WHERE key=? LIMIT 1", (key,)
            ).fetchone()
            if row:
                self._conn.execute(f"UPDATE {USER_SETTINGS_TABLE} SET value=? WHERE id=?", (value, row["id"]))
            else:
                self._conn.execute(f"INSERT INTO {USER_SETTINGS_TABLE}(key, value) VALUES(?, ?)", (key, value))
        except sqlite3.Error as exc:
            LOGGER.error("Failed to upsert user setting %s: %s", key, exc)
            return False
        return True

    def fetch_currency(self) -> Currency:
        return coerce_enum(Currency, self.fetch_value(CURRENCY_SETTING_KEY), DEFAULT_CURRENCY)

    def fetch_language(self) -> AppLanguage:
        return coerce_enum(AppLanguage, self.fetch_value(LANGUAGE_SETTING_KEY), DEFAULT_LANGUAGE)

    def upsert_currency(self, code: str) -> bool:
        return self.upsert_value(CURRENCY_SETTING_KEY, code)

    def upsert_language(self, code: str) -> bool:
        return self.upsert_value(LANGUAGE_SETTING_KEY, code)


class CarRepository:
    def __init__(self, conn: sqlite3.Connection, settings: UserSettingsRepository) -> None:
        self._conn = conn
        self._settings = settings

    def _row_to_car(self, row: sqlite3.Row) -> Car:
        # Unknown currency codes fall back to the user's preferred currency.
        currency = coerce_enum(Currency, row["expense_currency"], None)
        if currency is None:
            currency = self._settings.fetch_currency()
        return Car(
            id=int(row["id"]),
            name=row["name"],
            selected_for_tracking=bool(row["selected_for_tracking"]),
            battery_capacity=row["battery_capacity"],
            expense_currency=currency,
            current_mileage=int(row["current_mileage"]),
            initial_mileage=int(row["initial_mileage"]),
            mileage_synced_at=_from_db(row["milleage_synced_at"]),
            created_at=_from_db(row["created_at"]),
            front_wheel_size=row["front_wheel_size"],
            rear_wheel_size=row["rear_wheel_size"],
        )

    def get_all(self) -> List[Car]:
        try:
            rows = self._conn.execute(f"SELECT * FROM {CARS_TABLE} ORDER BY id").fetchall()
        except sqlite3.Error as exc:
            LOGGER.error("Failed to fetch cars: %s", exc)
            return []
        return [self._row_to_car(row) for row in rows]

    def insert(self, car: Car) -> Optional[int]:
        try:
            cursor = self._conn.execute(
                f"""
                INSERT INTO {CARS_TABLE}(name, selected_for_tracking, battery_capacity, expense_currency,
                    current_mileage, initial_mileage, milleage_synced_at, created_at,
                    front_wheel_size, rear_wheel_size)
                VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    car.name,
                    int(car.selected_for_tracking),
                    car.battery_capacity,
                    car.expense_currency.value,
                    car.current_mileage,
                    car.initial_mileage,
                    _to_db(car.mileage_synced_at),
                    _to_db(car.created_at),
                    car.front_wheel_size,
                    car.rear_wheel_size,
                ),
            )
        except sqlite3.Error as exc:
            LOGGER.error("Car insert failed: %s", exc)
            return None
        LOGGER.debug("Inserted car with id %s", cursor.lastrowid)
        return int(cursor.lastrowid)

    def update_mileage(self, car: Car) -> bool:
        if car.id is None:
            LOGGER.info("Mileage update skipped: car id is missing")
            return False
        try:
            cursor = self._conn.execute(
                f"UPDATE {CARS_TABLE} SET current_mileage=?, milleage_synced_at=? WHERE id=?",
                (car.current_mileage, _to_db(car.mileage_synced_at), car.id),
            )
        except sqlite3.Error as exc:
            LOGGER.error("Mileage update failed: %s", exc)
            return False
        return cursor.rowcount > 0


class ExpenseRepository:
    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    @staticmethod
    def _row_to_expense(row: sqlite3.Row) -> Expense:
        return Expense(
            id=int(row["id"]),
            date=_from_db(row["date"]),
            energy_charged=float(row["energy_charged"]),
            charger_type=coerce_enum(ChargerType, row["charger_type"], ChargerType.OTHER),
            odometer=int(row["odometer"]),
            cost=row["cost"],
            notes=row["notes"],
            is_initial_record=bool(row["is_inital_record"]),
            expense_type=coerce_enum(ExpenseType, row["expense_type"], ExpenseType.OTHER),
            currency=coerce_enum(Currency, row["currency"], Currency.USD),
            car_id=row["car_id"],
        )

    def fetch_all(self, car_id: Optional[int] = None) -> List[Expense]:
        if car_id is None:
            query = f"SELECT * FROM {EXPENSES_TABLE} WHERE car_id IS NULL ORDER BY id DESC"
            params: tuple = ()
        else:
            query = f"SELECT * FROM {EXPENSES_TABLE} WHERE car_id=? ORDER BY id DESC"
            params = (car_id,)
        try:
            rows = self._conn.execute(query, params).fetchall()
        except sqlite3.Error as exc:
            LOGGER.error("Failed to fetch expenses: %s", exc)
            return []
        return [self._row_to_expense(row) for row in rows]

    def insert(self, expense: Expense) -> Optional[int]:
        try:
            cursor = self._conn.execute(
                f"""
                INSERT INTO {EXPENSES_TABLE}(date, energy_charged, charger_type, odometer, cost, notes,
                    is_inital_record, expense_type, currency, car_id)
                VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    _to_db(expense.date),
                    expense.energy_charged,
                    expense.charger_type.value,
                    expense.odometer,
                    expense.cost,
                    expense.notes,
                    int(expense.is_initial_record),
                    expense.expense_type.value,
                    expense.currency.value,
                    expense.car_id,
                ),
            )
        except sqlite3.Error as exc:
            LOGGER.error("Expense insert failed: %s", exc)
            return None
        return int(cursor.lastrowid)

    def delete_all_for_car(self, car_id: int) -> None:
        self._conn.execute(f"DELETE FROM {EXPENSES_TABLE} WHERE car_id=?", (car_id,))


class PlannedMaintenanceRepository:
    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def get_all(self, car_id: int) -> List[PlannedMaintenanceRecord]:
        try:
            rows = self._conn.execute(
                f"SELECT * FROM {PLANNED_MAINTENANCE_TABLE} WHERE car_id=? ORDER BY id DESC", (car_id,)
            ).fetchall()
        except sqlite3.Error as exc:
            LOGGER.error("Failed to fetch planned maintenance: %s", exc)
            return []
        return [
            PlannedMaintenanceRecord(
                id=int(row["id"]),
                name=row["name"],
                notes=row["notes"],
                when=_from_db(row["when"]),
                odometer=row["odometer"],
                car_id=int(row["car_id"]),
                created_at=_from_db(row["created_at"]),
            )
            for row in rows
        ]

    def insert(self, record: PlannedMaintenanceRecord) -> Optional[int]:
        try:
            cursor = self._conn.execute(
                f"""
                INSERT INTO {PLANNED_MAINTENANCE_TABLE}(name, notes, "when", odometer, car_id, created_at)
                VALUES(?, ?, ?, ?, ?, ?)
                """,
                (record.name, record.notes, _to_db(record.when), record.odometer, record.car_id, _to_db(record.created_at)),
            )
        except sqlite3.Error as exc:
            LOGGER.error("Planned maintenance insert failed: %s", exc)
            return None
        return int(cursor.lastrowid)

    def delete_all_for_car(self, car_id: int) -> None:
        self._conn.execute(f"DELETE FROM {PLANNED_MAINTENANCE_TABLE} WHERE car_id=?", (car_id,))


class DelayedNotificationsRepository:
    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def get_all(self, car_id: int) -> List[DelayedNotification]:
        try:
            rows = self._conn.execute(
                f"SELECT * FROM {DELAYED_NOTIFICATIONS_TABLE} WHERE car_id=? ORDER BY id DESC", (car_id,)
            ).fetchall()
        except sqlite3.Error as exc:
            LOGGER.error("Failed to fetch delayed notifications: %s", exc)
            return []
        return [
            DelayedNotification(
                id=int(row["id"]),
                when=_from_db(row["when"]),
                notification_id=row["notification_id"],
                maintenance_record=row["maintenance_record_id"],
                car_id=int(row["car_id"]),
                created_at=_from_db(row["created_at"]),
            )
            for row in rows
        ]

    def insert(self, notification: DelayedNotification) -> Optional[int]:
        try:
            cursor = self._conn.execute(
                f"""
                INSERT INTO {DELAYED_NOTIFICATIONS_TABLE}("when", notification_id, maintenance_record_id, car_id, created_at)
                VALUES(?, ?, ?, ?, ?)
                """,
                (
                    _to_db(notification.when),
                    notification.notification_id,
                    notification.maintenance_record,
                    notification.car_id,
                    _to_db(notification.created_at),
                ),
            )
        except sqlite3.Error as exc:
            LOGGER.error("Delayed notification insert failed: %s", exc)
            return None
        return int(cursor.lastrowid)


class SqliteEntityStore:
    """Owns the tracker connection and exposes the per-table repositories."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._settings = UserSettingsRepository(conn)
        self._cars = CarRepository(conn, self._settings)
        self._expenses = ExpenseRepository(conn)
        self._maintenance = PlannedMaintenanceRepository(conn)
        self._notifications = DelayedNotificationsRepository(conn)

    @classmethod
    def open(cls, db_path: str | Path) -> "SqliteEntityStore":
        conn = connect(db_path)
        executed = migrate(conn)
        if executed:
            LOGGER.info("Database %s migrated: %s", db_path, ", ".join(executed))
        return cls(conn)

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    @property
    def cars(self) -> CarRepository:
        return self._cars

    @property
    def expenses(self) -> ExpenseRepository:
        return self._expenses

    @property
    def maintenance(self) -> PlannedMaintenanceRepository:
        return self._maintenance

    @property
    def notifications(self) -> DelayedNotificationsRepository:
        return self._notifications

    @property
    def settings(self) -> UserSettingsRepository:
        return self._settings

    @property
    def schema_version(self) -> int:
        return SCHEMA_VERSION

    def delete_all_data(self) -> None:
        with transaction(self._conn):
            for table in (EXPENSES_TABLE, PLANNED_MAINTENANCE_TABLE, DELAYED_NOTIFICATIONS_TABLE, CARS_TABLE):
                self._conn.execute(f"DELETE FROM {table}")
        LOGGER.info("All tracker tables truncated")

    def delete_car_data(self, car_id: int) -> None:
        # Notifications are not keyed per car here: every pending notification is dropped.
        with transaction(self._conn):
            self._expenses.delete_all_for_car(car_id)
            self._maintenance.delete_all_for_car(car_id)
            self._conn.execute(f"DELETE FROM {DELAYED_NOTIFICATIONS_TABLE}")

    def close(self) -> None:
        self._conn.close()


__all__ = [
    "CarRepository",
    "DelayedNotificationsRepository",
    "ExpenseRepository",
    "PlannedMaintenanceRepository",
    "SqliteEntityStore",
    "UserSettingsRepository",
]
