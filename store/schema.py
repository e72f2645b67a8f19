"""Linear schema migrations for the tracker database."""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Sequence

from core.db import transaction

LOGGER = logging.getLogger("evtracker.store.schema")

EXPENSES_TABLE = "charging_sessions"
MIGRATIONS_TABLE = "migrations"
USER_SETTINGS_TABLE = "user_settings"
CARS_TABLE = "cars"
PLANNED_MAINTENANCE_TABLE = "planned_maintenance"
DELAYED_NOTIFICATIONS_TABLE = "delayed_notifications"

_DEFAULT_CAR_NAME = "My car"


def _utcnow_text() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _create_expenses(conn: sqlite3.Connection) -> None:
    conn.execute(f"DROP TABLE IF EXISTS {EXPENSES_TABLE}")
    conn.execute(
        f"""
        CREATE TABLE {EXPENSES_TABLE} (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          date TEXT NOT NULL,
          energy_charged REAL NOT NULL,
          charger_type TEXT NOT NULL,
          odometer INTEGER NOT NULL,
          cost REAL,
          notes TEXT NOT NULL,
          is_inital_record INTEGER NOT NULL,
          expense_type TEXT NOT NULL,
          currency TEXT NOT NULL
        )
        """
    )


def _create_user_settings(conn: sqlite3.Connection) -> None:
    conn.execute(
        f"""
        CREATE TABLE IF NOT EXISTS {USER_SETTINGS_TABLE} (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          key TEXT NOT NULL,
          value TEXT NOT NULL
        )
        """
    )
    existing = conn.execute(f"SELECT 1 FROM {USER_SETTINGS_TABLE} WHERE key='currency' LIMIT 1").fetchone()
    if existing is None:
        conn.execute(f"INSERT INTO {USER_SETTINGS_TABLE}(key, value) VALUES('currency', ?)", ("₸",))


def _create_cars(conn: sqlite3.Connection) -> None:
    conn.execute(
        f"""
        CREATE TABLE IF NOT EXISTS {CARS_TABLE} (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          name TEXT NOT NULL,
          selected_for_tracking INTEGER NOT NULL,
          battery_capacity REAL,
          expense_currency TEXT NOT NULL,
          current_mileage INTEGER NOT NULL,
          initial_mileage INTEGER NOT NULL,
          milleage_synced_at TEXT NOT NULL,
          created_at TEXT NOT NULL
        )
        """
    )
    conn.execute(f"ALTER TABLE {EXPENSES_TABLE} ADD COLUMN car_id INTEGER")

    rows = conn.execute(
        f"SELECT id, odometer, currency, is_inital_record FROM {EXPENSES_TABLE} ORDER BY id DESC"
    ).fetchall()
    if not rows:
        return
    latest = rows[0]
    initial = next((row for row in rows if row["is_inital_record"]), rows[-1])
    now = _utcnow_text()
    cursor = conn.execute(
        f"""
        INSERT INTO {CARS_TABLE}(name, selected_for_tracking, battery_capacity, expense_currency,
            current_mileage, initial_mileage, milleage_synced_at, created_at)
        VALUES(?, 1, NULL, ?, ?, ?, ?, ?)
        """,
        (_DEFAULT_CAR_NAME, latest["currency"], latest["odometer"], initial["odometer"], now, now),
    )
    conn.execute(f"UPDATE {EXPENSES_TABLE} SET car_id=?", (cursor.lastrowid,))
    LOGGER.info("Attached %s existing expenses to default car %s", len(rows), cursor.lastrowid)


def _create_planned_maintenance(conn: sqlite3.Connection) -> None:
    conn.execute(
        f"""
        CREATE TABLE IF NOT EXISTS {PLANNED_MAINTENANCE_TABLE} (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          name TEXT NOT NULL,
          notes TEXT NOT NULL,
          "when" TEXT,
          odometer INTEGER,
          car_id INTEGER NOT NULL,
          created_at TEXT NOT NULL
        )
        """
    )


def _create_delayed_notifications(conn: sqlite3.Connection) -> None:
    conn.execute(
        f"""
        CREATE TABLE IF NOT EXISTS {DELAYED_NOTIFICATIONS_TABLE} (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          "when" TEXT NOT NULL,
          notification_id TEXT NOT NULL,
          maintenance_record_id INTEGER,
          car_id INTEGER NOT NULL,
          created_at TEXT NOT NULL
        )
        """
    )


def _add_wheel_details(conn: sqlite3.Connection) -> None:
    conn.execute(f"ALTER TABLE {CARS_TABLE} ADD COLUMN front_wheel_size TEXT")
    conn.execute(f"ALTER TABLE {CARS_TABLE} ADD COLUMN rear_wheel_size TEXT")


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    apply: Callable[[sqlite3.Connection], None]


MIGRATIONS: Sequence[Migration] = (
    Migration(1, "create_expenses_table", _create_expenses),
    Migration(2, "create_user_settings_table", _create_user_settings),
    Migration(3, "20251021_create_cars_table", _create_cars),
    Migration(4, "20251104_create_planned_maintenance_table", _create_planned_maintenance),
    Migration(5, "20251114_create_delayed_notification_table", _create_delayed_notifications),
    Migration(6, "20250131_add_wheel_details_to_cars_table", _add_wheel_details),
)

SCHEMA_VERSION = MIGRATIONS[-1].version


def current_version(conn: sqlite3.Connection) -> int:
    conn.execute(
        f"CREATE TABLE IF NOT EXISTS {MIGRATIONS_TABLE} (id INTEGER PRIMARY KEY AUTOINCREMENT, date TEXT NOT NULL)"
    )
    row = conn.execute(f"SELECT MAX(id) FROM {MIGRATIONS_TABLE}").fetchone()
    return int(row[0] or 0)


def migrate(conn: sqlite3.Connection, migrations: Sequence[Migration] = MIGRATIONS) -> List[str]:
    """Apply every migration newer than the recorded version, one transaction each."""

    executed: List[str] = []
    version = current_version(conn)
    for migration in migrations:
        if migration.version <= version:
            continue
        with transaction(conn):
            migration.apply(conn)
            conn.execute(
                f"INSERT INTO {MIGRATIONS_TABLE}(id, date) VALUES(?, ?)",
                (migration.version, _utcnow_text()),
            )
        LOGGER.info("Applied migration %s (%s)", migration.version, migration.name)
        executed.append(migration.name)
    return executed


__all__ = [
    "CARS_TABLE",
    "DELAYED_NOTIFICATIONS_TABLE",
    "EXPENSES_TABLE",
    "MIGRATIONS",
    "PLANNED_MAINTENANCE_TABLE",
    "SCHEMA_VERSION",
    "USER_SETTINGS_TABLE",
    "current_version",
    "migrate",
]
