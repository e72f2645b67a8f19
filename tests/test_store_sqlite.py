from datetime import datetime, timezone

import pytest

from core.db import connect
from store.models import AppLanguage, CarAlreadyAssigned, ChargerType, Currency, ExpenseType
from store.schema import EXPENSES_TABLE, MIGRATIONS, SCHEMA_VERSION, current_version, migrate
from store.sqlite import SqliteEntityStore
from conftest import NOW, make_car, make_expense, make_maintenance, make_notification, populate


def test_new_database_is_migrated_to_latest_version(tmp_path):
    conn = connect(tmp_path / "fresh.sqlite3")
    try:
        executed = migrate(conn)
        assert len(executed) == len(MIGRATIONS)
        assert current_version(conn) == SCHEMA_VERSION == 6
        assert migrate(conn) == []
    finally:
        conn.close()


def test_cars_migration_attaches_existing_expenses_to_default_car(tmp_path):
    conn = connect(tmp_path / "legacy.sqlite3")
    try:
        migrate(conn, MIGRATIONS[:2])
        for odometer, initial in ((500, 1), (900, 0)):
            conn.execute(
                f"""
                INSERT INTO {EXPENSES_TABLE}(date, energy_charged, charger_type, odometer, cost, notes,
                    is_inital_record, expense_type, currency)
                VALUES('2024-01-01T00:00:00+00:00', 5, 'Other', ?, NULL, '', ?, 'charging', '€')
                """,
                (odometer, initial),
            )
        migrate(conn)
        store = SqliteEntityStore(conn)
        (car,) = store.cars.get_all()
        assert car.name == "My car"
        assert (car.initial_mileage, car.current_mileage) == (500, 900)
        assert car.expense_currency is Currency.EUR
        assert len(store.expenses.fetch_all(car.id)) == 2
        assert store.expenses.fetch_all(None) == []
    finally:
        conn.close()


def test_car_round_trip_preserves_timestamps(sqlite_store):
    created = datetime(2023, 3, 4, 5, 6, 7, tzinfo=timezone.utc)
    car_id = sqlite_store.cars.insert(make_car("Ioniq 5", created_at=created, rear_wheel_size="20"))

    (car,) = sqlite_store.cars.get_all()

    assert car.id == car_id
    assert car.created_at == created
    assert car.mileage_synced_at == NOW
    assert car.rear_wheel_size == "20"
    assert car.total_mileage == 1000


def test_unknown_stored_enums_fall_back_leniently(sqlite_store):
    car_id = sqlite_store.cars.insert(make_car())
    sqlite_store.expenses.insert(make_expense(car_id))
    conn = sqlite_store.connection
    conn.execute("UPDATE cars SET expense_currency='XYZ'")
    conn.execute(f"UPDATE {EXPENSES_TABLE} SET charger_type='Warp', expense_type='??', currency='XYZ'")
    sqlite_store.settings.upsert_currency(Currency.GBP.value)

    (car,) = sqlite_store.cars.get_all()
    (expense,) = sqlite_store.expenses.fetch_all(car_id)

    assert car.expense_currency is Currency.GBP
    assert expense.charger_type is ChargerType.OTHER
    assert expense.expense_type is ExpenseType.OTHER
    assert expense.currency is Currency.USD


def test_settings_defaults_and_upserts(sqlite_store):
    assert sqlite_store.settings.fetch_currency() is Currency.KZT
    assert sqlite_store.settings.fetch_language() is AppLanguage.EN

    assert sqlite_store.settings.upsert_language("ru")
    assert sqlite_store.settings.upsert_language("ru")
    assert sqlite_store.settings.fetch_language() is AppLanguage.RU
    rows = sqlite_store.connection.execute("SELECT COUNT(*) FROM user_settings WHERE key='language'").fetchone()
    assert rows[0] == 1


def test_orphan_expenses_are_fetched_separately(sqlite_store):
    car_id = sqlite_store.cars.insert(make_car())
    sqlite_store.expenses.insert(make_expense(car_id, notes="owned"))
    sqlite_store.expenses.insert(make_expense(None, notes="orphan"))

    assert [item.notes for item in sqlite_store.expenses.fetch_all(car_id)] == ["owned"]
    assert [item.notes for item in sqlite_store.expenses.fetch_all(None)] == ["orphan"]


def test_maintenance_and_notifications_are_per_car(sqlite_store):
    first = sqlite_store.cars.insert(make_car("A"))
    second = sqlite_store.cars.insert(make_car("B"))
    record_id = sqlite_store.maintenance.insert(make_maintenance(first, when=NOW))
    sqlite_store.notifications.insert(make_notification(first, maintenance_record=record_id))

    (record,) = sqlite_store.maintenance.get_all(first)
    (notification,) = sqlite_store.notifications.get_all(first)
    assert record.when == NOW
    assert notification.maintenance_record == record_id
    assert sqlite_store.maintenance.get_all(second) == []
    assert sqlite_store.notifications.get_all(second) == []


def test_delete_all_data_truncates_every_table(sqlite_store):
    populate(sqlite_store, cars=2)
    sqlite_store.settings.upsert_language("ru")

    sqlite_store.delete_all_data()

    assert sqlite_store.cars.get_all() == []
    assert sqlite_store.expenses.fetch_all(None) == []
    for table in ("charging_sessions", "planned_maintenance", "delayed_notifications"):
        assert sqlite_store.connection.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0] == 0
    assert sqlite_store.settings.fetch_language() is AppLanguage.RU


def test_deleting_one_car_drops_every_notification(sqlite_store):
    populate(sqlite_store, cars=2)
    first, second = [car.id for car in sqlite_store.cars.get_all()]

    sqlite_store.delete_car_data(first)

    assert sqlite_store.expenses.fetch_all(first) == []
    assert sqlite_store.maintenance.get_all(first) == []
    assert len(sqlite_store.expenses.fetch_all(second)) == 2
    assert len(sqlite_store.maintenance.get_all(second)) == 1
    assert sqlite_store.notifications.get_all(second) == []


def test_insert_failure_returns_none(sqlite_store):
    sqlite_store.connection.execute("DROP TABLE planned_maintenance")

    assert sqlite_store.maintenance.insert(make_maintenance(1)) is None


def test_expense_car_reference_is_set_once():
    expense = make_expense(None)

    attached = expense.with_car_id(3)
    assert attached.car_id == 3
    with pytest.raises(CarAlreadyAssigned):
        attached.with_car_id(4)
    assert attached.with_car_id_unchecked(4).car_id == 4
    assert attached.with_car_id_unchecked(3) is attached
    with pytest.raises(ValueError):
        expense.with_car_id_unchecked(None)
