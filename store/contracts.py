"""Read/write contracts the backup subsystem needs from the entity store."""
from __future__ import annotations

from typing import List, Optional, Protocol

from .models import AppLanguage, Car, Currency, DelayedNotification, Expense, PlannedMaintenanceRecord


class CarRepository(Protocol):
    def get_all(self) -> List[Car]: ...

    def insert(self, car: Car) -> Optional[int]: ...

    def update_mileage(self, car: Car) -> bool: ...


class ExpenseRepository(Protocol):
    def fetch_all(self, car_id: Optional[int] = None) -> List[Expense]:
        """Expenses of ``car_id``; with ``None`` only expenses without a car."""
        ...

    def insert(self, expense: Expense) -> Optional[int]: ...

    def delete_all_for_car(self, car_id: int) -> None: ...


class MaintenanceRepository(Protocol):
    def get_all(self, car_id: int) -> List[PlannedMaintenanceRecord]: ...

    def insert(self, record: PlannedMaintenanceRecord) -> Optional[int]: ...

    def delete_all_for_car(self, car_id: int) -> None: ...


class NotificationRepository(Protocol):
    def get_all(self, car_id: int) -> List[DelayedNotification]: ...

    def insert(self, notification: DelayedNotification) -> Optional[int]: ...


class SettingsRepository(Protocol):
    def fetch_currency(self) -> Currency: ...

    def fetch_language(self) -> AppLanguage: ...

    def upsert_currency(self, code: str) -> bool: ...

    def upsert_language(self, code: str) -> bool: ...


class StoreWipe(Protocol):
    def delete_all_data(self) -> None: ...


class EntityStore(StoreWipe, Protocol):
    """Bundle of repositories handed to the backup service."""

    @property
    def cars(self) -> CarRepository: ...

    @property
    def expenses(self) -> ExpenseRepository: ...

    @property
    def maintenance(self) -> MaintenanceRepository: ...

    @property
    def notifications(self) -> NotificationRepository: ...

    @property
    def settings(self) -> SettingsRepository: ...

    @property
    def schema_version(self) -> int: ...


__all__ = [
    "CarRepository",
    "EntityStore",
    "ExpenseRepository",
    "MaintenanceRepository",
    "NotificationRepository",
    "SettingsRepository",
    "StoreWipe",
]
