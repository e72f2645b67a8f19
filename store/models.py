"""Entity records owned by the tracker's SQLite store."""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Type, TypeVar


class Currency(str, Enum):
    USD = "$"
    KZT = "₸"
    EUR = "€"
    AED = "Dh"
    SAR = "SR"
    GBP = "£"
    JPY = "¥"
    RUB = "₽"


class ChargerType(str, Enum):
    HOME_3KW = "Home (3kW)"
    HOME_7KW = "Home (7kW)"
    HOME_11KW = "Home (11kW)"
    DESTINATION_22KW = "Destination (22kW)"
    PUBLIC_FAST_50KW = "Public Fast (50kW)"
    PUBLIC_RAPID_100KW = "Public Rapid (100kW)"
    SUPERCHARGER_V2 = "Supercharger V2 (150kW)"
    SUPERCHARGER_V3 = "Supercharger V3 (250kW)"
    SUPERCHARGER_V4 = "Supercharger V4 (350kW)"
    OTHER = "Other"


class ExpenseType(str, Enum):
    CHARGING = "charging"
    MAINTENANCE = "maintenance"
    REPAIR = "repair"
    CARWASH = "carwash"
    OTHER = "other"


class AppLanguage(str, Enum):
    EN = "en"
    RU = "ru"


E = TypeVar("E", bound=Enum)


def coerce_enum(enum_cls: Type[E], raw: object, default: E) -> E:
    """Map a stored raw value onto ``enum_cls``, falling back to ``default``.

    Repository reads are lenient, so a row written by a newer build
    still renders. Backup validation is strict instead and rejects unknown
    values outright; see ``backup.verify``.
    """

    try:
        return enum_cls(raw)
    except ValueError:
        return default


class CarAlreadyAssigned(ValueError):
    """Raised when an expense that already belongs to a car is re-assigned."""


@dataclass(slots=True, frozen=True)
class Car:
    name: str
    selected_for_tracking: bool
    battery_capacity: Optional[float]
    expense_currency: Currency
    current_mileage: int
    initial_mileage: int
    mileage_synced_at: datetime
    created_at: datetime
    front_wheel_size: Optional[str] = None
    rear_wheel_size: Optional[str] = None
    id: Optional[int] = None

    @property
    def total_mileage(self) -> int:
        return self.current_mileage - self.initial_mileage

    def with_id(self, car_id: Optional[int]) -> "Car":
        return dataclasses.replace(self, id=car_id)


@dataclass(slots=True, frozen=True)
class Expense:
    date: datetime
    energy_charged: float
    charger_type: ChargerType
    odometer: int
    cost: Optional[float]
    notes: str
    is_initial_record: bool
    expense_type: ExpenseType
    currency: Currency
    car_id: Optional[int] = None
    id: Optional[int] = None

    def with_id(self, expense_id: Optional[int]) -> "Expense":
        return dataclasses.replace(self, id=expense_id)

    def with_car_id(self, car_id: int) -> "Expense":
        """Attach the expense to a car for the first time."""
        if self.car_id is not None:
            raise CarAlreadyAssigned(
                f"Expense {self.id} already belongs to car {self.car_id}; refusing to move it to {car_id}"
            )
        return self.with_car_id_unchecked(car_id)

    def with_car_id_unchecked(self, car_id: int) -> "Expense":
        """Force the car reference. Only import and migration code may call this."""
        if car_id is None:
            raise ValueError("car id must not be None")
        if self.car_id == car_id:
            return self
        return dataclasses.replace(self, car_id=car_id)

    def without_car(self) -> "Expense":
        return dataclasses.replace(self, car_id=None)


@dataclass(slots=True, frozen=True)
class PlannedMaintenanceRecord:
    name: str
    notes: str
    car_id: int
    created_at: datetime
    when: Optional[datetime] = None
    odometer: Optional[int] = None
    id: Optional[int] = None

    def with_id(self, record_id: Optional[int]) -> "PlannedMaintenanceRecord":
        return dataclasses.replace(self, id=record_id)

    def with_car_id(self, car_id: int) -> "PlannedMaintenanceRecord":
        return dataclasses.replace(self, car_id=car_id)


@dataclass(slots=True, frozen=True)
class DelayedNotification:
    when: datetime
    notification_id: str
    car_id: int
    created_at: datetime
    maintenance_record: Optional[int] = None
    id: Optional[int] = None

    def with_id(self, notification_id: Optional[int]) -> "DelayedNotification":
        return dataclasses.replace(self, id=notification_id)

    def with_references(self, *, car_id: int, maintenance_record: Optional[int]) -> "DelayedNotification":
        return dataclasses.replace(self, car_id=car_id, maintenance_record=maintenance_record)


@dataclass(slots=True, frozen=True)
class UserSettingsPair:
    key: str
    value: str


CURRENCY_SETTING_KEY = "currency"
LANGUAGE_SETTING_KEY = "language"
DEFAULT_CURRENCY = Currency.KZT
DEFAULT_LANGUAGE = AppLanguage.EN


__all__ = [
    "AppLanguage",
    "CURRENCY_SETTING_KEY",
    "Car",
    "CarAlreadyAssigned",
    "DEFAULT_CURRENCY",
    "DEFAULT_LANGUAGE",
    "ChargerType",
    "Currency",
    "DelayedNotification",
    "Expense",
    "ExpenseType",
    "LANGUAGE_SETTING_KEY",
    "PlannedMaintenanceRecord",
    "UserSettingsPair",
    "coerce_enum",
]
