"""Pydantic schemas describing the snapshot (export) document."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _SnapshotModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")


class SnapshotMetadata(_SnapshotModel):
    """Provenance of a snapshot."""

    created_at: datetime = Field(..., alias="createdAt", description="UTC time the snapshot was produced.")
    app_version: str = Field(..., alias="appVersion", description="Version of the producing application.")
    device_name: str = Field(..., alias="deviceName", description="Host name of the producing device.")
    schema_version: int = Field(
        ..., alias="databaseSchemaVersion", description="Database schema version of the producing application."
    )


class SnapshotCar(_SnapshotModel):
    id: Optional[int] = Field(None, description="Identifier in the producing store.")
    name: str
    selected_for_tracking: bool = Field(..., alias="selectedForTracking")
    battery_capacity: Optional[float] = Field(None, alias="batteryCapacity", description="Battery size in kWh.")
    expense_currency: str = Field(..., alias="expenseCurrency", description="Raw currency code.")
    current_mileage: int = Field(..., alias="currentMileage")
    initial_mileage: int = Field(..., alias="initialMileage")
    mileage_synced_at: datetime = Field(..., alias="milleageSyncedAt")
    created_at: datetime = Field(..., alias="createdAt")
    front_wheel_size: Optional[str] = Field(None, alias="frontWheelSize")
    rear_wheel_size: Optional[str] = Field(None, alias="rearWheelSize")


class SnapshotExpense(_SnapshotModel):
    id: Optional[int] = None
    date: datetime
    energy_charged: float = Field(..., alias="energyCharged", description="kWh, meaningful for charging only.")
    charger_type: str = Field(..., alias="chargerType", description="Raw charger type value.")
    odometer: int
    cost: Optional[str] = Field(None, description="Decimal text, never a binary float.")
    notes: str
    is_initial_record: bool = Field(..., alias="isInitialRecord")
    expense_type: str = Field(..., alias="expenseType", description="Raw expense type value.")
    currency: str = Field(..., description="Raw currency code.")
    car_id: Optional[int] = Field(None, alias="carId")


class SnapshotMaintenance(_SnapshotModel):
    id: Optional[int] = None
    odometer: Optional[int] = None
    name: str
    notes: str
    when: Optional[datetime] = None
    car_id: int = Field(..., alias="carId")
    created_at: datetime = Field(..., alias="createdAt")


class SnapshotNotification(_SnapshotModel):
    id: Optional[int] = None
    when: datetime
    notification_id: str = Field(..., alias="notificationId", description="Opaque OS notification handle.")
    maintenance_record: Optional[int] = Field(None, alias="maintenanceRecord")
    car_id: int = Field(..., alias="carId")
    created_at: datetime = Field(..., alias="createdAt")


class SnapshotSettings(_SnapshotModel):
    preferred_currency: str = Field(..., alias="preferredCurrency")
    preferred_language: str = Field(..., alias="preferredLanguage")


class Snapshot(_SnapshotModel):
    """The whole exportable dataset plus metadata."""

    metadata: SnapshotMetadata
    cars: List[SnapshotCar]
    expenses: List[SnapshotExpense]
    planned_maintenance: List[SnapshotMaintenance] = Field(..., alias="plannedMaintenance")
    delayed_notifications: List[SnapshotNotification] = Field(..., alias="delayedNotifications")
    user_settings: SnapshotSettings = Field(..., alias="userSettings")


__all__ = [
    "Snapshot",
    "SnapshotCar",
    "SnapshotExpense",
    "SnapshotMaintenance",
    "SnapshotMetadata",
    "SnapshotNotification",
    "SnapshotSettings",
]
