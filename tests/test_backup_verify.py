import json

import pytest

from backup.codec import decode
from backup.errors import (
    InvalidCurrency,
    InvalidDate,
    InvalidEnumValue,
    InvalidNumericValue,
    InvalidReference,
    NewerSchemaVersion,
    ValidationError,
)
from backup.verify import validate_snapshot
from conftest import NOW, snapshot_document


def _validate(document):
    snapshot = decode(json.dumps(document))
    validate_snapshot(snapshot, current_schema_version=6, now=NOW)


def test_valid_snapshot_passes_repeatedly():
    snapshot = decode(json.dumps(snapshot_document()))

    assert validate_snapshot(snapshot, current_schema_version=6, now=NOW) is None
    assert validate_snapshot(snapshot, current_schema_version=6, now=NOW) is None


def test_older_schema_is_accepted():
    document = snapshot_document()
    document["metadata"]["databaseSchemaVersion"] = 3

    _validate(document)


def test_newer_schema_is_rejected():
    document = snapshot_document()
    document["metadata"]["databaseSchemaVersion"] = 7

    with pytest.raises(NewerSchemaVersion) as excinfo:
        _validate(document)

    assert (excinfo.value.current, excinfo.value.file) == (6, 7)


def test_future_dates_beyond_one_day_are_rejected():
    document = snapshot_document()
    document["expenses"][0]["date"] = "2024-05-02T11:00:00Z"
    _validate(document)

    document["expenses"][0]["date"] = "2024-05-02T13:00:00Z"
    with pytest.raises(InvalidDate):
        _validate(document)

    document = snapshot_document()
    document["cars"][0]["createdAt"] = "2024-06-01T00:00:00Z"
    with pytest.raises(InvalidDate):
        _validate(document)


@pytest.mark.parametrize(
    ("field", "value"),
    [("energyCharged", -1.0), ("odometer", -5), ("cost", "-0.01")],
)
def test_negative_numbers_are_rejected(field, value):
    document = snapshot_document()
    document["expenses"][0][field] = value

    with pytest.raises(InvalidNumericValue) as excinfo:
        _validate(document)

    assert excinfo.value.field == field


@pytest.mark.parametrize("value", [float("nan"), float("inf")])
def test_non_finite_numbers_are_rejected(value):
    document = snapshot_document()
    document["expenses"][0]["energyCharged"] = value
    with pytest.raises(InvalidNumericValue) as excinfo:
        _validate(document)
    assert excinfo.value.field == "energyCharged"

    document = snapshot_document()
    document["cars"][0]["batteryCapacity"] = value
    with pytest.raises(InvalidNumericValue) as excinfo:
        _validate(document)
    assert excinfo.value.field == "batteryCapacity"


def test_cost_beyond_float_range_is_rejected():
    document = snapshot_document()
    document["expenses"][0]["cost"] = "1e400"

    with pytest.raises(InvalidNumericValue) as excinfo:
        _validate(document)

    assert excinfo.value.field == "cost"


def test_null_cost_is_allowed():
    document = snapshot_document()
    document["expenses"][0]["cost"] = None

    _validate(document)


def test_unknown_currencies_are_rejected():
    document = snapshot_document()
    document["expenses"][0]["currency"] = "DOGE"
    with pytest.raises(InvalidCurrency) as excinfo:
        _validate(document)
    assert excinfo.value.code == "DOGE"

    document = snapshot_document()
    document["cars"][0]["expenseCurrency"] = "usd"
    with pytest.raises(InvalidCurrency):
        _validate(document)


def test_unknown_enum_values_are_rejected():
    document = snapshot_document()
    document["expenses"][0]["chargerType"] = "Warp drive"
    with pytest.raises(InvalidEnumValue) as excinfo:
        _validate(document)
    assert (excinfo.value.type, excinfo.value.value) == ("ChargerType", "Warp drive")

    document = snapshot_document()
    document["expenses"][0]["expenseType"] = "insurance"
    with pytest.raises(InvalidEnumValue) as excinfo:
        _validate(document)
    assert excinfo.value.type == "ExpenseType"


@pytest.mark.parametrize(
    ("collection", "label"),
    [
        ("expenses", "Expense.carId"),
        ("plannedMaintenance", "PlannedMaintenance.carId"),
        ("delayedNotifications", "DelayedNotification.carId"),
    ],
)
def test_dangling_car_references_are_rejected(collection, label):
    document = snapshot_document()
    document[collection][0]["carId"] = 999

    with pytest.raises(InvalidReference) as excinfo:
        _validate(document)

    assert (excinfo.value.type, excinfo.value.id) == (label, 999)


def test_expense_without_car_is_not_a_dangling_reference():
    document = snapshot_document()
    document["expenses"][0]["carId"] = None

    _validate(document)


def test_first_failing_check_wins():
    document = snapshot_document()
    document["metadata"]["databaseSchemaVersion"] = 9
    document["expenses"][0]["odometer"] = -1
    document["expenses"][0]["carId"] = 999
    with pytest.raises(NewerSchemaVersion):
        _validate(document)

    document["metadata"]["databaseSchemaVersion"] = 6
    document["expenses"][0]["currency"] = "DOGE"
    with pytest.raises(InvalidNumericValue):
        _validate(document)

    document["expenses"][0]["odometer"] = 1
    document["expenses"][0]["chargerType"] = "Warp drive"
    with pytest.raises(InvalidCurrency):
        _validate(document)

    document["expenses"][0]["currency"] = "$"
    with pytest.raises(InvalidEnumValue):
        _validate(document)

    document["expenses"][0]["chargerType"] = "Other"
    with pytest.raises(InvalidReference):
        _validate(document)


def test_validation_errors_share_a_base_class():
    document = snapshot_document()
    document["cars"][0]["expenseCurrency"] = "DOGE"

    with pytest.raises(ValidationError) as excinfo:
        _validate(document)

    assert "DOGE" in str(excinfo.value)
