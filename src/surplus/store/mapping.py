"""Translate aggregates to flat store rows and back.

Rows hold plain Python values (str, float, int, datetime, None) so every
store adapter can compare them in a guard. Datetimes are converted to UTC
on the way in and marked UTC on the way out, because some engines (SQLite)
drop the offset.
"""

from datetime import UTC, datetime
from typing import Any

from surplus.billing.bill import Bill
from surplus.delivery.assignment import DeliveryAssignment
from surplus.donation.donation import Donation
from surplus.request.food_request import FoodRequest
from surplus.shared.food import Location, Quantity
from surplus.store.port import RecordKind
from surplus.store.schema import COLUMNS, DATETIME_COLUMNS

AGGREGATES = {
    RecordKind.DONATION: Donation,
    RecordKind.REQUEST: FoodRequest,
    RecordKind.ASSIGNMENT: DeliveryAssignment,
    RecordKind.BILL: Bill,
}

_KINDS = {cls: kind for kind, cls in AGGREGATES.items()}

# Row columns that come from the Quantity/Location value objects
_VALUE_OBJECT_COLUMNS = frozenset({"quantity_amount", "quantity_unit", "address", "latitude", "longitude"})


def kind_of(aggregate) -> RecordKind:
    try:
        return _KINDS[type(aggregate)]
    except KeyError:
        raise TypeError(f"{type(aggregate).__name__} is not stored in the entity store") from None


def _utc(value: Any) -> Any:
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _plain(value: Any) -> Any:
    if isinstance(value, datetime):
        # Stored as UTC wall time; SQLite keeps no offset
        return value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    # Identifier fields can hold UUID instances
    return str(value)


def to_row(aggregate) -> dict:
    kind = kind_of(aggregate)
    row = {}
    for name in COLUMNS[kind]:
        if name in _VALUE_OBJECT_COLUMNS:
            continue
        row[name] = _plain(getattr(aggregate, name))

    if kind in (RecordKind.DONATION, RecordKind.REQUEST):
        quantity, location = aggregate.quantity, aggregate.location
        row["quantity_amount"] = quantity.amount
        row["quantity_unit"] = quantity.unit
        row["address"] = location.address
        row["latitude"] = location.latitude
        row["longitude"] = location.longitude

    row["version"] = row.get("version") or 0
    return row


def from_row(kind: RecordKind, row: dict):
    values = {}
    for name, value in row.items():
        if name in _VALUE_OBJECT_COLUMNS:
            continue
        values[name] = _utc(value) if name in DATETIME_COLUMNS[kind] else value

    if kind in (RecordKind.DONATION, RecordKind.REQUEST):
        values["quantity"] = Quantity(amount=row["quantity_amount"], unit=row["quantity_unit"])
        location = {"address": row["address"]}
        if row.get("latitude") is not None and row.get("longitude") is not None:
            location["latitude"] = row["latitude"]
            location["longitude"] = row["longitude"]
        values["location"] = Location(**location)

    return AGGREGATES[kind](**values)
