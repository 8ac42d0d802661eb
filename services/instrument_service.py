# services/instrument_service.py - Instrument persistence orchestration
#
# Thin layer: validates input, delegates to the store.
# Store failures (size limit, unreadable payload) come back as None/False with
# store.last_error set; invalid input raises ValueError.

from typing import TYPE_CHECKING, Iterable

from domain.models import FIELD_KEYS, InstrumentRecord

if TYPE_CHECKING:
    from database import InstrumentStore

REQUIRED_FIELDS = ("name", "management_number")


def _value(data: dict, attr: str):
    return data.get(attr, data.get(FIELD_KEYS[attr]))


def _validate(data: dict) -> None:
    for attr in REQUIRED_FIELDS:
        if not str(_value(data, attr) or "").strip():
            raise ValueError(f"{attr.replace('_', ' ').capitalize()} is required")


def add_instrument(store: "InstrumentStore", data: dict) -> InstrumentRecord | None:
    """Validate and add instrument. Returns the stored record, or None if the store rejected it."""
    _validate(data)
    record = InstrumentRecord().merged(data)
    return store.add(record)


def update_instrument(store: "InstrumentStore", record_id: str, data: dict) -> bool:
    """
    Validate and merge data into the instrument found the way store.update finds
    it (id, then management number). Raises ValueError on invalid input.
    """
    if any(k in data for k in ("name", "management_number", "managementNumber")):
        existing = store.resolve(record_id, data)
        if existing is not None:
            _validate({**existing.to_dict(), **data})
    return store.update(record_id, data)


def delete_instrument(store: "InstrumentStore", record_id: str) -> bool:
    """Hard-delete instrument. For hiding it from today's view use operations_service.soft_delete_today."""
    return store.remove(record_id)


def batch_delete_instruments(store: "InstrumentStore", record_ids: Iterable[str]) -> int:
    """Hard-delete several instruments. Returns number deleted."""
    ids = [i for i in record_ids if i]
    if not ids:
        raise ValueError("Select at least one instrument to delete")
    return store.remove_many(ids)
