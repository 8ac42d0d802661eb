# services/operations_service.py - Check-out / check-in / use / delay / soft delete
#
# Each operation finds the instrument by management number, writes its fields
# through InstrumentStore.update and returns the re-read record.
# Lookup or write failures return None; invalid arguments raise ValueError.

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from config import EMPTY_MARKER
from domain.models import InOutStatus, InstrumentRecord, InstrumentStatus
from services.identity import get_current_operator
from visibility_policy import format_local_datetime

if TYPE_CHECKING:
    from database import InstrumentStore

logger = logging.getLogger(__name__)


def _apply(store: "InstrumentStore", management_number: str, action: str,
           changes: dict) -> InstrumentRecord | None:
    if not management_number or not isinstance(management_number, str):
        raise ValueError("Management number is required")
    record = store.find_by_management_number(management_number)
    if record is None:
        logger.warning("%s: no instrument with management number %s", action, management_number)
        return None

    patch = {"management_number": management_number, **changes}
    record_id = record.id
    if not record_id:
        from database import generate_record_id
        record_id = generate_record_id()
        patch["id"] = record_id
        logger.warning("%s: instrument %s had no id, assigned %s", action, management_number, record_id)

    if not store.update(record_id, patch):
        logger.error("%s failed for %s: %s", action, management_number, store.last_error)
        return None
    logger.info("%s: %s", action, management_number)
    return store.get_by_id(record_id)


def check_out(store: "InstrumentStore", management_number: str,
              operator: str | None = None, now: datetime | None = None) -> InstrumentRecord | None:
    now = now or datetime.now()
    return _apply(store, management_number, "check-out", {
        "in_out_status": InOutStatus.OUT,
        "operator": operator or get_current_operator(store),
        "outbound_time": format_local_datetime(now),
        "inbound_time": EMPTY_MARKER,
        "operation_date": now.date().isoformat(),
    })


def check_in(store: "InstrumentStore", management_number: str,
             operator: str | None = None, now: datetime | None = None) -> InstrumentRecord | None:
    now = now or datetime.now()
    return _apply(store, management_number, "check-in", {
        "in_out_status": InOutStatus.IN,
        "operator": operator or get_current_operator(store),
        "inbound_time": format_local_datetime(now),
        "operation_date": now.date().isoformat(),
    })


def mark_used(store: "InstrumentStore", management_number: str,
              operator: str | None = None, now: datetime | None = None) -> InstrumentRecord | None:
    now = now or datetime.now()
    return _apply(store, management_number, "mark-used", {
        "instrument_status": InstrumentStatus.USED,
        "operator": operator or get_current_operator(store),
        "used_time": format_local_datetime(now),
        "operation_date": now.date().isoformat(),
    })


def delay(store: "InstrumentStore", management_number: str, days: int,
          operator: str | None = None, now: datetime | None = None) -> InstrumentRecord | None:
    """Keep the instrument in the daily-operations view for `days` more days."""
    if isinstance(days, bool) or not isinstance(days, int) or days <= 0:
        raise ValueError("Delay days must be a positive integer")
    now = now or datetime.now()
    until = (now.date() + timedelta(days=days)).isoformat()
    return _apply(store, management_number, "delay", {
        "delay_days": days,
        "expected_return_date": until,
        "delay_operator": operator or get_current_operator(store),
        "delay_time": format_local_datetime(now),
        "display_until": until,
    })


def soft_delete_today(store: "InstrumentStore", management_number: str,
                      now: datetime | None = None) -> InstrumentRecord | None:
    """Hide the instrument from today's operations view without deleting it."""
    now = now or datetime.now()
    return _apply(store, management_number, "soft-delete-today", {
        "deleted_today_record": True,
        "deleted_time": format_local_datetime(now),
    })
