# visibility_policy.py
"""
Which records belong in the daily-operations view, and the end-of-day sweep
that clears the day's check-out/check-in times.

The sweep and the delay window are independent predicates: a record delayed
to today stays visible today unless the sweep or a soft delete marks it
deletedTodayRecord.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, time
from typing import TYPE_CHECKING, Iterable

from config import DEFAULT_SWEEP_END, DEFAULT_SWEEP_START, EMPTY_MARKER
from domain.models import InstrumentRecord
from search_engine import search

if TYPE_CHECKING:
    from database import InstrumentStore

logger = logging.getLogger(__name__)

_DATE_RE = re.compile(r"^\s*(\d{4})[-/](\d{1,2})[-/](\d{1,2})")


def format_local_datetime(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%d %H:%M:%S")


def is_set(value) -> bool:
    """False for None, "" and the cleared marker."""
    return value not in (None, "", EMPTY_MARKER)


def parse_date(value) -> date | None:
    """
    Date portion of a stored date or date-time string.
    Accepts YYYY-MM-DD and YYYY/M/D (older records), with or without a time part.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    m = _DATE_RE.match(value)
    if not m:
        return None
    try:
        return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    except ValueError:
        return None


def falls_on(value, day: date) -> bool:
    return is_set(value) and parse_date(value) == day


def has_operation_on(record: InstrumentRecord, day: date) -> bool:
    return falls_on(record.outbound_time, day) or falls_on(record.inbound_time, day)


def in_delay_window(record: InstrumentRecord, day: date) -> bool:
    until = parse_date(record.display_until)
    return until is not None and day <= until


def daily_operations_view(records: Iterable[InstrumentRecord], today: date | None = None) -> list[InstrumentRecord]:
    """
    Records checked out or in today, plus records whose delay window has not
    ended; soft-deleted-today records are left out of both.
    """
    today = today or date.today()
    return [
        r for r in records
        if not r.deleted_today_record and (has_operation_on(r, today) or in_delay_window(r, today))
    ]


def operations_view(records: Iterable[InstrumentRecord], query_text: str | None,
                    today: date | None = None) -> list[InstrumentRecord]:
    """
    The operations screen: the daily view while the search box is empty,
    otherwise a plain search over all records (no status exclusion, no daily window).
    """
    records = list(records)
    if (query_text or "").strip():
        return search(records, query_text, include_excluded=True)
    return daily_operations_view(records, today)

# -----------------------------------------------------------------------------
# Daily reset sweep
# -----------------------------------------------------------------------------

def is_in_sweep_window(now: datetime, start: time = DEFAULT_SWEEP_START,
                       end: time = DEFAULT_SWEEP_END) -> bool:
    return start <= now.time() <= end


def needs_sweep(record: InstrumentRecord, today: date) -> bool:
    return (
        is_set(record.outbound_time)
        and (is_set(record.inbound_time) or is_set(record.used_time))
        and falls_on(record.inbound_time, today)
    )


def sweep_records(records: Iterable[InstrumentRecord], now: datetime) -> tuple[list[InstrumentRecord], int]:
    """Return (records after the sweep, number changed). Input records are not modified."""
    today = now.date()
    stamp = now.isoformat(timespec="seconds")
    out = []
    changed = 0
    for record in records:
        if needs_sweep(record, today):
            record = record.merged({
                "outbound_time": EMPTY_MARKER,
                "inbound_time": EMPTY_MARKER,
                "deleted_today_record": True,
                "refreshed_at": stamp,
            })
            changed += 1
        out.append(record)
    return out, changed


def run_daily_sweep(store: "InstrumentStore", now: datetime | None = None) -> int:
    """
    Sweep the store. Persists only when something changed.
    Returns the number of records cleared, 0 when nothing changed or the write failed.
    """
    now = now or datetime.now()
    records, changed = sweep_records(store.get_all(), now)
    if not changed:
        logger.info("Daily sweep: nothing to clear")
        return 0
    if not store.save_all(records):
        logger.error("Daily sweep: saving %s cleared record(s) failed: %s", changed, store.last_error)
        return 0
    logger.info("Daily sweep cleared %s record(s)", changed)
    return changed
