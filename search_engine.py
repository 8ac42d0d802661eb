# search_engine.py
"""
Instrument search: single source of truth for which records a query returns.

Matching runs over a fixed field set, per field in order, stopping at the first
hit: raw substring, full pinyin, pinyin initials, then numeric comparison.
Records whose status is used or stopped never appear in search results
(unless the caller explicitly asks for them, see visibility_policy).
Also provides typeahead suggestions, attribute filters and pagination.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable, NamedTuple, Sequence

from config import PAGE_SIZE, SUGGESTION_LIMIT
from domain.models import (
    Department,
    InOutStatus,
    InstrumentRecord,
    InstrumentStatus,
    InstrumentType,
)
from phonetic import phonetic_contains, to_initials, to_pinyin

SEARCH_FIELDS = (
    "name",
    "model",
    "factory_number",
    "management_number",
    "measurement_range",
)

EXCLUDED_STATUSES = frozenset({InstrumentStatus.USED, InstrumentStatus.STOPPED})

# Leading number, as JavaScript's parseFloat reads it ("0-220g" -> 0)
_LEADING_NUMBER_RE = re.compile(r"^\s*[-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?")


def is_searchable(record: InstrumentRecord) -> bool:
    return record.instrument_status not in EXCLUDED_STATUSES


def _parse_query_number(query: str) -> float | None:
    try:
        value = float(query)
    except ValueError:
        return None
    return None if math.isnan(value) or math.isinf(value) else value


def _coerce_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        m = _LEADING_NUMBER_RE.match(value)
        if m:
            return float(m.group(0))
    return None


def field_matches(value: Any, query: str) -> bool:
    """Apply the four match rules to one field value. query must be stripped and lowercased."""
    if value is None or value == "":
        return False
    text = str(value)
    if query in text.lower():
        return True
    if isinstance(value, str):
        if query in to_pinyin(value):
            return True
        if query in to_initials(value):
            return True
    query_number = _parse_query_number(query)
    if query_number is not None:
        field_number = _coerce_number(value)
        if field_number is not None and (field_number == query_number or query in text):
            return True
    return False


def record_matches(record: InstrumentRecord, query: str) -> bool:
    return any(field_matches(getattr(record, f), query) for f in SEARCH_FIELDS)


def search(records: Iterable[InstrumentRecord], query_text: str | None,
           include_excluded: bool = False) -> list[InstrumentRecord]:
    """
    Records matching query_text, in input order.
    An empty query returns every eligible record.
    """
    query = (query_text or "").strip().lower()
    eligible = [r for r in records if include_excluded or is_searchable(r)]
    if not query:
        return eligible
    return [r for r in eligible if record_matches(r, query)]


def suggestions(records: Iterable[InstrumentRecord], partial_text: str | None,
                limit: int = SUGGESTION_LIMIT) -> list[str]:
    """
    Typeahead values: every string field of the search results that contains
    the text directly or through pinyin, deduplicated, first seen first.
    """
    text = (partial_text or "").strip()
    if not text:
        return []
    seen: dict[str, None] = {}
    for record in search(records, text):
        for value in record.to_dict().values():
            if isinstance(value, str) and value and value not in seen:
                if phonetic_contains(value, text):
                    seen[value] = None
                    if len(seen) >= limit:
                        return list(seen)
    return list(seen)

# -----------------------------------------------------------------------------
# Filters and pagination
# -----------------------------------------------------------------------------

@dataclass
class FilterCriteria:
    """Attribute filters; None/empty means "any"."""

    department: Department | str | None = None
    type: InstrumentType | str | None = None
    instrument_status: InstrumentStatus | str | None = None
    in_out_status: InOutStatus | str | None = None
    start_date: date | str | None = None
    end_date: date | str | None = None

    def is_empty(self) -> bool:
        return not any(
            (self.department, self.type, self.instrument_status, self.in_out_status,
             self.start_date and self.end_date)
        )


def _to_date(value: Any) -> date | None:
    if isinstance(value, date):
        return value
    if not value or not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def apply_filters(records: Iterable[InstrumentRecord], criteria: FilterCriteria) -> list[InstrumentRecord]:
    """
    Keep records equal to every set attribute. The date range (both ends
    required, inclusive) is checked against createdAt, else calibrationDate.
    """
    checks = (
        ("department", Department.parse(criteria.department)),
        ("type", InstrumentType.parse(criteria.type)),
        ("instrument_status", InstrumentStatus.parse(criteria.instrument_status)),
        ("in_out_status", InOutStatus.parse(criteria.in_out_status)),
    )
    wanted = [(attr, value) for attr, value in checks if value is not None]
    start = _to_date(criteria.start_date)
    end = _to_date(criteria.end_date)

    result = []
    for record in records:
        if any(getattr(record, attr) != value for attr, value in wanted):
            continue
        if start and end:
            d = _to_date(record.created_at or record.calibration_date)
            if d is None or not (start <= d <= end):
                continue
        result.append(record)
    return result


class Page(NamedTuple):
    items: list
    page: int
    total_pages: int
    total: int


def paginate(records: Sequence, page: int = 1, per_page: int = PAGE_SIZE) -> Page:
    """Slice one page; page numbers outside 1..total_pages are clamped."""
    if per_page <= 0:
        raise ValueError("per_page must be positive")
    total = len(records)
    total_pages = max(1, math.ceil(total / per_page))
    page = min(max(1, int(page)), total_pages)
    start = (page - 1) * per_page
    return Page(list(records[start:start + per_page]), page, total_pages, total)
