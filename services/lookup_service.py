# services/lookup_service.py - QR code lookup
#
# The QR decoder hands over a string; it should be a management number.
# Factory numbers are accepted too, since older labels carry those.

import logging
from typing import TYPE_CHECKING, NamedTuple

from domain.models import InstrumentRecord

if TYPE_CHECKING:
    from database import InstrumentStore

logger = logging.getLogger(__name__)


class LookupResult(NamedTuple):
    found: bool
    record: InstrumentRecord | None
    message: str


def lookup_by_code(store: "InstrumentStore", code: str | None) -> LookupResult:
    """Find the instrument for a decoded QR string. Never raises for a missing match."""
    if not code or not isinstance(code, str) or not code.strip():
        return LookupResult(False, None, "扫描失败: 无效的仪器编号")
    code = code.strip()
    records = store.get_all()
    record = next((r for r in records if r.management_number == code), None)
    if record is None:
        record = next((r for r in records if r.factory_number == code), None)
    if record is None:
        logger.info("QR lookup: no instrument for %s", code)
        return LookupResult(False, None, f"未找到仪器: {code}")
    return LookupResult(True, record, f"找到仪器: {record.name or record.management_number}")
