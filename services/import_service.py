# services/import_service.py - Spreadsheet row import
#
# Rows arrive already parsed (column label -> cell value, see spreadsheet_io).
# Each row is mapped to record fields and added through the store; rows missing
# a required column are rejected whole. Failures are collected per row.

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from domain.models import ENUM_FIELDS, InstrumentRecord

if TYPE_CHECKING:
    from database import InstrumentStore

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("名称", "型号", "管理编号", "出厂编号", "生产厂家")

# Column label -> record attribute. 部门 and 科室 are synonyms.
COLUMN_MAP = {
    "名称": "name",
    "型号": "model",
    "管理编号": "management_number",
    "出厂编号": "factory_number",
    "生产厂家": "manufacturer",
    "类型": "type",
    "测量范围": "measurement_range",
    "测量不确定度": "measurement_uncertainty",
    "检定/校准": "calibration_status",
    "校准日期": "calibration_date",
    "复校日期": "recalibration_date",
    "周期": "period",
    "溯源机构": "traceability_agency",
    "溯源证书": "traceability_certificate",
    "存放位置": "storage_location",
    "部门": "department",
    "科室": "department",
    "仪器状态": "instrument_status",
    "出入库状态": "in_out_status",
    "备注": "remarks",
    "附件": "attachments",
}

# Display text -> enum value for the select-style columns
VALUE_MAP = {
    "type": {
        "标准器": "standard",
        "标准物质": "reference-material",
        "辅助设备": "auxiliary",
    },
    "instrument_status": {
        "使用中": "in-use",
        "超期使用": "overdue",
        "停用": "stopped",
        "已使用": "used",
        "可用": "available",
        "维修中": "maintenance",
        "未使用": "unused",
    },
    "in_out_status": {
        "已入库": "in",
        "已出库": "out",
    },
    "department": {
        "热工": "thermal",
        "理化": "physical",
        "热工thermal": "thermal",
        "理化physical": "physical",
    },
    "calibration_status": {
        "检定": "verification",
        "校准": "calibration",
        "已校准": "calibrated",
        "待校准": "to-calibrate",
        "未校准": "uncalibrated",
    },
}

DATE_FIELDS = ("calibration_date", "recalibration_date")
_PLACEHOLDERS = ("", "请选择")

# Excel serial day 25569 is 1970-01-01
_EXCEL_EPOCH = date(1899, 12, 30)


@dataclass
class ImportReport:
    imported: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    records: list[InstrumentRecord] = field(default_factory=list)

    def summary(self) -> str:
        msg = f"导入完成！成功导入 {self.imported} 条数据，失败 {self.failed} 条数据。"
        if self.errors:
            msg += "\n失败原因：\n" + "\n".join(self.errors)
        return msg


def parse_import_date(value: Any) -> str:
    """
    Normalize a date cell to YYYY-MM-DD.
    Accepts Excel serial numbers, date/datetime cells, YYYY-MM-DD, YYYY/MM/DD,
    DD-MM-YYYY and DD/MM/YYYY; anything else is returned as trimmed text.
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
        return (_EXCEL_EPOCH + timedelta(days=int(value))).isoformat()

    text = str(value).strip()
    for fmt in ("%Y-%m-%d", "%Y/%m/%d", "%d-%m-%Y", "%d/%m/%Y"):
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue
    return text


def _cell_text(value: Any) -> str:
    # 2023001.0 from a numeric cell should read as "2023001"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def map_value(attr: str, value: Any) -> Any:
    """Translate one cell to the stored value for attr."""
    if attr in DATE_FIELDS:
        return parse_import_date(value) if value not in (None, "") else ""
    if attr in ENUM_FIELDS:
        text = _cell_text(value)
        if text in _PLACEHOLDERS:
            return None
        mapped = VALUE_MAP[attr].get(text, text)
        if ENUM_FIELDS[attr].parse(mapped) is None:
            logger.warning("Unrecognized %s value %r ignored", attr, text)
        return mapped
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (datetime, date)):
        return parse_import_date(value)
    return _cell_text(value)


def row_to_fields(row: Mapping[str, Any]) -> dict[str, Any]:
    """Map recognized columns of one row to record attributes. Unknown columns are ignored."""
    data: dict[str, Any] = {}
    for label, value in row.items():
        attr = COLUMN_MAP.get(str(label).strip()) if label is not None else None
        if attr is None or value is None:
            continue
        data[attr] = map_value(attr, value)
    return data


def missing_required(row: Mapping[str, Any]) -> str | None:
    stripped = {str(k).strip(): v for k, v in row.items() if k is not None}
    for label in REQUIRED_COLUMNS:
        value = stripped.get(label)
        if value is None or _cell_text(value) == "":
            return label
    return None


def import_rows(store: "InstrumentStore", rows: Iterable[Mapping[str, Any]]) -> ImportReport:
    """Add one record per row. Row numbers in errors are spreadsheet lines (header is line 1)."""
    report = ImportReport()
    for i, row in enumerate(rows):
        line = i + 2
        missing = missing_required(row)
        if missing:
            report.failed += 1
            report.errors.append(f"第{line}行：缺少必填字段'{missing}'")
            continue

        fields_ = row_to_fields(row)
        fields_["updated_at"] = datetime.now().astimezone().isoformat(timespec="seconds")
        record = store.add(InstrumentRecord().merged(fields_))
        if record is None:
            report.failed += 1
            report.errors.append(f"第{line}行：保存失败")
            logger.error("Import line %s not saved: %s", line, store.last_error)
            continue
        report.imported += 1
        report.records.append(record)

    logger.info("Import finished: %s imported, %s failed", report.imported, report.failed)
    return report
