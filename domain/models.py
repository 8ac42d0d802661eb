# domain/models.py - Domain entities (dataclasses) and status enums
#
# Typed models for cross-layer data. Conversion from the persisted camelCase
# JSON objects happens at the store boundary only (database.py).

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)


class _LabeledEnum(str, Enum):
    """str-valued enum with a Chinese display label per member."""

    @classmethod
    def parse(cls, value: Any):
        """Return the member for value, or None when value is empty or unknown."""
        if value is None or value == "":
            return None
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip())
        except ValueError:
            logger.warning("Unknown %s value %r ignored", cls.__name__, value)
            return None

    @property
    def label(self) -> str:
        return _LABELS[type(self)][self]


class InstrumentType(_LabeledEnum):
    STANDARD = "standard"
    REFERENCE_MATERIAL = "reference-material"
    AUXILIARY = "auxiliary"


class Department(_LabeledEnum):
    THERMAL = "thermal"
    PHYSICAL = "physical"


class CalibrationStatus(_LabeledEnum):
    VERIFICATION = "verification"
    CALIBRATION = "calibration"
    CALIBRATED = "calibrated"
    TO_CALIBRATE = "to-calibrate"
    UNCALIBRATED = "uncalibrated"


class InstrumentStatus(_LabeledEnum):
    IN_USE = "in-use"
    OVERDUE = "overdue"
    STOPPED = "stopped"
    USED = "used"
    AVAILABLE = "available"
    MAINTENANCE = "maintenance"
    UNUSED = "unused"


class InOutStatus(_LabeledEnum):
    IN = "in"
    OUT = "out"


# One table for every enum; test_models checks each member has an entry.
_LABELS: dict[type, dict[Enum, str]] = {
    InstrumentType: {
        InstrumentType.STANDARD: "标准器",
        InstrumentType.REFERENCE_MATERIAL: "标准物质",
        InstrumentType.AUXILIARY: "辅助设备",
    },
    Department: {
        Department.THERMAL: "热工",
        Department.PHYSICAL: "理化",
    },
    CalibrationStatus: {
        CalibrationStatus.VERIFICATION: "检定",
        CalibrationStatus.CALIBRATION: "校准",
        CalibrationStatus.CALIBRATED: "已校准",
        CalibrationStatus.TO_CALIBRATE: "待校准",
        CalibrationStatus.UNCALIBRATED: "未校准",
    },
    InstrumentStatus: {
        InstrumentStatus.IN_USE: "使用中",
        InstrumentStatus.OVERDUE: "超期使用",
        InstrumentStatus.STOPPED: "停用",
        InstrumentStatus.USED: "已使用",
        InstrumentStatus.AVAILABLE: "可用",
        InstrumentStatus.MAINTENANCE: "维修中",
        InstrumentStatus.UNUSED: "未使用",
    },
    InOutStatus: {
        InOutStatus.IN: "已入库",
        InOutStatus.OUT: "已出库",
    },
}

ENUM_TYPES = tuple(_LABELS)


def display_label(value: Any) -> str:
    """Display text for an enum member, plain value or None ('-' when empty)."""
    if value is None or value == "":
        return "-"
    if isinstance(value, _LabeledEnum):
        return value.label
    return str(value)


# Attribute name -> persisted key. Order is the column order used by exports.
FIELD_KEYS: dict[str, str] = {
    "id": "id",
    "name": "name",
    "model": "model",
    "management_number": "managementNumber",
    "factory_number": "factoryNumber",
    "manufacturer": "manufacturer",
    "type": "type",
    "measurement_range": "measurementRange",
    "measurement_uncertainty": "measurementUncertainty",
    "calibration_status": "calibrationStatus",
    "calibration_date": "calibrationDate",
    "recalibration_date": "recalibrationDate",
    "period": "period",
    "traceability_agency": "traceabilityAgency",
    "traceability_certificate": "traceabilityCertificate",
    "storage_location": "storageLocation",
    "department": "department",
    "instrument_status": "instrumentStatus",
    "in_out_status": "inOutStatus",
    "remarks": "remarks",
    "attachments": "attachments",
    "outbound_time": "outboundTime",
    "inbound_time": "inboundTime",
    "used_time": "usedTime",
    "operator": "operator",
    "operation_date": "operationDate",
    "delay_days": "delayDays",
    "expected_return_date": "expectedReturnDate",
    "delay_operator": "delayOperator",
    "delay_time": "delayTime",
    "display_until": "displayUntil",
    "deleted_today_record": "deletedTodayRecord",
    "deleted_time": "deletedTime",
    "refreshed_at": "refreshedAt",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
}
KEY_FIELDS: dict[str, str] = {v: k for k, v in FIELD_KEYS.items()}

ENUM_FIELDS: dict[str, type] = {
    "type": InstrumentType,
    "department": Department,
    "calibration_status": CalibrationStatus,
    "instrument_status": InstrumentStatus,
    "in_out_status": InOutStatus,
}


def _coerce(attr: str, value: Any) -> Any:
    """Typed value for attr, or None when the value cannot be read as that type."""
    if attr in ENUM_FIELDS:
        return ENUM_FIELDS[attr].parse(value)
    if attr == "deleted_today_record":
        if value is None or isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in ("true", "false"):
            return text == "true"
        logger.warning("Non-boolean deletedTodayRecord %r ignored", value)
        return None
    if attr == "delay_days" and value is not None:
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning("Non-integer delayDays %r ignored", value)
            return None
    return value


def _assign(attr: str, value: Any, values: dict[str, Any], extra: dict[str, Any]) -> None:
    # A value the model cannot read stays in extra under its persisted key so
    # to_dict writes it back unchanged; the attribute itself reads as None.
    key = FIELD_KEYS[attr]
    coerced = _coerce(attr, value)
    values[attr] = coerced
    if coerced is None and value is not None and value != "":
        extra[key] = value
    else:
        extra.pop(key, None)


@dataclass
class InstrumentRecord:
    """
    One laboratory instrument as persisted in the store.
    Every attribute is optional; missing keys read as None.
    Keys the model does not know, and values it cannot read (e.g. a retired
    status), are kept in `extra` and written back unchanged.
    """

    id: Optional[str] = None
    name: Optional[str] = None
    model: Optional[str] = None
    management_number: Optional[str] = None
    factory_number: Optional[str] = None
    manufacturer: Optional[str] = None
    type: Optional[InstrumentType] = None
    measurement_range: Optional[str] = None
    measurement_uncertainty: Optional[str] = None
    calibration_status: Optional[CalibrationStatus] = None
    calibration_date: Optional[str] = None
    recalibration_date: Optional[str] = None
    period: Optional[str] = None
    traceability_agency: Optional[str] = None
    traceability_certificate: Optional[str] = None
    storage_location: Optional[str] = None
    department: Optional[Department] = None
    instrument_status: Optional[InstrumentStatus] = None
    in_out_status: Optional[InOutStatus] = None
    remarks: Optional[str] = None
    attachments: Optional[str] = None
    outbound_time: Optional[str] = None
    inbound_time: Optional[str] = None
    used_time: Optional[str] = None
    operator: Optional[str] = None
    operation_date: Optional[str] = None
    delay_days: Optional[int] = None
    expected_return_date: Optional[str] = None
    delay_operator: Optional[str] = None
    delay_time: Optional[str] = None
    display_until: Optional[str] = None
    deleted_today_record: Optional[bool] = None
    deleted_time: Optional[str] = None
    refreshed_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "InstrumentRecord":
        """Build from a persisted camelCase object. Unknown keys go to `extra`."""
        kwargs: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in data.items():
            attr = KEY_FIELDS.get(key)
            if attr is None:
                extra[key] = value
            else:
                _assign(attr, value, kwargs, extra)
        return cls(**kwargs, extra=extra)

    def to_dict(self) -> dict[str, Any]:
        """Persisted camelCase object. None attributes are omitted, enums written as values."""
        out: dict[str, Any] = dict(self.extra)
        for attr, key in FIELD_KEYS.items():
            value = getattr(self, attr)
            if value is None:
                continue
            out[key] = value.value if isinstance(value, Enum) else value
        return out

    def merged(self, patch: dict[str, Any]) -> "InstrumentRecord":
        """
        Return a copy with patch applied. Patch keys may be attribute names or
        persisted camelCase keys; unknown keys land in `extra`.
        """
        changes: dict[str, Any] = {}
        extra = dict(self.extra)
        for key, value in patch.items():
            if key == "extra":
                extra.update(value or {})
                continue
            attr = key if key in FIELD_KEYS else KEY_FIELDS.get(key)
            if attr is None:
                extra[key] = value
            else:
                _assign(attr, value, changes, extra)
        return replace(self, **changes, extra=extra)

    def get(self, key: str, default: Any = None) -> Any:
        """Dict-like access by attribute name or persisted key."""
        attr = key if key in FIELD_KEYS else KEY_FIELDS.get(key)
        if attr is None:
            return self.extra.get(key, default)
        value = getattr(self, attr)
        return default if value is None else value

    def __getitem__(self, key: str) -> Any:
        return self.get(key)

    def __str__(self) -> str:
        """String representation for log lines."""
        return f"id={self.id}, managementNumber={self.management_number}"
