# services/settings_service.py - Settings persistence orchestration
#
# Thin layer: validates input, delegates to the store.

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from database import InstrumentStore


def set_operator_name(store: "InstrumentStore", name: str) -> None:
    """Save the operator name used for operation records. Raises ValueError if blank."""
    name = (name or "").strip()
    if not name:
        raise ValueError("Operator name is required")
    store.set_setting("operator_name", name)


def get_operator_name(store: "InstrumentStore") -> str:
    return (store.get_setting("operator_name", "") or "").strip()
