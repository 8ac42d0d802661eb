# services - Orchestration layer between the CLI and the record store
from services import (
    identity,
    import_service,
    instrument_service,
    lookup_service,
    operations_service,
    settings_service,
)

__all__ = [
    "identity",
    "import_service",
    "instrument_service",
    "lookup_service",
    "operations_service",
    "settings_service",
]
