# database.py

import json
import logging
import sqlite3
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Sequence

from config import (
    DEFAULT_MAX_PAYLOAD_BYTES,
    SETTINGS_KEY,
    STORAGE_KEY,
    get_user_data_dir,
)
from domain.models import InstrumentRecord

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Paths
# -----------------------------------------------------------------------------

def _last_store_file() -> Path:
    """Path to the file storing the last-used store path (for --store override / restart)."""
    return get_user_data_dir() / "last_store.txt"


def get_persisted_last_store_path() -> Path | None:
    """Read last-used store path. Returns None if missing or invalid."""
    p = _last_store_file()
    if not p.is_file():
        return None
    try:
        raw = p.read_text(encoding="utf-8").strip()
        if not raw:
            return None
        return Path(raw)
    except Exception:
        return None


def persist_last_store_path(path: Path) -> None:
    """Write the given store path so the next launch can use it as default."""
    from file_utils import atomic_write_text
    p = _last_store_file()
    try:
        atomic_write_text(p, str(Path(path).resolve()))
    except Exception as e:
        logger.warning("Failed to persist last store path to %s: %s", p, e)

# -----------------------------------------------------------------------------
# Connection helpers
# -----------------------------------------------------------------------------

def get_connection(store_path: Path | str, timeout: float = 30.0, retries: int = 3):
    """
    Open the SQLite file backing the key-value store (":memory:" is accepted).
    retries: number of retries on SQLITE_BUSY / database is locked (with exponential backoff).
    """
    if str(store_path) != ":memory:":
        store_path = Path(store_path)
        try:
            store_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            pass

    last_err = None
    for attempt in range(max(1, retries)):
        try:
            conn = sqlite3.connect(str(store_path), timeout=timeout)
            break
        except sqlite3.OperationalError as e:
            last_err = e
            err_lower = str(e).lower()
            if "unable to open database file" in err_lower:
                raise sqlite3.OperationalError(
                    f"Could not open instrument store at:\n{store_path}\n\n"
                    "Check that the folder exists (or that the app can create it) "
                    "and that you have read and write permission for that location."
                ) from e
            if ("database is locked" in err_lower or "sqlite_busy" in err_lower) and attempt < retries - 1:
                time.sleep(0.1 * (2 ** attempt))
                continue
            raise
    else:
        if last_err:
            raise last_err
        raise RuntimeError("Failed to connect to instrument store")

    conn.row_factory = sqlite3.Row
    return conn

# -----------------------------------------------------------------------------
# Schema initialization
# -----------------------------------------------------------------------------

def run_integrity_check(conn: sqlite3.Connection) -> str | None:
    """
    Run PRAGMA integrity_check. Returns None if OK, or an error message string if failed.
    """
    cur = conn.execute("PRAGMA integrity_check")
    row = cur.fetchone()
    if row is None:
        return None
    result = row[0]
    if result == "ok":
        return None
    return result


def initialize_store(conn: sqlite3.Connection) -> sqlite3.Connection:
    """
    Create the key-value table if needed. Safe to call every startup.
    On read-only error, raises with a clear message.
    """
    try:
        conn.execute("PRAGMA synchronous = NORMAL")
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kv_store (
                key        TEXT PRIMARY KEY,
                value      TEXT NOT NULL,
                updated_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
            """
        )
        conn.commit()
    except sqlite3.OperationalError as e:
        err = str(e).lower()
        if "readonly" in err or "attempt to write" in err:
            raise sqlite3.OperationalError(
                "The instrument store is read-only. Ensure the folder and file "
                "have write permission for your user, then try again."
            ) from e
        raise
    return conn

# -----------------------------------------------------------------------------
# Exceptions
# -----------------------------------------------------------------------------

class StoreError(Exception):
    """Base class for record store failures."""


class StoreValidationError(StoreError):
    """Raised when a payload is not an array of record objects."""


class StoreCapacityError(StoreError):
    """Raised when the serialized payload exceeds the configured byte bound."""

# -----------------------------------------------------------------------------
# Key-value storage
# -----------------------------------------------------------------------------

class KeyValueStorage:
    """String key -> string value slots in a single SQLite table."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = initialize_store(conn)

    @classmethod
    def open(cls, store_path: Path | str) -> "KeyValueStorage":
        return cls(get_connection(store_path))

    def get_item(self, key: str) -> str | None:
        row = self.conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set_item(self, key: str, value: str) -> None:
        """Replace the slot in one transaction."""
        with self.conn:
            self.conn.execute(
                "INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, datetime('now')) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at",
                (key, value),
            )

    def remove_item(self, key: str) -> None:
        with self.conn:
            self.conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))

    def close(self) -> None:
        self.conn.close()

# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

_B36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(n: int) -> str:
    if n == 0:
        return "0"
    out = []
    while n:
        n, r = divmod(n, 36)
        out.append(_B36[r])
    return "".join(reversed(out))


def generate_record_id() -> str:
    """Millisecond timestamp in base 36 + random suffix. Unique with high probability only."""
    return _base36(int(time.time() * 1000)) + uuid.uuid4().hex[:9]


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _as_record(item: Any) -> InstrumentRecord:
    if isinstance(item, InstrumentRecord):
        return item
    if isinstance(item, dict):
        return InstrumentRecord.from_dict(item)
    raise StoreValidationError(f"Record must be an object, got {type(item).__name__}")

# -----------------------------------------------------------------------------
# Record store
# -----------------------------------------------------------------------------

class InstrumentStore:
    """
    Owns the persisted instrument collection: one JSON array under STORAGE_KEY.
    Create one per process and pass it to every consumer.
    """

    def __init__(self, storage: KeyValueStorage, key: str = STORAGE_KEY,
                 max_bytes: int = DEFAULT_MAX_PAYLOAD_BYTES):
        self.storage = storage
        self.key = key
        self.max_bytes = max_bytes
        self.last_error: str | None = None

    # ---------- Read / write ----------

    def _read_payload(self) -> list[dict]:
        raw = self.storage.get_item(self.key)
        if raw is None or raw == "":
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StoreValidationError(f"Stored payload is not valid JSON: {e}") from e
        if not isinstance(data, list) or not all(isinstance(d, dict) for d in data):
            raise StoreValidationError("Stored payload is not an array of objects")
        return data

    def get_all(self) -> list[InstrumentRecord]:
        """Full collection in insertion order; [] on empty or invalid payload (nothing is written)."""
        try:
            return [InstrumentRecord.from_dict(d) for d in self._read_payload()]
        except (StoreError, sqlite3.Error) as e:
            self.last_error = str(e)
            logger.error("Reading instrument store failed: %s", e)
            return []

    def _serialize(self, records: Sequence[Any]) -> str:
        if not isinstance(records, (list, tuple)):
            raise StoreValidationError(f"Records must be a list, got {type(records).__name__}")
        payload = json.dumps([_as_record(r).to_dict() for r in records], ensure_ascii=False)
        size = len(payload.encode("utf-8"))
        if size > self.max_bytes:
            raise StoreCapacityError(
                f"Payload of {size} bytes exceeds the store limit of {self.max_bytes} bytes"
            )
        return payload

    def save_all(self, records: Sequence[Any]) -> bool:
        """
        Replace the whole collection. Returns False (and writes nothing) on
        validation or capacity failure; verifies the write by re-reading.
        """
        try:
            payload = self._serialize(records)
            self.storage.set_item(self.key, payload)
            if self.storage.get_item(self.key) != payload:
                raise StoreError("Write verification failed")
        except (StoreError, sqlite3.Error) as e:
            self.last_error = str(e)
            logger.error("Saving instrument store failed: %s", e)
            return False
        self.last_error = None
        return True

    def clear(self) -> None:
        self.storage.remove_item(self.key)

    # ---------- Lookup ----------

    def get_by_id(self, record_id: str) -> InstrumentRecord | None:
        if not record_id:
            return None
        return next((r for r in self.get_all() if r.id == record_id), None)

    def find_by_management_number(self, management_number: str) -> InstrumentRecord | None:
        if not management_number:
            return None
        return next(
            (r for r in self.get_all() if r.management_number == management_number), None
        )

    # ---------- CRUD ----------

    def _load_for_write(self, action: str) -> list[InstrumentRecord] | None:
        """
        Current records for a read-modify-write, or None when the slot cannot
        be read. An unreadable slot is never overwritten by a partial write.
        """
        try:
            return [InstrumentRecord.from_dict(d) for d in self._read_payload()]
        except (StoreError, sqlite3.Error) as e:
            self.last_error = str(e)
            logger.error("%s refused, instrument store unreadable: %s", action, e)
            return None

    @staticmethod
    def _find_index(records: Sequence[InstrumentRecord], record_id: str | None,
                    patch: dict | None = None) -> int | None:
        """Index by id, then by the patch's managementNumber."""
        if record_id:
            index = next((i for i, r in enumerate(records) if r.id == record_id), None)
            if index is not None:
                return index
        mn = (patch or {}).get("managementNumber", (patch or {}).get("management_number"))
        if mn:
            return next((i for i, r in enumerate(records) if r.management_number == mn), None)
        return None

    def resolve(self, record_id: str | None, patch: dict | None = None) -> InstrumentRecord | None:
        """The record update() would modify for these arguments, or None."""
        records = self.get_all()
        index = self._find_index(records, record_id, patch)
        return None if index is None else records[index]

    def add(self, partial: dict | InstrumentRecord) -> InstrumentRecord | None:
        """Append a new record with a fresh id and createdAt. Returns it, or None on failure."""
        try:
            record = _as_record(partial)
        except StoreValidationError as e:
            self.last_error = str(e)
            logger.error("Add rejected: %s", e)
            return None
        if not record.id:
            record = record.merged({"id": generate_record_id()})
        if not record.created_at:
            record = record.merged({"created_at": utc_timestamp()})
        records = self._load_for_write("Add")
        if records is None:
            return None
        records.append(record)
        if not self.save_all(records):
            return None
        logger.info("Added instrument %s", record)
        return record

    def update(self, record_id: str | None, patch: dict) -> bool:
        """
        Merge patch into the matching record and persist.
        Resolution: id, then the patch's managementNumber; never creates a record.
        The stored id is kept whatever the patch says.
        """
        if not isinstance(patch, dict):
            self.last_error = "Patch must be an object"
            return False
        records = self._load_for_write("Update")
        if records is None:
            return False
        index = self._find_index(records, record_id, patch)
        if index is None:
            self.last_error = f"No instrument matches id={record_id!r}"
            logger.warning("Update found no instrument for id=%r", record_id)
            return False

        current = records[index]
        pinned_id = current.id or patch.get("id") or record_id or generate_record_id()
        updated = current.merged(patch).merged({"id": pinned_id, "updated_at": utc_timestamp()})
        records[index] = updated
        return self.save_all(records)

    def remove(self, record_id: str) -> bool:
        """Hard delete. False when no record has that id or the write fails."""
        records = self._load_for_write("Remove")
        if records is None:
            return False
        remaining = [r for r in records if r.id != record_id]
        if len(remaining) == len(records):
            self.last_error = f"No instrument with id={record_id!r}"
            return False
        if not self.save_all(remaining):
            return False
        logger.info("Removed instrument id=%s", record_id)
        return True

    def remove_many(self, record_ids: Iterable[str]) -> int:
        """Batch hard delete in one write. Returns the number of records removed."""
        wanted = set(record_ids)
        records = self._load_for_write("Batch remove")
        if records is None:
            return 0
        remaining = [r for r in records if r.id not in wanted]
        removed = len(records) - len(remaining)
        if removed == 0:
            return 0
        if not self.save_all(remaining):
            return 0
        logger.info("Removed %s instrument(s) in batch", removed)
        return removed

    def search(self, query: str) -> list[InstrumentRecord]:
        from search_engine import search
        return search(self.get_all(), query)

    # ---------- Settings ----------

    def _settings(self) -> dict:
        raw = self.storage.get_item(SETTINGS_KEY)
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable settings payload")
            return {}
        return data if isinstance(data, dict) else {}

    def get_setting(self, key: str, default=None):
        return self._settings().get(key, default)

    def set_setting(self, key: str, value) -> None:
        data = self._settings()
        data[key] = value
        self.storage.set_item(SETTINGS_KEY, json.dumps(data, ensure_ascii=False))
