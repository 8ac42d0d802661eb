# config.py - Runtime configuration (store path, limits, sweep window)
#
# Single place for loading configuration. Persistence (database.py) and the
# sweep scheduler import from here instead of defining config logic themselves.

import json
import logging
import os
import sys
from datetime import time
from pathlib import Path

logger = logging.getLogger(__name__)

APP_NAME = "InstrumentTracker"

# Environment variable to override the store path directly (highest priority)
STORE_PATH_ENV = "INSTRUMENT_TRACKER_STORE_PATH"
# Environment variable to override the config file location
CONFIG_PATH_ENV = "INSTRUMENT_TRACKER_CONFIG"

# Key-value slot holding the JSON array of instrument records
STORAGE_KEY = "standard-instruments"
SETTINGS_KEY = "settings"

# Upper bound for the serialized record array (historical browser quota)
DEFAULT_MAX_PAYLOAD_BYTES = 5 * 1024 * 1024

# Daily reset sweep: checked every SWEEP_CHECK_INTERVAL_MS, runs once per day
# the first time a check lands inside [start, end].
DEFAULT_SWEEP_START = time(23, 58)
DEFAULT_SWEEP_END = time(23, 59, 59)
SWEEP_CHECK_INTERVAL_MS = 60_000

SUGGESTION_LIMIT = 10
PAGE_SIZE = 20

# Cleared value for outbound/inbound times
EMPTY_MARKER = "-"


def get_app_base_dir() -> Path:
    """Directory containing the app (install dir when frozen, script dir when run from source)."""
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parent


def get_user_data_dir() -> Path:
    """Per-user data directory (%APPDATA%\\InstrumentTracker or ~/.config/InstrumentTracker)."""
    if sys.platform == "win32":
        base = os.environ.get("APPDATA", "")
        root = Path(base) if base else Path.home() / "AppData" / "Roaming"
    else:
        root = Path.home() / ".config"
    return root / APP_NAME


DEFAULT_STORE_PATH = get_user_data_dir() / "instruments.db"


def _config_file_path() -> Path:
    env = os.environ.get(CONFIG_PATH_ENV)
    if env and env.strip():
        return Path(env.strip())
    return get_app_base_dir() / "config.json"


def load_config_file() -> dict:
    """
    Read config.json (or the file named by CONFIG_PATH_ENV).
    Returns {} when the file is missing or unreadable.
    """
    path = _config_file_path()
    if not path.is_file():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Ignoring unreadable config file %s: %s", path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring config file %s: top level is not an object", path)
        return {}
    data["_config_dir"] = str(path.parent)
    return data


def load_store_path(config: dict | None = None) -> Path:
    """
    Load the store database path.
    Order: STORE_PATH_ENV > config.json "store_path" > DEFAULT_STORE_PATH.
    Relative paths in config.json are resolved against the config file's folder.
    """
    env_path = os.environ.get(STORE_PATH_ENV)
    if env_path and env_path.strip():
        return Path(env_path.strip()).expanduser().resolve()

    data = load_config_file() if config is None else config
    raw = data.get("store_path")
    if raw and isinstance(raw, str) and raw.strip():
        p = Path(raw.strip()).expanduser()
        if not p.is_absolute():
            p = (Path(data.get("_config_dir") or get_app_base_dir()) / p).resolve()
        return p

    return DEFAULT_STORE_PATH


def load_max_payload_bytes(config: dict | None = None) -> int:
    data = load_config_file() if config is None else config
    raw = data.get("max_payload_bytes")
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return DEFAULT_MAX_PAYLOAD_BYTES
    return value if value > 0 else DEFAULT_MAX_PAYLOAD_BYTES


def load_sweep_start(config: dict | None = None) -> time:
    """Sweep window start as HH:MM from config.json "sweep_start" (default 23:58)."""
    data = load_config_file() if config is None else config
    raw = data.get("sweep_start")
    if not raw or not isinstance(raw, str):
        return DEFAULT_SWEEP_START
    try:
        hh, mm = raw.strip().split(":", 1)
        return time(int(hh), int(mm))
    except ValueError:
        logger.warning("Invalid sweep_start %r in config; using %s", raw, DEFAULT_SWEEP_START)
        return DEFAULT_SWEEP_START


def load_default_operator(config: dict | None = None) -> str:
    data = load_config_file() if config is None else config
    raw = data.get("operator_name")
    return raw.strip() if isinstance(raw, str) else ""
