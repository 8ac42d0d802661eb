# database_backup.py
# Daily snapshot of the instrument store file

import logging
import sqlite3
from datetime import date, datetime
from pathlib import Path
from typing import Optional

from database import run_integrity_check

logger = logging.getLogger(__name__)

BACKUP_GLOB = "*_backup_*.db"


def default_backup_dir(store_path: Path) -> Path:
    return Path(store_path).parent / "backups"


def backup_store(store_path: Path, backup_dir: Optional[Path] = None,
                 max_backups: int = 30) -> Optional[Path]:
    """
    Copy the store file with SQLite's online backup API.

    Args:
        store_path: The store database file
        backup_dir: Target directory (defaults to store_path.parent / "backups")
        max_backups: Number of snapshots to keep

    Returns:
        Path to the snapshot, or None if the store is missing or the copy failed
    """
    store_path = Path(store_path)
    if not store_path.is_file():
        logger.warning("Store file not found, skipping backup: %s", store_path)
        return None

    backup_dir = backup_dir or default_backup_dir(store_path)
    backup_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    backup_path = backup_dir / f"{store_path.stem}_backup_{timestamp}.db"

    source = sqlite3.connect(str(store_path))
    try:
        target = sqlite3.connect(str(backup_path))
        try:
            source.backup(target)
        finally:
            target.close()
    except sqlite3.Error as e:
        logger.error("Store backup failed: %s", e, exc_info=True)
        backup_path.unlink(missing_ok=True)
        return None
    finally:
        source.close()

    verified = verify_backup(backup_path)
    if not verified:
        logger.warning("Backup integrity check failed: %s", backup_path)
    logger.info("Store backup created: %s%s", backup_path, " (verified)" if verified else " (unverified)")
    cleanup_old_backups(backup_dir, max_backups)
    return backup_path


def verify_backup(backup_path: Path) -> bool:
    """True when the snapshot opens and passes PRAGMA integrity_check."""
    if not backup_path.exists():
        return False
    try:
        conn = sqlite3.connect(str(backup_path))
        try:
            return run_integrity_check(conn) is None
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.warning("Backup verification error for %s: %s", backup_path, e)
        return False


def cleanup_old_backups(backup_dir: Path, max_backups: int) -> int:
    """Delete all but the newest max_backups snapshots. Returns the number removed."""
    snapshots = sorted(backup_dir.glob(BACKUP_GLOB), key=lambda p: p.name, reverse=True)
    removed = 0
    for old in snapshots[max_backups:]:
        try:
            old.unlink()
            removed += 1
            logger.info("Removed old backup: %s", old)
        except OSError as e:
            logger.warning("Failed to remove old backup %s: %s", old, e)
    return removed


def should_run_daily_backup(store_path: Path, backup_dir: Optional[Path] = None,
                            today: Optional[date] = None) -> bool:
    backup_dir = backup_dir or default_backup_dir(store_path)
    if not backup_dir.exists():
        return True
    day = (today or date.today()).strftime("%Y%m%d")
    return not any(backup_dir.glob(f"*_backup_{day}_*.db"))


def perform_daily_backup_if_needed(store_path: Path, backup_dir: Optional[Path] = None,
                                   max_backups: int = 30) -> Optional[Path]:
    """Snapshot the store unless today's snapshot already exists."""
    if should_run_daily_backup(store_path, backup_dir):
        return backup_store(store_path, backup_dir, max_backups)
    return None
