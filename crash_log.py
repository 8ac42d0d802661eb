# crash_log.py - File logging and uncaught-exception capture for the CLI and watcher

import logging
import sys
import traceback
from pathlib import Path

from config import get_user_data_dir

LOG_DIR = get_user_data_dir() / "logs"
LOG_FILE_NAME = "instrument_tracker.log"

logger = logging.getLogger("instrument_tracker")
logger.setLevel(logging.INFO)

_FORMAT = logging.Formatter(
    "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


def configure_logging(log_dir: Path | None = None, console: bool = False) -> Path:
    """
    Attach a file handler (and optionally stderr) to the root logger so module
    loggers (logging.getLogger(__name__)) end up in the same file.
    Safe to call more than once; returns the log file path.
    """
    log_dir = Path(log_dir) if log_dir is not None else LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(logging.INFO)
    already = any(
        isinstance(h, logging.FileHandler) and Path(h.baseFilename).resolve() == log_file.resolve()
        for h in root.handlers
    )
    if already:
        return log_file
    fh = logging.FileHandler(log_file, encoding="utf-8")
    fh.setFormatter(_FORMAT)
    root.addHandler(fh)
    if console:
        ch = logging.StreamHandler(sys.stderr)
        ch.setLevel(logging.WARNING)
        ch.setFormatter(_FORMAT)
        root.addHandler(ch)
    return log_file


def _format_tb(exc_type, exc_value, exc_tb) -> str:
    return "".join(traceback.format_exception(exc_type, exc_value, exc_tb))


def log_exception(exc_type, exc_value, exc_tb):
    """sys.excepthook replacement: write the traceback to the log and to the real stderr."""
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_tb)
        return
    text = _format_tb(exc_type, exc_value, exc_tb)
    logger.critical("Uncaught exception:\n%s", text)
    if sys.__stderr__ is not None:
        sys.__stderr__.write(text)
        sys.__stderr__.flush()


def log_current_exception(context: str = ""):
    """Log the exception being handled, tagged with context. No-op outside an except block."""
    exc_type, exc_value, exc_tb = sys.exc_info()
    if exc_type is None:
        return
    tag = f"[{context}] " if context else ""
    logger.error("%sCaught exception:\n%s", tag, _format_tb(exc_type, exc_value, exc_tb))


def install_global_excepthook():
    sys.excepthook = log_exception
