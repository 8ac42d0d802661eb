# file_utils.py - Small file helpers shared by the store, exporters and CLI

from pathlib import Path


def with_suffix(path: str | Path, suffix: str) -> Path:
    """Return path with the given extension; an existing one in any case is kept."""
    path = Path(path)
    if path.suffix.lower() != suffix.lower():
        path = path.with_suffix(suffix)
    return path


def atomic_write_text(path: str | Path, content: str, encoding: str = "utf-8") -> None:
    """Write to a sibling temp file, then replace path with it."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    try:
        tmp.write_text(content, encoding=encoding)
        tmp.replace(path)
    finally:
        if tmp.exists():
            tmp.unlink(missing_ok=True)
