"""Listing of on-device data logs (models, recordings, debug logs)."""

from datetime import UTC, datetime
from hashlib import sha1
from pathlib import Path

import structlog

from neuraband_server.schemas.dashboard import DataLogFile

logger = structlog.get_logger()

_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_size(num_bytes: int) -> str:
    """Human-readable size, e.g. ``"12.7 MB"``."""
    size = float(num_bytes)
    for unit in _UNITS:
        if size < 1024 or unit == _UNITS[-1]:
            if unit == "B":
                return f"{int(size)} B"
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} {_UNITS[-1]}"


def _tree_size(path: Path) -> int:
    return sum(child.stat().st_size for child in path.rglob("*") if child.is_file())


def list_data_logs(root: Path | None, max_depth: int = 2) -> list[DataLogFile]:
    """List folders and files under the data log directory.

    Folders come before files at each level, each group sorted by name.
    Paths are relative to ``root`` and end with a slash, like ``/data/``.

    Args:
        root: Directory to list (None or missing yields an empty listing)
        max_depth: How many directory levels to descend

    Returns:
        Log entries in display order
    """
    if root is None or not root.is_dir():
        if root is not None:
            logger.warning("Data log directory not found", path=str(root))
        return []

    entries: list[DataLogFile] = []

    def walk(directory: Path, depth: int) -> None:
        children = sorted(directory.iterdir(), key=lambda p: (not p.is_dir(), p.name))
        parent = "/" + "/".join(directory.relative_to(root).parts)
        parent = parent if parent.endswith("/") else parent + "/"
        for child in children:
            is_dir = child.is_dir()
            stat = child.stat()
            entries.append(
                DataLogFile(
                    id=sha1(str(child.relative_to(root)).encode()).hexdigest()[:12],
                    name=child.name,
                    type="folder" if is_dir else "file",
                    size=format_size(_tree_size(child) if is_dir else stat.st_size),
                    modified=datetime.fromtimestamp(stat.st_mtime, tz=UTC).date().isoformat(),
                    path=parent,
                )
            )
        if depth < max_depth:
            for child in children:
                if child.is_dir():
                    walk(child, depth + 1)

    walk(root, 1)
    return entries
