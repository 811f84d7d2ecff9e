from __future__ import annotations

import os
import re
import tempfile
from pathlib import Path

_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_WHITESPACE = re.compile(r"\s+")
_REPEATED_UNDERSCORES = re.compile(r"_{2,}")


def atomic_write(path: Path | str, data: bytes) -> Path:
    """Atomically write bytes to a path.

    Writes to a temporary file in the same directory, fsyncs, then renames.
    """
    target = Path(path)
    tmp_fd, tmp_path = tempfile.mkstemp(prefix=target.name + ".", dir=str(target.parent))
    try:
        with os.fdopen(tmp_fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, target)
        return target
    finally:
        try:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
        except OSError:
            pass


def sanitize_filename(name: str, max_length: int = 120) -> str:
    """Make a string safe to use as a file name on every common filesystem."""
    cleaned = _UNSAFE_CHARS.sub("_", name)
    cleaned = _WHITESPACE.sub("_", cleaned)
    cleaned = _REPEATED_UNDERSCORES.sub("_", cleaned)
    cleaned = cleaned.strip("._ ")
    return cleaned[:max_length]


def unique_path(directory: Path, filename: str) -> Path:
    """Return a path in ``directory`` that does not exist yet.

    ``photo.jpg`` becomes ``photo_1.jpg``, ``photo_2.jpg``... on collision.
    """
    candidate = directory / filename
    if not candidate.exists():
        return candidate
    stem, suffix = os.path.splitext(filename)
    counter = 1
    while True:
        candidate = directory / f"{stem}_{counter}{suffix}"
        if not candidate.exists():
            return candidate
        counter += 1


def ensure_writable_dir(path: Path) -> Path:
    """Create ``path`` if needed and check that files can be written into it."""
    path.mkdir(parents=True, exist_ok=True)
    if not path.is_dir():
        raise NotADirectoryError(str(path))
    if not os.access(path, os.W_OK):
        raise PermissionError(f"Directory is not writable: {path}")
    return path
