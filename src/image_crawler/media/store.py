from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Iterable

import structlog

logger = structlog.get_logger(__name__)

_CHUNK_SIZE = 1024 * 1024


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def sha256_file(path: Path | str) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


class DedupSet:
    """Content hashes already present in the destination.

    Seeded once from the destination directory before any fetch, then grown
    as files are written. Membership is by SHA-256 of the file bytes, so
    re-running a crawl into the same directory never stores a file twice.
    """

    def __init__(self, hashes: Iterable[str] = ()) -> None:
        self._hashes: set[str] = set(hashes)

    @classmethod
    def seed_from_directory(cls, root: Path | str) -> DedupSet:
        """Hash every readable file under ``root``, recursively."""
        root = Path(root)
        dedup = cls()
        if not root.is_dir():
            return dedup
        for path in sorted(root.rglob("*")):
            if not path.is_file() or path.name.startswith("."):
                continue
            try:
                dedup.add(sha256_file(path))
            except OSError as e:
                logger.warning("dedup.unreadable", path=str(path), error=str(e))
        logger.info("dedup.seeded", root=str(root), count=len(dedup))
        return dedup

    def __contains__(self, content_hash: object) -> bool:
        return content_hash in self._hashes

    def __len__(self) -> int:
        return len(self._hashes)

    def add(self, content_hash: str) -> bool:
        """Record a hash. Returns False if it was already present."""
        if content_hash in self._hashes:
            return False
        self._hashes.add(content_hash)
        return True
