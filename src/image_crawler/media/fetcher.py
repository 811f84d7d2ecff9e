"""Candidate validation and fetching.

A resolved candidate URL goes through an ordered pipeline that stops at the
first failing step:

1. URL must be absolute http(s)
2. extension must be allowed (or absent, then the first allowed one is used)
3. pre-fetch dimension probe, when the source can provide one
4. fetch with a bounded timeout; non-2xx and non-image payloads are rejected
5. byte-size floor (and a Pillow dimension check if step 3 could not tell)
6. content-hash dedup
7. write into the destination under a collision-free name

The fetcher never touches run counters; it reports a FetchOutcome.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

import httpx
import structlog

from image_crawler.config import CrawlLimits
from image_crawler.fs import atomic_write, sanitize_filename, unique_path
from image_crawler.media.images import (
    choose_extension,
    image_dimensions,
    is_image_content_type,
    meets_dimensions,
)
from image_crawler.media.store import DedupSet, sha256_bytes
from image_crawler.models import Candidate

logger = structlog.get_logger(__name__)


class FetchStatus(str, Enum):
    DOWNLOADED = "downloaded"
    SKIPPED = "skipped"
    ERRORED = "errored"


@dataclass(frozen=True)
class FetchOutcome:
    """Result of processing one candidate."""

    status: FetchStatus
    reason: str = ""
    path: Path | None = None
    content_hash: str | None = None
    byte_size: int = 0

    @classmethod
    def skipped(cls, reason: str) -> FetchOutcome:
        return cls(FetchStatus.SKIPPED, reason)

    @classmethod
    def errored(cls, reason: str) -> FetchOutcome:
        return cls(FetchStatus.ERRORED, reason)


def build_filename(source_name: str, url: str, extension: str, content_hash: str) -> str:
    """``<source>_<url stem>.<ext>``, using a hash prefix when the URL has no usable stem."""
    basename = os.path.basename(unquote(urlparse(url).path))
    stem = sanitize_filename(os.path.splitext(basename)[0], max_length=80)
    if not stem:
        stem = content_hash[:12]
    prefix = sanitize_filename(source_name, max_length=40) or "source"
    return f"{prefix}_{stem}.{extension}"


class CandidateFetcher:
    """Validates, fetches and stores candidate images."""

    def __init__(
        self,
        limits: CrawlLimits,
        destination: Path,
        dedup: DedupSet,
        client: httpx.AsyncClient,
    ) -> None:
        self.limits = limits
        self.destination = Path(destination)
        self.dedup = dedup
        self._client = client

    @property
    def _checks_dimensions(self) -> bool:
        return self.limits.min_width > 0 or self.limits.min_height > 0

    async def process(
        self,
        candidate: Candidate,
        url: str,
        source: Any,
        page: Any | None = None,
    ) -> FetchOutcome:
        """Run the pipeline for one resolved URL.

        Args:
            candidate: The candidate being processed (for naming and logs)
            url: Full-size URL returned by the source's resolution step
            source: The source that produced the candidate (for the dimension probe)
            page: Shared browser page, if any

        Returns:
            FetchOutcome describing what happened
        """
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return FetchOutcome.skipped(f"not an http(s) URL: {url[:80]}")

        extension = choose_extension(url, self.limits.allowed_extensions)
        if extension is None:
            return FetchOutcome.skipped("file type not allowed")

        dimensions_checked = False
        if self._checks_dimensions:
            size = await self._probe(source, url, page)
            if size is not None:
                dimensions_checked = True
                if not meets_dimensions(size, self.limits.min_width, self.limits.min_height):
                    return FetchOutcome.skipped(f"too small: {size[0]}x{size[1]}")

        try:
            response = await self._client.get(url, timeout=self.limits.timeout_ms / 1000)
        except httpx.HTTPError as e:
            return FetchOutcome.errored(f"fetch failed: {type(e).__name__}: {e}")

        if not response.is_success:
            return FetchOutcome.errored(f"HTTP {response.status_code}")
        if not is_image_content_type(response.headers.get("content-type")):
            return FetchOutcome.skipped(f"not an image: {response.headers.get('content-type')}")

        data = response.content
        if len(data) < self.limits.min_byte_size:
            return FetchOutcome.skipped(f"too few bytes: {len(data)}")

        if self._checks_dimensions and not dimensions_checked:
            size = image_dimensions(data)
            if size is None:
                return FetchOutcome.skipped("undecodable image")
            if not meets_dimensions(size, self.limits.min_width, self.limits.min_height):
                return FetchOutcome.skipped(f"too small: {size[0]}x{size[1]}")

        content_hash = sha256_bytes(data)
        if content_hash in self.dedup:
            return FetchOutcome.skipped("duplicate content")

        return self._store(candidate, url, extension, content_hash, data)

    async def _probe(self, source: Any, url: str, page: Any | None) -> tuple[int, int] | None:
        probe = getattr(source, "probe_dimensions", None)
        if probe is None:
            return None
        try:
            size = await probe(url, page)
        except Exception as e:  # noqa: BLE001
            logger.debug("probe.failed", url=url, error=str(e))
            return None
        if not size or size[0] <= 0 or size[1] <= 0:
            return None
        return size

    def _store(
        self,
        candidate: Candidate,
        url: str,
        extension: str,
        content_hash: str,
        data: bytes,
    ) -> FetchOutcome:
        filename = build_filename(candidate.source_name, url, extension, content_hash)
        target: Path | None = None
        try:
            self.destination.mkdir(parents=True, exist_ok=True)
            target = unique_path(self.destination, filename)
            atomic_write(target, data)
        except OSError as e:
            if target is not None:
                target.unlink(missing_ok=True)
            logger.warning("media.write_failed", url=url, error=str(e))
            return FetchOutcome.errored(f"write failed: {e}")

        self.dedup.add(content_hash)
        logger.info("media.saved", path=str(target), source=candidate.source_name, bytes=len(data))
        return FetchOutcome(
            FetchStatus.DOWNLOADED,
            path=target,
            content_hash=content_hash,
            byte_size=len(data),
        )
