"""Local directory scan mode.

Copies images from a local tree into the destination using the same limits,
dedup set and naming rules as a web crawl.
"""
from __future__ import annotations

import logging
from pathlib import Path

from image_crawler.cancellation import CancellationToken
from image_crawler.config import CrawlerSettings
from image_crawler.errors import DestinationError, FatalCrawlError
from image_crawler.events import ErrorEvent, EventSink, LoggingEventSink, ProgressEvent
from image_crawler.fs import atomic_write, ensure_writable_dir, sanitize_filename, unique_path
from image_crawler.media.fetcher import FetchOutcome, FetchStatus
from image_crawler.media.images import image_dimensions, is_allowed_extension, meets_dimensions
from image_crawler.media.store import DedupSet, sha256_bytes
from image_crawler.models import RunState, RunStats, SourceStats

logger = logging.getLogger(__name__)

SOURCE_NAME = "local"


class LocalScanner:
    """Recursively import images from ``source_dir`` into the output directory."""

    def __init__(
        self,
        source_dir: Path | str,
        settings: CrawlerSettings,
        sink: EventSink | None = None,
        cancel: CancellationToken | None = None,
        preserve_structure: bool = True,
    ) -> None:
        self.source_dir = Path(source_dir)
        self.settings = settings
        self.sink = sink or LoggingEventSink()
        self.token = cancel or CancellationToken()
        self.preserve_structure = preserve_structure
        self.stats = RunStats()

    @property
    def destination(self) -> Path:
        return Path(self.settings.output_dir)

    def run(self) -> RunStats:
        self.stats.mark_started()
        self.stats.state = RunState.INITIALIZING
        try:
            if not self.source_dir.is_dir():
                raise FatalCrawlError(f"Source directory not found: {self.source_dir}")
            try:
                ensure_writable_dir(self.destination)
            except OSError as e:
                raise DestinationError(f"Cannot use destination {self.destination}: {e}") from e
            dedup = DedupSet.seed_from_directory(self.destination)

            self.stats.state = RunState.RUNNING
            self.sink.log("info", f"Scanning {self.source_dir}")
            self._scan(dedup, self.stats.start_source(SOURCE_NAME))
            self.stats.state = RunState.CANCELLED if self.token.cancelled else RunState.COMPLETED
        except FatalCrawlError as e:
            self.stats.error = str(e)
            self.stats.state = RunState.FAILED
            logger.error(f"Local scan failed: {e}")
            self.sink.error(ErrorEvent(f"Local scan failed: {e}", {"error_type": type(e).__name__}))
        except KeyboardInterrupt:
            self.token.cancel("interrupted by user")
            self.stats.state = RunState.CANCELLED
            self.sink.log("warning", "Local scan cancelled: interrupted by user")
        finally:
            self.stats.mark_finished()
            self.sink.complete(self.stats)
        return self.stats

    def _scan(self, dedup: DedupSet, source_stats: SourceStats) -> None:
        limits = self.settings.limits
        destination = self.destination.resolve()
        for path in sorted(self.source_dir.rglob("*")):
            if self.token.cancelled or self.stats.downloaded >= limits.global_max_downloads:
                break
            if not path.is_file() or destination in path.resolve().parents:
                continue
            source_stats.discovered += 1
            outcome = self._import(path, dedup)
            if outcome.status is FetchStatus.DOWNLOADED:
                source_stats.downloaded += 1
                self.sink.progress(
                    ProgressEvent(
                        source_name=SOURCE_NAME,
                        discovered_count=source_stats.discovered,
                        downloaded_count=self.stats.downloaded,
                        requested_count=limits.global_max_downloads,
                    )
                )
            elif outcome.status is FetchStatus.SKIPPED:
                source_stats.skipped += 1
                self.sink.log("debug", f"Skipped {path}: {outcome.reason}")
            else:
                source_stats.errored += 1
                self.sink.log("warning", f"Failed {path}: {outcome.reason}")

    def _import(self, path: Path, dedup: DedupSet) -> FetchOutcome:
        limits = self.settings.limits
        ext = path.suffix.lower().lstrip(".")
        if not ext or not is_allowed_extension(ext, limits.allowed_extensions):
            return FetchOutcome.skipped("file type not allowed")
        try:
            if path.stat().st_size < limits.min_byte_size:
                return FetchOutcome.skipped("file too small")
            data = path.read_bytes()
        except OSError as e:
            return FetchOutcome.errored(f"unreadable: {e}")

        if limits.min_width or limits.min_height:
            size = image_dimensions(data)
            if size is None:
                return FetchOutcome.skipped("undecodable image")
            if not meets_dimensions(size, limits.min_width, limits.min_height):
                return FetchOutcome.skipped(f"too small: {size[0]}x{size[1]}")

        content_hash = sha256_bytes(data)
        if content_hash in dedup:
            return FetchOutcome.skipped("duplicate content")

        target_dir = self.destination
        if self.preserve_structure:
            for part in path.parent.relative_to(self.source_dir).parts:
                target_dir = target_dir / (sanitize_filename(part) or "_")
        filename = sanitize_filename(path.stem) or content_hash[:12]
        target: Path | None = None
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            target = unique_path(target_dir, f"{filename}.{ext}")
            atomic_write(target, data)
        except OSError as e:
            if target is not None:
                target.unlink(missing_ok=True)
            return FetchOutcome.errored(f"write failed: {e}")
        dedup.add(content_hash)
        return FetchOutcome(FetchStatus.DOWNLOADED, path=target, content_hash=content_hash, byte_size=len(data))
