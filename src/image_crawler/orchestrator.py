"""Crawl orchestration: one query, many sources, one global budget.

The orchestrator walks sources in configured order, hands each the remaining
budget, and pushes every candidate through resolution and the fetcher. It
owns the run's state machine and every counter in RunStats.

    Idle -> Initializing -> Running -> Completed | Cancelled | Failed

Usage:
    orchestrator = CrawlOrchestrator(load_settings(), "red fox")
    stats = await orchestrator.run()
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable

import httpx

from image_crawler.browser import HeadlessBrowser, HeadlessConfig
from image_crawler.cancellation import CancellationToken
from image_crawler.config import CrawlerSettings
from image_crawler.errors import CrawlCancelled, DestinationError, FatalCrawlError
from image_crawler.events import ErrorEvent, EventSink, LoggingEventSink, ProgressEvent
from image_crawler.fs import ensure_writable_dir
from image_crawler.media.fetcher import CandidateFetcher, FetchOutcome, FetchStatus
from image_crawler.media.store import DedupSet
from image_crawler.models import Candidate, RunState, RunStats, SourceLimits, SourceStats
from image_crawler.sources.base import ImageSource
from image_crawler.sources.registry import SourceRegistry

logger = logging.getLogger(__name__)

BrowserFactory = Callable[[HeadlessConfig], Any]


class CrawlOrchestrator:
    """Runs one crawl. Instances are single-use."""

    def __init__(
        self,
        settings: CrawlerSettings,
        query: str,
        *,
        sink: EventSink | None = None,
        registry: SourceRegistry | None = None,
        cancel: CancellationToken | None = None,
        browser_factory: BrowserFactory = HeadlessBrowser,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self.query = query
        self.sink = sink or LoggingEventSink()
        self.registry = registry
        self.token = cancel or CancellationToken()
        self.stats = RunStats()
        self._browser_factory = browser_factory
        self._browser: Any = None
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def state(self) -> RunState:
        return self.stats.state

    @property
    def destination(self) -> Path:
        return Path(self.settings.output_dir)

    def cancel(self, reason: str = "cancellation requested") -> None:
        """Request cooperative cancellation. Safe to call from a signal handler."""
        self.token.cancel(reason)

    def _set_state(self, state: RunState) -> None:
        logger.debug(f"Run state {self.stats.state.value} -> {state.value}")
        self.stats.state = state

    async def run(self) -> RunStats:
        """Execute the crawl and return its statistics.

        A ``complete`` event carrying the same RunStats is emitted on every
        outcome, including failures.
        """
        if self.stats.state is not RunState.IDLE:
            raise RuntimeError("CrawlOrchestrator instances can only run once")

        self.stats.mark_started()
        self._set_state(RunState.INITIALIZING)
        sources: list[ImageSource] = []
        try:
            if self.registry is None:
                self.registry = SourceRegistry()
            sources = self.registry.build(self.settings, self.sink)
            if not sources:
                self.sink.log("warning", "No sources enabled; nothing to crawl")
                self._set_state(RunState.COMPLETED)
                return self.stats

            self.token.raise_if_cancelled()
            fetcher = self._prepare_fetcher()
            page = await self._start_browser(sources)

            self._set_state(RunState.RUNNING)
            self.sink.log(
                "info",
                f"Crawling '{self.query}' across {len(sources)} sources "
                f"(max {self.settings.limits.global_max_downloads} downloads)",
            )
            await self._run_sources(sources, page, fetcher)
            self._set_state(RunState.CANCELLED if self.token.cancelled else RunState.COMPLETED)
        except CrawlCancelled:
            self._set_state(RunState.CANCELLED)
        except FatalCrawlError as e:
            self._fail(e)
        except Exception as e:
            self._fail(e)
            raise
        finally:
            await self._shutdown(sources)
            self.stats.mark_finished()
            if self.stats.state is RunState.CANCELLED:
                self.sink.log("warning", f"Crawl cancelled: {self.token.reason}")
            self.sink.complete(self.stats)
        return self.stats

    def _fail(self, error: Exception) -> None:
        self.stats.error = str(error)
        self._set_state(RunState.FAILED)
        logger.error(f"Crawl failed: {error}")
        self.sink.error(ErrorEvent(f"Crawl failed: {error}", {"error_type": type(error).__name__}))

    def _prepare_fetcher(self) -> CandidateFetcher:
        try:
            ensure_writable_dir(self.destination)
        except OSError as e:
            raise DestinationError(f"Cannot use destination {self.destination}: {e}") from e
        dedup = DedupSet.seed_from_directory(self.destination)
        if self._client is None:
            self._client = httpx.AsyncClient(
                follow_redirects=True,
                timeout=self.settings.limits.timeout_ms / 1000,
                headers={"User-Agent": self.settings.user_agent, "Accept": "image/*,*/*;q=0.8"},
            )
        return CandidateFetcher(self.settings.limits, self.destination, dedup, self._client)

    async def _start_browser(self, sources: list[ImageSource]) -> Any | None:
        if not any(getattr(source, "requires_browser", False) for source in sources):
            return None
        limits = self.settings.limits
        self._browser = self._browser_factory(
            HeadlessConfig(
                headless=limits.headless,
                timeout_ms=limits.timeout_ms,
                user_agent=self.settings.user_agent,
            )
        )
        await self._browser.start()
        return self._browser.page

    async def _run_sources(
        self,
        sources: list[ImageSource],
        page: Any | None,
        fetcher: CandidateFetcher,
    ) -> None:
        limits = self.settings.limits
        for source in sources:
            if self.token.cancelled:
                break
            remaining = limits.global_max_downloads - self.stats.downloaded
            if remaining <= 0:
                self.sink.log("info", "Download budget reached; skipping remaining sources")
                break

            source_cap = source.max_results
            if source_cap is None:
                source_cap = limits.per_source_max_results
            cap = min(remaining, source_cap)
            source_stats = self.stats.start_source(source.name)
            try:
                await self._run_source(source, cap, source_stats, page, fetcher)
            except CrawlCancelled:
                raise
            except Exception as e:
                source_stats.errored += 1
                logger.warning(f"Source {source.name} failed: {e}")
                self.sink.error(ErrorEvent(f"Source {source.name} failed: {e}", {"source": source.name}))

            self.sink.log(
                "info",
                f"[{source.name}] discovered={source_stats.discovered} "
                f"downloaded={source_stats.downloaded} skipped={source_stats.skipped} "
                f"errored={source_stats.errored}",
            )

    async def _run_source(
        self,
        source: ImageSource,
        cap: int,
        source_stats: SourceStats,
        page: Any | None,
        fetcher: CandidateFetcher,
    ) -> None:
        limits = self.settings.limits
        self.token.raise_if_cancelled()
        source_limits = SourceLimits(
            max_results=cap,
            timeout_ms=limits.timeout_ms,
            safe_search=limits.safe_search,
            min_width=limits.min_width,
            min_height=limits.min_height,
        )
        candidates = await source.discover(self.query, source_limits, page, self.token)
        source_stats.discovered = len(candidates)
        self._emit_progress(source.name, source_stats)

        for candidate in candidates:
            if self.token.cancelled:
                break
            if source_stats.downloaded >= cap or self.stats.downloaded >= limits.global_max_downloads:
                break
            try:
                url = await source.resolve_full_size(candidate, page, self.token)
                outcome = await fetcher.process(candidate, url, source, page)
            except CrawlCancelled:
                raise
            except Exception as e:
                outcome = FetchOutcome.errored(f"{type(e).__name__}: {e}")
            self._record(source, candidate, outcome, source_stats)

    def _record(
        self,
        source: ImageSource,
        candidate: Candidate,
        outcome: FetchOutcome,
        source_stats: SourceStats,
    ) -> None:
        if outcome.status is FetchStatus.DOWNLOADED:
            source_stats.downloaded += 1
            self.sink.log("info", f"[{source.name}] Saved {outcome.path}")
            self._emit_progress(source.name, source_stats)
        elif outcome.status is FetchStatus.SKIPPED:
            source_stats.skipped += 1
            self.sink.log("debug", f"[{source.name}] Skipped {candidate.url}: {outcome.reason}")
        else:
            source_stats.errored += 1
            self.sink.log("warning", f"[{source.name}] Failed {candidate.url}: {outcome.reason}")

    def _emit_progress(self, source_name: str, source_stats: SourceStats) -> None:
        self.sink.progress(
            ProgressEvent(
                source_name=source_name,
                discovered_count=source_stats.discovered,
                downloaded_count=self.stats.downloaded,
                requested_count=self.settings.limits.global_max_downloads,
            )
        )

    async def _shutdown(self, sources: list[ImageSource]) -> None:
        for source in sources:
            try:
                await source.close()
            except Exception as e:
                logger.warning(f"Failed to close source {source.name}: {e}")
        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception as e:
                logger.warning(f"Failed to close browser: {e}")
            self._browser = None
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
