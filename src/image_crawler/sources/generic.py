"""Generic declarative source driven by a ScrapeSpec.

One adapter class serves every scrape-based site: navigation, consent
handling, extraction, scrolling and full-size resolution are all selected
from the ScrapeSpec's tagged strategies.
"""
from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

from image_crawler.cancellation import CancellationToken
from image_crawler.config import DEFAULT_USER_AGENT, SourceSettings
from image_crawler.errors import SourceError
from image_crawler.events import EventSink
from image_crawler.models import Candidate, SourceLimits
from image_crawler.sources.base import BaseImageSource
from image_crawler.sources.extraction import extract_candidates
from image_crawler.sources.resolution import resolve_full_size
from image_crawler.sources.scrape_spec import DEFAULT_NO_PROGRESS_RETRIES, ScrapeSpec

logger = logging.getLogger(__name__)

CONSENT_CLICK_TIMEOUT_MS = 5000
CONSENT_SETTLE_MS = 1000
PROBE_TIMEOUT_MS = 10000

_PROBE_SCRIPT = """
({url, timeout}) => new Promise((resolve) => {
  const img = new Image();
  const timer = setTimeout(() => resolve(null), timeout);
  img.onload = () => { clearTimeout(timer); resolve([img.naturalWidth, img.naturalHeight]); };
  img.onerror = () => { clearTimeout(timer); resolve(null); };
  img.src = url;
})
"""

_NAVIGATING_RESOLUTIONS = frozenset({"lightbox-click", "detail-page-navigate"})


def apply_query_transforms(query: str, transforms: list[str]) -> str:
    for transform in transforms:
        if transform == "lowercase":
            query = query.lower()
        elif transform == "strip":
            query = query.strip()
        elif transform == "spaces-to-hyphens":
            query = "-".join(query.split())
        elif transform == "spaces-to-plus":
            query = "+".join(query.split())
    return query


class GenericScrapeSource(BaseImageSource):
    """Scrapes a search results page described by a ScrapeSpec."""

    requires_browser = True

    def __init__(
        self,
        name: str,
        settings: SourceSettings,
        sink: EventSink,
        spec: ScrapeSpec,
        user_agent: str = DEFAULT_USER_AGENT,
        default_timeout_ms: int = 30000,
    ) -> None:
        super().__init__(name, settings, sink, user_agent)
        self.spec = spec.with_tunables(settings.tunables) if settings.tunables else spec
        self.timeout_ms = self.spec.navigation_timeout_ms or default_timeout_ms

    def build_search_url(self, query: str, safe_search: bool = True) -> str:
        transforms = self.spec.query_transforms
        transformed = apply_query_transforms(query, transforms)
        safe_chars = "+" if "spaces-to-plus" in transforms else ""
        url = self.spec.search_url_template.replace("{query}", quote(transformed, safe=safe_chars))
        values = self.spec.safe_search_values
        if values is not None:
            url = url.replace("{safe_search}", values.on if safe_search else values.off)
        return url

    async def discover(
        self,
        query: str,
        limits: SourceLimits,
        page: Any | None,
        cancel: CancellationToken,
    ) -> list[Candidate]:
        """Search the site and collect up to ``limits.max_results`` candidates.

        Raises:
            SourceError: If there is no page or the search page cannot be loaded.
            CrawlCancelled: If cancellation was requested before navigating.
        """
        if page is None:
            raise SourceError(self.name, "requires a browser page")
        if limits.max_results <= 0:
            return []

        cancel.raise_if_cancelled()
        url = self.build_search_url(query, limits.safe_search)
        self._emit("info", f"Searching {url}")
        try:
            await page.goto(
                url,
                wait_until=self.spec.wait_until,
                timeout=self.spec.navigation_timeout_ms or limits.timeout_ms,
            )
        except Exception as e:
            raise SourceError(self.name, f"navigation failed: {e}") from e

        await self._dismiss_consent(page)

        found: dict[str, Candidate] = {}
        await self._collect(page, found)
        await self._scroll(page, found, limits.max_results, cancel)

        candidates = list(found.values())[: limits.max_results]
        self._emit("info", f"Found {len(candidates)} candidates")
        return candidates

    async def _collect(self, page: Any, found: dict[str, Candidate]) -> None:
        for candidate in await extract_candidates(page, self.spec, self.name):
            found.setdefault(candidate.url, candidate)

    async def _dismiss_consent(self, page: Any) -> None:
        for selector in self.spec.consent_selectors:
            try:
                button = page.locator(selector).first
                if await button.is_visible():
                    await button.click(timeout=CONSENT_CLICK_TIMEOUT_MS)
                    self._emit("debug", f"Dismissed consent dialog via {selector}")
                    await page.wait_for_timeout(CONSENT_SETTLE_MS)
                    return
            except Exception as e:
                logger.debug(f"{self.name}: consent selector {selector} not usable: {e}")

    async def _scroll(
        self,
        page: Any,
        found: dict[str, Candidate],
        target: int,
        cancel: CancellationToken,
    ) -> None:
        """Grow ``found`` by scrolling or clicking "more" until a stop condition."""
        scroll = self.spec.scroll
        if scroll.kind == "none":
            return
        # 0 means "use the default", not "never retry"
        retries = scroll.no_progress_retries or DEFAULT_NO_PROGRESS_RETRIES
        stalled = 0
        for step in range(scroll.max_steps):
            if len(found) >= target or cancel.cancelled:
                break
            before = len(found)
            try:
                if scroll.kind == "auto-scroll":
                    await page.evaluate("window.scrollBy(0, window.innerHeight * 2)")
                else:
                    button = page.locator(scroll.more_selector).first
                    if not await button.is_visible():
                        self._emit("debug", "No more results button")
                        break
                    await button.click()
                await page.wait_for_timeout(scroll.delay_ms)
                await self._collect(page, found)
            except Exception as e:
                self._emit("warning", f"Scrolling stopped at step {step + 1}: {e}")
                break
            if len(found) > before:
                stalled = 0
                continue
            stalled += 1
            if stalled >= retries:
                self._emit("debug", f"No new images after {stalled} attempts")
                break

    async def resolve_full_size(
        self,
        candidate: Candidate,
        page: Any | None,
        cancel: CancellationToken,
    ) -> str:
        if self.spec.full_size.kind in _NAVIGATING_RESOLUTIONS:
            cancel.raise_if_cancelled()
            if page is None:
                return candidate.url
        return await resolve_full_size(page, candidate, self.spec, self.timeout_ms)

    async def probe_dimensions(self, url: str, page: Any | None) -> tuple[int, int] | None:
        if page is None or not self.spec.probe_dimensions:
            return None
        size = await page.evaluate(_PROBE_SCRIPT, {"url": url, "timeout": PROBE_TIMEOUT_MS})
        if not size:
            return None
        return int(size[0]), int(size[1])
