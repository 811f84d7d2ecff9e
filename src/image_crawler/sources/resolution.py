"""Full-size URL resolution strategies for declarative sources.

Each strategy receives the page, the candidate, the source's ScrapeSpec and a
navigation timeout, and returns a URL. ``resolve_full_size`` makes the
family total: any failure yields the best URL known so far.
"""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable
from urllib.parse import parse_qs, parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

from image_crawler.errors import CrawlCancelled
from image_crawler.models import Candidate
from image_crawler.sources.extraction import last_srcset_url
from image_crawler.sources.scrape_spec import ScrapeSpec

logger = logging.getLogger(__name__)

Resolver = Callable[[Any, Candidate, ScrapeSpec, int], Awaitable[str]]

_CURRENT_SRC = "el => el.currentSrc || ''"


def strip_query_params(url: str, names: list[str]) -> str:
    parts = urlsplit(url)
    drop = set(names)
    kept = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in drop]
    return urlunsplit(parts._replace(query=urlencode(kept)))


def decode_query_param(url: str, name: str) -> str | None:
    values = parse_qs(urlsplit(url).query).get(name)
    if not values or not values[0].strip():
        return None
    return values[0].strip()


def _usable(value: str | None) -> bool:
    return bool(value) and not value.startswith("data:")


async def resolve_direct(page: Any, candidate: Candidate, spec: ScrapeSpec, timeout_ms: int) -> str:
    return candidate.url


async def resolve_lightbox_click(
    page: Any, candidate: Candidate, spec: ScrapeSpec, timeout_ms: int
) -> str:
    """Click the candidate's element and read the image the lightbox opens."""
    rule = spec.full_size
    target = page.locator(rule.click_selector or spec.primary_selector).nth(candidate.element_index or 0)
    try:
        await target.click(timeout=rule.wait_timeout_ms)
        image = page.locator(", ".join(rule.image_selectors)).first
        await image.wait_for(state="visible", timeout=rule.wait_timeout_ms)
        src = await image.get_attribute("src")
        if not _usable(src):
            src = await image.evaluate(_CURRENT_SRC)
    finally:
        await page.keyboard.press("Escape")
    return urljoin(page.url, src) if _usable(src) else candidate.url


async def resolve_detail_page(
    page: Any, candidate: Candidate, spec: ScrapeSpec, timeout_ms: int
) -> str:
    """Open the candidate's detail page and read the full-size image URL."""
    rule = spec.full_size
    await page.goto(candidate.url, wait_until=spec.wait_until, timeout=timeout_ms)
    element = page.locator(", ".join(rule.image_selectors)).first
    await element.wait_for(state="attached", timeout=rule.wait_timeout_ms)

    value = await element.get_attribute(rule.attribute)
    if not _usable(value) and rule.attribute == "src":
        value = await element.evaluate(_CURRENT_SRC)
    if not _usable(value):
        srcset = await element.get_attribute("srcset")
        value = last_srcset_url(srcset) if srcset else None
    return urljoin(page.url, value) if _usable(value) else candidate.url


async def resolve_strip_query_params(
    page: Any, candidate: Candidate, spec: ScrapeSpec, timeout_ms: int
) -> str:
    return strip_query_params(candidate.url, spec.full_size.param_names)


async def resolve_decode_query_param(
    page: Any, candidate: Candidate, spec: ScrapeSpec, timeout_ms: int
) -> str:
    return decode_query_param(candidate.url, spec.full_size.param_name) or candidate.url


RESOLVERS: dict[str, Resolver] = {
    "direct": resolve_direct,
    "lightbox-click": resolve_lightbox_click,
    "detail-page-navigate": resolve_detail_page,
    "strip-query-params": resolve_strip_query_params,
    "decode-query-param": resolve_decode_query_param,
}


async def resolve_full_size(
    page: Any, candidate: Candidate, spec: ScrapeSpec, timeout_ms: int
) -> str:
    """Resolve ``candidate`` with the spec's strategy, falling back to its own URL."""
    resolver = RESOLVERS[spec.full_size.kind]
    try:
        return await resolver(page, candidate, spec, timeout_ms)
    except CrawlCancelled:
        raise
    except Exception as e:
        logger.debug(f"{candidate.source_name}: {spec.full_size.kind} failed for {candidate.url}: {e}")
        return candidate.url
