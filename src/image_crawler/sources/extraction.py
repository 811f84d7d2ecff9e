"""URL extraction strategies for declarative sources.

Every strategy takes a matched element and its rule and returns a raw URL
or None. Elements only need ``get_attribute`` and ``query_selector`` with
Playwright's async semantics.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable
from urllib.parse import urljoin

from image_crawler.models import Candidate
from image_crawler.sources.scrape_spec import (
    AttributeExtraction,
    JsonAttributeExtraction,
    LinkCollectionExtraction,
    NestedAttributeExtraction,
    ScrapeSpec,
)

logger = logging.getLogger(__name__)

Extractor = Callable[[Any, Any], Awaitable[str | None]]


def last_srcset_url(srcset: str) -> str | None:
    """URL of the last (usually largest) entry of a srcset value."""
    entries = [part.strip() for part in srcset.split(",") if part.strip()]
    if not entries:
        return None
    return entries[-1].split()[0]


def passes_filters(url: str, filters: list[str]) -> bool:
    """Apply ``!exclude``, ``^prefix`` and plain substring filters."""
    for rule in filters:
        if rule.startswith("!"):
            if rule[1:] in url:
                return False
        elif rule.startswith("^"):
            if not url.startswith(rule[1:]):
                return False
        elif rule not in url:
            return False
    return True


def walk_json_path(data: Any, path: str) -> Any:
    current = data
    for key in path.split("."):
        if isinstance(current, dict):
            current = current.get(key)
        elif isinstance(current, list) and key.isdigit() and int(key) < len(current):
            current = current[int(key)]
        else:
            return None
        if current is None:
            return None
    return current


async def _first_attribute(element: Any, names: list[str]) -> str | None:
    for name in names:
        value = await element.get_attribute(name)
        if not value or not value.strip():
            continue
        value = value.strip()
        if name.endswith("srcset"):
            value = last_srcset_url(value) or ""
        if value and not value.startswith("data:"):
            return value
    return None


async def extract_attribute(element: Any, rule: AttributeExtraction) -> str | None:
    return await _first_attribute(element, rule.attribute_names)


async def extract_nested_attribute(element: Any, rule: NestedAttributeExtraction) -> str | None:
    child = await element.query_selector(rule.selector)
    if child is None:
        return None
    return await _first_attribute(child, rule.attribute_names)


async def extract_json_attribute(element: Any, rule: JsonAttributeExtraction) -> str | None:
    raw = await element.get_attribute(rule.attribute)
    if raw:
        try:
            value = walk_json_path(json.loads(raw), rule.json_path)
        except ValueError:
            value = None
        if isinstance(value, str) and value.strip():
            return value.strip()
    if rule.fallback is not None:
        return await extract_nested_attribute(element, rule.fallback)
    return None


async def extract_link(element: Any, rule: LinkCollectionExtraction) -> str | None:
    href = await element.get_attribute("href")
    return href.strip() if href and href.strip() else None


EXTRACTORS: dict[str, Extractor] = {
    "attribute": extract_attribute,
    "nested-attribute": extract_nested_attribute,
    "json-attribute": extract_json_attribute,
    "link-collection": extract_link,
}


async def extract_candidates(page: Any, spec: ScrapeSpec, source_name: str) -> list[Candidate]:
    """Extract unique, filtered candidates from the elements currently on the page.

    Args:
        page: Browser page positioned on the search results
        spec: ScrapeSpec of the source
        source_name: Name recorded on each candidate

    Returns:
        Candidates in DOM order, each remembering its index under the
        primary selector
    """
    rule = spec.extraction
    extractor = EXTRACTORS[rule.kind]
    page_url = page.url
    base_url = getattr(rule, "base_url", None) or page_url
    is_detail_page = spec.yields_detail_pages

    candidates: list[Candidate] = []
    seen: set[str] = set()
    for index, element in enumerate(await page.query_selector_all(spec.primary_selector)):
        try:
            raw = await extractor(element, rule)
            if not raw or raw.startswith("data:"):
                continue
            url = urljoin(base_url, raw)
            if url in seen or not passes_filters(url, rule.url_filters):
                continue
            title = None
            if rule.title_attribute:
                title = await element.get_attribute(rule.title_attribute)
        except Exception as e:
            # Elements can detach while the page keeps loading
            logger.debug(f"{source_name}: skipping element {index}: {e}")
            continue
        seen.add(url)
        candidates.append(
            Candidate(
                source_name=source_name,
                url=url,
                is_detail_page=is_detail_page,
                title=title or None,
                origin_url=page_url,
                element_index=index,
            )
        )
    return candidates
