"""Tests for full-size URL resolution strategies."""
from __future__ import annotations

import pytest

from fakes import FakeElement, FakePage
from image_crawler.models import Candidate
from image_crawler.sources.resolution import (
    decode_query_param,
    resolve_full_size,
    strip_query_params,
)
from image_crawler.sources.scrape_spec import ScrapeSpec


def spec_with(full_size: dict, selector: str = "a.thumb") -> ScrapeSpec:
    return ScrapeSpec.model_validate(
        {
            "name": "test",
            "search_url_template": "https://search.test/?q={query}",
            "primary_selector": selector,
            "extraction": {"kind": "attribute"},
            "full_size": full_size,
        }
    )


class TestPureStrategies:
    def test_strip_query_params(self):
        url = "https://images.test/photo-1?w=400&q=80&ixid=abc"
        assert strip_query_params(url, ["w", "q"]) == "https://images.test/photo-1?ixid=abc"
        assert strip_query_params("https://images.test/p?w=1", ["w"]) == "https://images.test/p"

    def test_decode_query_param(self):
        url = "https://proxy.test/iu/?u=https%3A%2F%2Forig.test%2Fa.jpg%3Fx%3D1&f=1"
        assert decode_query_param(url, "u") == "https://orig.test/a.jpg?x=1"
        assert decode_query_param(url, "missing") is None

    @pytest.mark.asyncio
    async def test_direct(self):
        candidate = Candidate(source_name="s", url="https://i.test/a.jpg")
        assert await resolve_full_size(None, candidate, spec_with({"kind": "direct"}), 1000) == candidate.url

    @pytest.mark.asyncio
    async def test_strip_strategy(self):
        spec = spec_with({"kind": "strip-query-params", "param_names": ["w", "h"]})
        candidate = Candidate(source_name="s", url="https://i.test/a?w=10&h=20")
        assert await resolve_full_size(None, candidate, spec, 1000) == "https://i.test/a"

    @pytest.mark.asyncio
    async def test_decode_strategy_falls_back_when_param_absent(self):
        spec = spec_with({"kind": "decode-query-param", "param_name": "u"})
        candidate = Candidate(source_name="s", url="https://proxy.test/iu/?f=1")
        assert await resolve_full_size(None, candidate, spec, 1000) == candidate.url


class TestLightboxClick:
    def setup_method(self):
        self.spec = spec_with(
            {"kind": "lightbox-click", "image_selectors": ["#main", ".alt"], "wait_timeout_ms": 100}
        )
        self.page = FakePage([[FakeElement(), FakeElement()]], primary_selector="a.thumb", url="https://search.test/")
        self.candidate = Candidate(source_name="s", url="https://thumb.test/1.jpg", element_index=1)

    @pytest.mark.asyncio
    async def test_reads_lightbox_image(self):
        def open_lightbox(selector, index):
            self.page.elements["#main, .alt"] = [FakeElement({"src": f"https://full.test/{index}.jpg"})]

        self.page.on_click = open_lightbox
        url = await resolve_full_size(self.page, self.candidate, self.spec, 1000)
        assert url == "https://full.test/1.jpg"
        assert self.page.clicks == [("a.thumb", 1)]
        assert self.page.keyboard.pressed == ["Escape"]

    @pytest.mark.asyncio
    async def test_current_src_when_src_missing(self):
        def open_lightbox(selector, index):
            self.page.elements["#main, .alt"] = [FakeElement(current_src="https://full.test/current.jpg")]

        self.page.on_click = open_lightbox
        assert await resolve_full_size(self.page, self.candidate, self.spec, 1000) == "https://full.test/current.jpg"

    @pytest.mark.asyncio
    async def test_timeout_falls_back_to_candidate_url(self):
        url = await resolve_full_size(self.page, self.candidate, self.spec, 1000)
        assert url == self.candidate.url
        assert self.page.keyboard.pressed == ["Escape"]


class TestDetailPage:
    def setup_method(self):
        self.page = FakePage(url="https://stock.test/search")
        self.candidate = Candidate(source_name="s", url="https://stock.test/photo/1", is_detail_page=True)

    def _serve(self, element: FakeElement, selector: str = "img.full"):
        self.page.on_goto = lambda url: self.page.elements.__setitem__(selector, [element])

    @pytest.mark.asyncio
    async def test_reads_src_and_absolutizes(self):
        spec = spec_with({"kind": "detail-page-navigate", "image_selectors": ["img.full"]})
        self._serve(FakeElement({"src": "/files/big.jpg"}))
        url = await resolve_full_size(self.page, self.candidate, spec, 1000)
        assert url == "https://stock.test/files/big.jpg"
        assert self.page.visited == ["https://stock.test/photo/1"]

    @pytest.mark.asyncio
    async def test_reads_configured_attribute(self):
        spec = spec_with(
            {"kind": "detail-page-navigate", "image_selectors": ["a.download"], "attribute": "href"}
        )
        self._serve(FakeElement({"href": "https://dl.test/original.jpg"}), selector="a.download")
        assert await resolve_full_size(self.page, self.candidate, spec, 1000) == "https://dl.test/original.jpg"

    @pytest.mark.asyncio
    async def test_srcset_fallback(self):
        spec = spec_with({"kind": "detail-page-navigate", "image_selectors": ["img.full"]})
        self._serve(FakeElement({"srcset": "https://i.test/s.jpg 1x, https://i.test/l.jpg 2x"}))
        assert await resolve_full_size(self.page, self.candidate, spec, 1000) == "https://i.test/l.jpg"

    @pytest.mark.asyncio
    async def test_missing_image_falls_back_to_detail_url(self):
        spec = spec_with({"kind": "detail-page-navigate", "image_selectors": ["img.full"]})
        assert await resolve_full_size(self.page, self.candidate, spec, 1000) == self.candidate.url

    @pytest.mark.asyncio
    async def test_navigation_error_falls_back(self):
        spec = spec_with({"kind": "detail-page-navigate", "image_selectors": ["img.full"]})
        self.page.goto_error = RuntimeError("net::ERR_CONNECTION_RESET")
        assert await resolve_full_size(self.page, self.candidate, spec, 1000) == self.candidate.url
