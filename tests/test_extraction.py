"""Tests for declarative URL extraction strategies."""
from __future__ import annotations

import pytest

from fakes import FakeElement, FakePage
from image_crawler.sources.extraction import (
    extract_attribute,
    extract_candidates,
    extract_json_attribute,
    extract_link,
    extract_nested_attribute,
    last_srcset_url,
    passes_filters,
    walk_json_path,
)
from image_crawler.sources.scrape_spec import (
    AttributeExtraction,
    JsonAttributeExtraction,
    LinkCollectionExtraction,
    NestedAttributeExtraction,
    ScrapeSpec,
)


def spec_with(extraction: dict, selector: str = "img.result") -> ScrapeSpec:
    return ScrapeSpec.model_validate(
        {
            "name": "test",
            "search_url_template": "https://search.test/?q={query}",
            "primary_selector": selector,
            "extraction": extraction,
        }
    )


class TestHelpers:
    def test_last_srcset_url(self):
        srcset = "https://i.test/a?w=100 100w, https://i.test/a?w=400 400w,https://i.test/a?w=1600 1600w"
        assert last_srcset_url(srcset) == "https://i.test/a?w=1600"
        assert last_srcset_url("  ") is None

    def test_filters(self):
        assert passes_filters("https://cdn.test/photo.jpg", ["!logo", "^https://cdn.test"])
        assert not passes_filters("https://cdn.test/logo.png", ["!logo"])
        assert not passes_filters("http://other.test/a.jpg", ["^https://cdn.test"])
        assert passes_filters("https://x.test/photos/1", ["photos"])
        assert not passes_filters("https://x.test/videos/1", ["photos"])

    def test_walk_json_path(self):
        data = {"a": {"b": [{"c": "deep"}]}}
        assert walk_json_path(data, "a.b.0.c") == "deep"
        assert walk_json_path(data, "a.missing") is None
        assert walk_json_path(data, "a.b.5") is None


class TestStrategies:
    @pytest.mark.asyncio
    async def test_attribute_first_non_empty(self):
        rule = AttributeExtraction(kind="attribute", attribute_names=["data-src", "src"])
        element = FakeElement({"data-src": "", "src": "https://i.test/a.jpg"})
        assert await extract_attribute(element, rule) == "https://i.test/a.jpg"

    @pytest.mark.asyncio
    async def test_attribute_skips_data_urls(self):
        rule = AttributeExtraction(kind="attribute", attribute_names=["src", "data-src"])
        element = FakeElement({"src": "data:image/gif;base64,R0lG", "data-src": "https://i.test/real.jpg"})
        assert await extract_attribute(element, rule) == "https://i.test/real.jpg"

    @pytest.mark.asyncio
    async def test_attribute_srcset_takes_last_entry(self):
        rule = AttributeExtraction(kind="attribute", attribute_names=["srcset"])
        element = FakeElement({"srcset": "https://i.test/s.jpg 200w, https://i.test/l.jpg 2000w"})
        assert await extract_attribute(element, rule) == "https://i.test/l.jpg"

    @pytest.mark.asyncio
    async def test_nested_attribute(self):
        rule = NestedAttributeExtraction(kind="nested-attribute", selector="img", attribute_names=["src"])
        element = FakeElement(children={"img": FakeElement({"src": "https://i.test/n.jpg"})})
        assert await extract_nested_attribute(element, rule) == "https://i.test/n.jpg"
        assert await extract_nested_attribute(FakeElement(), rule) is None

    @pytest.mark.asyncio
    async def test_json_attribute_path(self):
        rule = JsonAttributeExtraction(kind="json-attribute", attribute="m", json_path="murl")
        element = FakeElement({"m": '{"murl": "https://full.test/big.jpg", "turl": "https://t.test/s.jpg"}'})
        assert await extract_json_attribute(element, rule) == "https://full.test/big.jpg"

    @pytest.mark.asyncio
    async def test_json_attribute_falls_back_to_nested(self):
        """Missing or malformed JSON uses the nested fallback's URL."""
        rule = JsonAttributeExtraction(
            kind="json-attribute",
            attribute="m",
            json_path="murl",
            fallback=NestedAttributeExtraction(kind="nested-attribute", selector="img", attribute_names=["src"]),
        )
        child = {"img": FakeElement({"src": "https://thumb.test/fallback.jpg"})}
        assert await extract_json_attribute(FakeElement(children=child), rule) == "https://thumb.test/fallback.jpg"
        broken = FakeElement({"m": "{not json"}, children=child)
        assert await extract_json_attribute(broken, rule) == "https://thumb.test/fallback.jpg"
        wrong_path = FakeElement({"m": '{"other": 1}'}, children=child)
        assert await extract_json_attribute(wrong_path, rule) == "https://thumb.test/fallback.jpg"

    @pytest.mark.asyncio
    async def test_json_attribute_without_fallback(self):
        rule = JsonAttributeExtraction(kind="json-attribute", attribute="m", json_path="murl")
        assert await extract_json_attribute(FakeElement(), rule) is None

    @pytest.mark.asyncio
    async def test_link(self):
        rule = LinkCollectionExtraction(kind="link-collection")
        assert await extract_link(FakeElement({"href": " /photo/1 "}), rule) == "/photo/1"
        assert await extract_link(FakeElement(), rule) is None


class TestExtractCandidates:
    @pytest.mark.asyncio
    async def test_dedupes_filters_and_absolutizes(self):
        spec = spec_with(
            {
                "kind": "attribute",
                "attribute_names": ["src"],
                "url_filters": ["!logo"],
                "title_attribute": "alt",
            }
        )
        elements = [
            FakeElement({"src": "/img/a.jpg", "alt": "A"}),
            FakeElement({"src": "https://search.test/img/a.jpg"}),
            FakeElement({"src": "https://search.test/logo.png"}),
            FakeElement({}),
            FakeElement({"src": "//cdn.test/b.jpg"}),
        ]
        page = FakePage([elements], url="https://search.test/?q=fox")
        candidates = await extract_candidates(page, spec, "mysource")
        assert [c.url for c in candidates] == ["https://search.test/img/a.jpg", "https://cdn.test/b.jpg"]
        assert candidates[0].title == "A"
        assert candidates[0].source_name == "mysource"
        assert candidates[0].origin_url == "https://search.test/?q=fox"
        assert [c.element_index for c in candidates] == [0, 4]
        assert not any(c.is_detail_page for c in candidates)

    @pytest.mark.asyncio
    async def test_link_collection_uses_base_url(self):
        spec = spec_with(
            {"kind": "link-collection", "base_url": "https://stock.test", "url_filters": ["/photo/"]},
            selector="a.item",
        )
        elements = [FakeElement({"href": "/photo/1"}), FakeElement({"href": "/about"})]
        page = FakePage([elements], primary_selector="a.item", url="https://other.test/search")
        candidates = await extract_candidates(page, spec, "stock")
        assert [c.url for c in candidates] == ["https://stock.test/photo/1"]
        assert candidates[0].is_detail_page
