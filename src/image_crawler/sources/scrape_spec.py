"""Declarative description of a scrape-based image source.

Each strategy family is a tagged union on ``kind``. Unknown kinds and
missing fields fail at load time with a pydantic ValidationError, which the
registry reports as a ConfigurationError.
"""
from __future__ import annotations

import logging
from importlib import resources
from typing import Annotated, Any, Literal, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator

from image_crawler.errors import ConfigurationError

logger = logging.getLogger(__name__)

QueryTransform = Literal["lowercase", "spaces-to-hyphens", "spaces-to-plus", "strip"]
WaitUntil = Literal["load", "domcontentloaded", "networkidle", "commit"]

DEFAULT_NO_PROGRESS_RETRIES = 3


class _Strategy(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


# -- extraction ---------------------------------------------------------------


class _Extraction(_Strategy):
    url_filters: list[str] = Field(default_factory=list)
    title_attribute: str | None = None


class AttributeExtraction(_Extraction):
    """First non-empty attribute of the matched element."""

    kind: Literal["attribute"]
    attribute_names: list[str] = Field(default_factory=lambda: ["src"], min_length=1)


class NestedAttributeExtraction(_Extraction):
    """First non-empty attribute of a descendant of the matched element."""

    kind: Literal["nested-attribute"]
    selector: str = "img"
    attribute_names: list[str] = Field(default_factory=lambda: ["src"], min_length=1)


class JsonAttributeExtraction(_Extraction):
    """A JSON-encoded attribute walked by a dot path, with an optional fallback."""

    kind: Literal["json-attribute"]
    attribute: str
    json_path: str
    fallback: NestedAttributeExtraction | None = None


class LinkCollectionExtraction(_Extraction):
    """Anchor hrefs pointing at per-image detail pages."""

    kind: Literal["link-collection"]
    base_url: str | None = None


Extraction = Annotated[
    Union[
        AttributeExtraction,
        NestedAttributeExtraction,
        JsonAttributeExtraction,
        LinkCollectionExtraction,
    ],
    Field(discriminator="kind"),
]


# -- scrolling ----------------------------------------------------------------


class ScrollStrategy(_Strategy):
    kind: Literal["none", "auto-scroll", "click-more"] = "none"
    max_steps: int = Field(default=0, ge=0)
    delay_ms: int = Field(default=2000, ge=0)
    no_progress_retries: int = Field(default=DEFAULT_NO_PROGRESS_RETRIES, ge=0)
    more_selector: str | None = None

    @model_validator(mode="after")
    def _check_more_selector(self) -> ScrollStrategy:
        if self.kind == "click-more" and not self.more_selector:
            raise ValueError("click-more scrolling requires more_selector")
        return self


# -- full-size resolution -----------------------------------------------------


class DirectResolution(_Strategy):
    kind: Literal["direct"]


class LightboxClickResolution(_Strategy):
    kind: Literal["lightbox-click"]
    image_selectors: list[str] = Field(min_length=1)
    click_selector: str | None = None
    wait_timeout_ms: int = Field(default=5000, gt=0)


class DetailPageResolution(_Strategy):
    kind: Literal["detail-page-navigate"]
    image_selectors: list[str] = Field(min_length=1)
    attribute: str = "src"
    wait_timeout_ms: int = Field(default=10000, gt=0)


class StripQueryParamsResolution(_Strategy):
    kind: Literal["strip-query-params"]
    param_names: list[str] = Field(min_length=1)


class DecodeQueryParamResolution(_Strategy):
    kind: Literal["decode-query-param"]
    param_name: str


FullSizeResolution = Annotated[
    Union[
        DirectResolution,
        LightboxClickResolution,
        DetailPageResolution,
        StripQueryParamsResolution,
        DecodeQueryParamResolution,
    ],
    Field(discriminator="kind"),
]


# -- spec ---------------------------------------------------------------------


class SafeSearchValues(_Strategy):
    on: str
    off: str


class ScrapeSpec(BaseModel):
    """Everything the generic adapter needs to scrape one site."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    search_url_template: str
    primary_selector: str
    extraction: Extraction
    full_size: FullSizeResolution = Field(default_factory=lambda: DirectResolution(kind="direct"))
    scroll: ScrollStrategy = Field(default_factory=ScrollStrategy)
    consent_selectors: list[str] = Field(default_factory=list)
    query_transforms: list[QueryTransform] = Field(default_factory=list)
    safe_search_values: SafeSearchValues | None = None
    wait_until: WaitUntil = "domcontentloaded"
    navigation_timeout_ms: int | None = Field(default=None, gt=0)
    probe_dimensions: bool = True

    @model_validator(mode="after")
    def _check_template(self) -> ScrapeSpec:
        if "{query}" not in self.search_url_template:
            raise ValueError("search_url_template must contain {query}")
        if "{safe_search}" in self.search_url_template and self.safe_search_values is None:
            raise ValueError("{safe_search} placeholder requires safe_search_values")
        return self

    @property
    def yields_detail_pages(self) -> bool:
        return self.extraction.kind == "link-collection"

    def with_tunables(self, tunables: dict[str, Any]) -> ScrapeSpec:
        """Apply per-source tunables (scroll knobs, navigation timeout)."""
        scroll_updates = {
            key: tunables[key]
            for key in ("max_steps", "delay_ms", "no_progress_retries")
            if key in tunables
        }
        data = self.model_dump()
        if scroll_updates:
            data["scroll"] = {**data["scroll"], **scroll_updates}
        if "timeout_ms" in tunables:
            data["navigation_timeout_ms"] = tunables["timeout_ms"]
        return ScrapeSpec.model_validate(data)


def load_builtin_specs(spec_dir: Any = None) -> dict[str, dict[str, Any] | ConfigurationError]:
    """Raw ScrapeSpec documents shipped with the package, keyed by source name.

    Documents are validated when a source is built, so one malformed file only
    disables that source. A file that cannot be parsed maps its stem to the
    ConfigurationError describing it; the registry raises it for that name.
    """
    documents: dict[str, dict[str, Any] | ConfigurationError] = {}
    if spec_dir is None:
        spec_dir = resources.files("image_crawler.sources").joinpath("specs")
    for entry in sorted(spec_dir.iterdir(), key=lambda e: e.name):
        if not entry.name.endswith((".yaml", ".yml")):
            continue
        stem = entry.name.rsplit(".", 1)[0]
        try:
            data = yaml.safe_load(entry.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
            logger.warning(f"Cannot parse built-in spec {entry.name}: {e}")
            documents[stem] = ConfigurationError(f"Cannot parse built-in spec {entry.name}: {e}")
            continue
        if not isinstance(data, dict):
            logger.warning(f"Built-in spec {entry.name} is not a mapping")
            documents[stem] = ConfigurationError(f"Built-in spec {entry.name} must contain a mapping")
            continue
        documents[data.get("name", stem)] = data
    return documents
