"""Image sources: the declarative generic adapter and hand-written API adapters."""

from image_crawler.sources.base import BaseImageSource, ImageSource
from image_crawler.sources.generic import GenericScrapeSource
from image_crawler.sources.pexels import PexelsSource
from image_crawler.sources.registry import SourceRegistry
from image_crawler.sources.scrape_spec import ScrapeSpec
from image_crawler.sources.wikimedia import WikimediaSource

__all__ = [
    "BaseImageSource",
    "GenericScrapeSource",
    "ImageSource",
    "PexelsSource",
    "ScrapeSpec",
    "SourceRegistry",
    "WikimediaSource",
]
