"""Exception hierarchy for the crawler.

Fatal errors abort a run; source errors are contained to the source that
raised them; configuration errors surface at load time.
"""
from __future__ import annotations


class CrawlerError(Exception):
    """Base class for crawler errors."""


class ConfigurationError(CrawlerError):
    """Invalid settings, unknown source name, or malformed ScrapeSpec."""


class SourceError(CrawlerError):
    """A transient failure inside one source (navigation, timeout, selectors)."""

    def __init__(self, source_name: str, message: str) -> None:
        self.source_name = source_name
        super().__init__(f"[{source_name}] {message}")


class FatalCrawlError(CrawlerError):
    """An error that ends the run in the Failed state."""


class DestinationError(FatalCrawlError):
    """The destination directory cannot be created or written."""


class BrowserLaunchError(FatalCrawlError):
    """The headless browser session could not be started."""


class CrawlCancelled(CrawlerError):
    """Raised at a suspension point once cancellation has been requested."""
