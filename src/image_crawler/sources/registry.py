"""Source registry: turns configuration into an ordered list of adapters."""
from __future__ import annotations

import logging
from typing import Any, Callable

from pydantic import ValidationError

from image_crawler.config import CrawlerSettings, SourceSettings
from image_crawler.errors import ConfigurationError
from image_crawler.events import ErrorEvent, EventSink
from image_crawler.sources.base import ImageSource
from image_crawler.sources.generic import GenericScrapeSource
from image_crawler.sources.pexels import PexelsSource
from image_crawler.sources.scrape_spec import ScrapeSpec, load_builtin_specs
from image_crawler.sources.wikimedia import WikimediaSource

logger = logging.getLogger(__name__)

SourceFactory = Callable[[str, SourceSettings, EventSink], ImageSource]

HANDWRITTEN_SOURCES: dict[str, SourceFactory] = {
    "wikimedia": WikimediaSource,
    "pexels": PexelsSource,
}


class SourceRegistry:
    """Maps source names to hand-written adapters or declarative ScrapeSpecs.

    Hand-written adapters are registered as factories. Every other name is
    served by the generic adapter when a ScrapeSpec exists for it, either
    inline in the source's settings or shipped with the package.
    """

    def __init__(
        self,
        spec_documents: dict[str, dict[str, Any] | ConfigurationError] | None = None,
        include_handwritten: bool = True,
    ) -> None:
        self._factories: dict[str, SourceFactory] = {}
        self._spec_documents = load_builtin_specs() if spec_documents is None else dict(spec_documents)
        if include_handwritten:
            for name, factory in HANDWRITTEN_SOURCES.items():
                self.register(name, factory)

    def register(self, name: str, factory: SourceFactory) -> None:
        self._factories[name] = factory

    def kind_of(self, name: str, source_settings: SourceSettings | None = None) -> str | None:
        """``"generic"``, ``"hand-written"``, or None for an unknown name."""
        if source_settings is not None and source_settings.spec is not None:
            return "generic"
        if name in self._factories:
            return "hand-written"
        if name in self._spec_documents:
            return "generic"
        return None

    def known_names(self) -> list[str]:
        return sorted(set(self._factories) | set(self._spec_documents))

    def load_spec(self, name: str, source_settings: SourceSettings) -> ScrapeSpec:
        document = source_settings.spec if source_settings.spec is not None else self._spec_documents.get(name)
        if document is None:
            raise ConfigurationError(f"Unknown source: {name}")
        if isinstance(document, ConfigurationError):
            raise ConfigurationError(str(document))
        try:
            return ScrapeSpec.model_validate({**document, "name": name})
        except ValidationError as e:
            raise ConfigurationError(f"Malformed ScrapeSpec for {name}: {e}") from e

    def create(self, name: str, settings: CrawlerSettings, sink: EventSink) -> ImageSource:
        """Instantiate one source.

        Raises:
            ConfigurationError: If the name is unknown, its spec is malformed,
                or its adapter fails to construct.
        """
        source_settings = settings.providers.settings_for(name)
        if source_settings.spec is None and name in self._factories:
            try:
                return self._factories[name](name, source_settings, sink)
            except ConfigurationError:
                raise
            except Exception as e:
                raise ConfigurationError(f"Cannot construct source {name}: {type(e).__name__}: {e}") from e

        spec = self.load_spec(name, source_settings)
        try:
            return GenericScrapeSource(
                name,
                source_settings,
                sink,
                spec,
                user_agent=settings.user_agent,
                default_timeout_ms=settings.limits.timeout_ms,
            )
        except ValidationError as e:
            raise ConfigurationError(f"Invalid tunables for {name}: {e}") from e
        except Exception as e:
            raise ConfigurationError(f"Cannot construct source {name}: {type(e).__name__}: {e}") from e

    def build(self, settings: CrawlerSettings, sink: EventSink) -> list[ImageSource]:
        """Instantiate every enabled source in configured order.

        Sources that cannot be built are reported to ``sink`` and skipped.
        """
        sources: list[ImageSource] = []
        for name in settings.providers.enabled_names():
            try:
                sources.append(self.create(name, settings, sink))
            except ConfigurationError as e:
                logger.warning(f"Skipping source {name}: {e}")
                sink.error(ErrorEvent(f"Skipping source {name}: {e}", {"source": name}))
        return sources
