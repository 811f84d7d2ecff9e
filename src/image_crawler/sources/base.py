"""Base protocol and shared behavior for image sources."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Protocol, runtime_checkable

import httpx

from image_crawler.cancellation import CancellationToken
from image_crawler.config import DEFAULT_USER_AGENT, SourceSettings
from image_crawler.events import EventLevel, EventSink
from image_crawler.models import Candidate, SourceLimits


@runtime_checkable
class ImageSource(Protocol):
    """Protocol for image source adapters.

    ``page`` is the run's shared browser page, or None when no active source
    needs a browser. Adapters never keep page state across calls.
    """

    name: str
    requires_browser: bool

    @property
    def max_results(self) -> int | None:
        ...

    async def discover(
        self,
        query: str,
        limits: SourceLimits,
        page: Any | None,
        cancel: CancellationToken,
    ) -> list[Candidate]:
        """Return at most ``limits.max_results`` candidates, in discovery order."""
        ...

    async def resolve_full_size(
        self,
        candidate: Candidate,
        page: Any | None,
        cancel: CancellationToken,
    ) -> str:
        """Return the best-known full-size URL. Never raises for source faults."""
        ...

    async def probe_dimensions(self, url: str, page: Any | None) -> tuple[int, int] | None:
        """Pixel size of ``url`` if the source can tell without fetching."""
        ...

    async def close(self) -> None:
        ...


class BaseImageSource(ABC):
    """Common plumbing: settings, event emission, a lazy HTTP client."""

    requires_browser: bool = False

    def __init__(
        self,
        name: str,
        settings: SourceSettings,
        sink: EventSink,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.name = name
        self.settings = settings
        self.sink = sink
        self.user_agent = user_agent
        self._client: httpx.AsyncClient | None = None

    @property
    def max_results(self) -> int | None:
        return self.settings.max_results

    @property
    def tunables(self) -> dict[str, Any]:
        return self.settings.tunables

    def _emit(self, level: EventLevel, message: str) -> None:
        self.sink.log(level, f"[{self.name}] {message}")

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=30.0,
                headers={"User-Agent": self.user_agent, "Accept": "application/json"},
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @abstractmethod
    async def discover(
        self,
        query: str,
        limits: SourceLimits,
        page: Any | None,
        cancel: CancellationToken,
    ) -> list[Candidate]:
        ...

    async def resolve_full_size(
        self,
        candidate: Candidate,
        page: Any | None,
        cancel: CancellationToken,
    ) -> str:
        return candidate.url

    async def probe_dimensions(self, url: str, page: Any | None) -> tuple[int, int] | None:
        return None
