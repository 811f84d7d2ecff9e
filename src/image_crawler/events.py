"""Event sink interface and the default structlog-backed sink."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, runtime_checkable

import structlog

from image_crawler.models import RunStats

EventLevel = Literal["debug", "info", "warning", "error"]


@dataclass(frozen=True)
class ProgressEvent:
    """Running totals reported after each discovery and each download."""

    source_name: str
    discovered_count: int
    downloaded_count: int
    requested_count: int


@dataclass(frozen=True)
class ErrorEvent:
    message: str
    details: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class EventSink(Protocol):
    """Receives crawl events. Implementations must not raise."""

    def log(self, level: EventLevel, message: str) -> None:
        ...

    def progress(self, event: ProgressEvent) -> None:
        ...

    def error(self, event: ErrorEvent) -> None:
        ...

    def complete(self, stats: RunStats) -> None:
        ...


class LoggingEventSink:
    """Forwards every event to structlog."""

    def __init__(self, name: str = "image_crawler.events") -> None:
        self._logger = structlog.get_logger(name)

    def log(self, level: EventLevel, message: str) -> None:
        getattr(self._logger, level, self._logger.info)("crawl.log", message=message)

    def progress(self, event: ProgressEvent) -> None:
        self._logger.info(
            "crawl.progress",
            source=event.source_name,
            discovered=event.discovered_count,
            downloaded=event.downloaded_count,
            requested=event.requested_count,
        )

    def error(self, event: ErrorEvent) -> None:
        self._logger.error("crawl.error", message=event.message, **event.details)

    def complete(self, stats: RunStats) -> None:
        self._logger.info("crawl.complete", **stats.to_dict())
