"""Data carried between sources, the fetcher and the orchestrator."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class RunState(str, Enum):
    """Lifecycle of a crawl run."""

    IDLE = "idle"
    INITIALIZING = "initializing"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.COMPLETED, RunState.CANCELLED, RunState.FAILED)


@dataclass(frozen=True)
class Candidate:
    """A discovered image reference, not yet validated or fetched.

    ``url`` is either a preview/full image URL or, when ``is_detail_page`` is
    set, the page that hosts the full-size image.
    """

    source_name: str
    url: str
    is_detail_page: bool = False
    thumbnail_url: str | None = None
    title: str | None = None
    origin_url: str | None = None  # results page the candidate was found on
    element_index: int | None = None  # position under the primary selector


@dataclass(frozen=True)
class SourceLimits:
    """Limits handed to one source for one discovery pass."""

    max_results: int
    timeout_ms: int = 30000
    safe_search: bool = True
    min_width: int = 0
    min_height: int = 0


@dataclass
class SourceStats:
    discovered: int = 0
    downloaded: int = 0
    skipped: int = 0
    errored: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "discovered": self.discovered,
            "downloaded": self.downloaded,
            "skipped": self.skipped,
            "errored": self.errored,
        }


@dataclass
class RunStats:
    """Per-source counters plus run-level totals and final state."""

    state: RunState = RunState.IDLE
    sources: dict[str, SourceStats] = field(default_factory=dict)
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error: str | None = None

    def start_source(self, name: str) -> SourceStats:
        return self.sources.setdefault(name, SourceStats())

    @property
    def discovered(self) -> int:
        return sum(s.discovered for s in self.sources.values())

    @property
    def downloaded(self) -> int:
        return sum(s.downloaded for s in self.sources.values())

    @property
    def skipped(self) -> int:
        return sum(s.skipped for s in self.sources.values())

    @property
    def errored(self) -> int:
        return sum(s.errored for s in self.sources.values())

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def mark_started(self) -> None:
        self.started_at = datetime.now(UTC)

    def mark_finished(self) -> None:
        self.finished_at = datetime.now(UTC)

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "sources": {name: s.to_dict() for name, s in self.sources.items()},
            "discovered": self.discovered,
            "downloaded": self.downloaded,
            "skipped": self.skipped,
            "errored": self.errored,
            "duration_seconds": self.duration_seconds,
            "error": self.error,
        }
