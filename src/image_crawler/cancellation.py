"""Cooperative cancellation shared by the orchestrator and its sources."""
from __future__ import annotations

from image_crawler.errors import CrawlCancelled


class CancellationToken:
    """A flag polled before each source, candidate and navigation.

    Nothing is interrupted forcibly: an in-flight fetch completes and the
    next suspension point observes the request.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: str | None = None

    def cancel(self, reason: str = "cancellation requested") -> None:
        if not self._cancelled:
            self._cancelled = True
            self._reason = reason

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str | None:
        return self._reason

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise CrawlCancelled(self._reason or "cancelled")
