"""Pexels photo search via the public API (requires a free API key)."""

from __future__ import annotations

import os
from typing import Any

import httpx

from image_crawler.cancellation import CancellationToken
from image_crawler.errors import SourceError
from image_crawler.models import Candidate, SourceLimits
from image_crawler.sources.base import BaseImageSource

MAX_PER_PAGE = 80


class PexelsSource(BaseImageSource):
    API_URL = "https://api.pexels.com/v1/search"

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._sizes: dict[str, tuple[int, int]] = {}

    @property
    def api_key(self) -> str | None:
        return self.tunables.get("api_key") or os.getenv("PEXELS_API_KEY")

    async def discover(
        self,
        query: str,
        limits: SourceLimits,
        page: Any | None,
        cancel: CancellationToken,
    ) -> list[Candidate]:
        if not self.api_key:
            self._emit("error", "No API key configured (tunables.api_key or PEXELS_API_KEY)")
            return []

        client = await self._get_client()
        candidates: list[Candidate] = []
        page_number = 1
        while len(candidates) < limits.max_results:
            cancel.raise_if_cancelled()
            params = {
                "query": query,
                "per_page": str(min(MAX_PER_PAGE, limits.max_results - len(candidates))),
                "page": str(page_number),
            }
            try:
                resp = await client.get(
                    self.API_URL,
                    params=params,
                    headers={"Authorization": self.api_key},
                    timeout=limits.timeout_ms / 1000,
                )
                resp.raise_for_status()
                data = resp.json()
            except httpx.HTTPError as e:
                raise SourceError(self.name, f"Pexels search failed: {e}") from e
            except ValueError as e:
                raise SourceError(self.name, f"Failed to parse Pexels response: {e}") from e

            photos = data.get("photos") or []
            for photo in photos:
                url = (photo.get("src") or {}).get("original")
                if not url:
                    continue
                if photo.get("width") and photo.get("height"):
                    self._sizes[url] = (int(photo["width"]), int(photo["height"]))
                candidates.append(
                    Candidate(
                        source_name=self.name,
                        url=url,
                        thumbnail_url=(photo.get("src") or {}).get("medium"),
                        title=photo.get("alt") or None,
                        origin_url=photo.get("url"),
                    )
                )
            if not photos or not data.get("next_page"):
                break
            page_number += 1

        self._emit("info", f"Found {len(candidates[: limits.max_results])} candidates")
        return candidates[: limits.max_results]

    async def probe_dimensions(self, url: str, page: Any | None) -> tuple[int, int] | None:
        return self._sizes.get(url)
