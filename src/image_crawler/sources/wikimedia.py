"""Wikimedia Commons image search via the MediaWiki API."""

from __future__ import annotations

from typing import Any

import httpx

from image_crawler.cancellation import CancellationToken
from image_crawler.errors import SourceError
from image_crawler.models import Candidate, SourceLimits
from image_crawler.sources.base import BaseImageSource

MAX_BATCH = 50


class WikimediaSource(BaseImageSource):
    """Search the File namespace of Wikimedia Commons for original image files."""

    API_URL = "https://commons.wikimedia.org/w/api.php"

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._sizes: dict[str, tuple[int, int]] = {}

    async def discover(
        self,
        query: str,
        limits: SourceLimits,
        page: Any | None,
        cancel: CancellationToken,
    ) -> list[Candidate]:
        client = await self._get_client()
        candidates: list[Candidate] = []
        seen: set[str] = set()
        continuation: dict[str, str] = {}

        while len(candidates) < limits.max_results:
            cancel.raise_if_cancelled()
            params = {
                "action": "query",
                "format": "json",
                "generator": "search",
                "gsrsearch": query,
                "gsrnamespace": "6",  # File namespace
                "gsrlimit": str(min(MAX_BATCH, limits.max_results - len(candidates))),
                "prop": "imageinfo",
                "iiprop": "url|size|mime",
                **continuation,
            }
            try:
                resp = await client.get(self.API_URL, params=params, timeout=limits.timeout_ms / 1000)
                resp.raise_for_status()
                data = resp.json()
            except httpx.HTTPError as e:
                raise SourceError(self.name, f"Commons search failed: {e}") from e
            except ValueError as e:
                raise SourceError(self.name, f"Failed to parse Commons response: {e}") from e

            pages = sorted(
                data.get("query", {}).get("pages", {}).values(),
                key=lambda p: p.get("index", 0),
            )
            for item in pages:
                info = (item.get("imageinfo") or [{}])[0]
                url = info.get("url")
                if not url or url in seen or not str(info.get("mime", "image/")).startswith("image/"):
                    continue
                seen.add(url)
                if info.get("width") and info.get("height"):
                    self._sizes[url] = (int(info["width"]), int(info["height"]))
                candidates.append(
                    Candidate(
                        source_name=self.name,
                        url=url,
                        thumbnail_url=info.get("thumburl"),
                        title=item.get("title"),
                        origin_url=info.get("descriptionurl"),
                    )
                )

            continuation = data.get("continue") or {}
            if not pages or "gsroffset" not in continuation:
                break
            continuation = {k: str(v) for k, v in continuation.items()}

        self._emit("info", f"Found {len(candidates[: limits.max_results])} candidates")
        return candidates[: limits.max_results]

    async def probe_dimensions(self, url: str, page: Any | None) -> tuple[int, int] | None:
        return self._sizes.get(url)
