"""Headless browser session shared by every source in a run.

Usage:
    async with HeadlessBrowser(HeadlessConfig(headless=True)) as browser:
        await browser.page.goto("https://example.com")
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from image_crawler.config import DEFAULT_USER_AGENT
from image_crawler.errors import BrowserLaunchError

logger = logging.getLogger(__name__)


@dataclass
class HeadlessConfig:
    """Configuration for the browser session."""
    headless: bool = True
    timeout_ms: int = 30000
    slow_mo: int = 0  # Milliseconds to slow down operations (useful for debugging)
    viewport_width: int = 1280
    viewport_height: int = 800
    user_agent: str = DEFAULT_USER_AGENT
    ignore_https_errors: bool = True


class HeadlessBrowser:
    """One Chromium browser, one context, one page."""

    def __init__(self, config: HeadlessConfig | None = None) -> None:
        self.config = config or HeadlessConfig()
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None

    async def __aenter__(self) -> HeadlessBrowser:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    @property
    def page(self) -> Any:
        if self._page is None:
            raise RuntimeError("Browser not started. Use 'async with HeadlessBrowser()' or start().")
        return self._page

    async def start(self) -> HeadlessBrowser:
        """Launch Playwright, the browser, a context and a page.

        Raises:
            BrowserLaunchError: If any launch step fails.
        """
        try:
            from playwright.async_api import async_playwright

            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.config.headless,
                slow_mo=self.config.slow_mo,
            )
            self._context = await self._browser.new_context(
                viewport={
                    "width": self.config.viewport_width,
                    "height": self.config.viewport_height,
                },
                user_agent=self.config.user_agent,
                ignore_https_errors=self.config.ignore_https_errors,
            )
            self._context.set_default_timeout(self.config.timeout_ms)
            self._page = await self._context.new_page()
        except Exception as e:
            await self.close()
            raise BrowserLaunchError(
                f"Could not launch browser: {e}. Run 'playwright install chromium' if browsers are missing."
            ) from e
        return self

    async def close(self) -> None:
        """Release browser resources. Failures are logged, never raised."""
        for label, closer in (
            ("context", self._context.close if self._context else None),
            ("browser", self._browser.close if self._browser else None),
            ("playwright", self._playwright.stop if self._playwright else None),
        ):
            if closer is None:
                continue
            try:
                await closer()
            except Exception as e:
                logger.warning(f"Failed to close {label}: {e}")
        self._page = None
        self._context = None
        self._browser = None
        self._playwright = None
