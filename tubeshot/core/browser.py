# Copyright 2026 Firefly Software Solutions Inc
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Browser management for Tubeshot.

This module provides the BrowserManager class which handles the lifecycle
of one Playwright Chromium browser and the single page a session drives.
Acquisition is lazy and idempotent: ``ensure_ready()`` launches only what
is missing, and ``stop()`` can be called any number of times.
"""

from __future__ import annotations

from typing import Any, List, Optional

from playwright.async_api import Browser, BrowserContext, Page, async_playwright
from playwright.async_api import Error as PlaywrightError

from tubeshot.exceptions import BrowserError
from tubeshot.service.config import DEFAULT_LAUNCH_ARGS
from tubeshot.utils.logger import logger


class BrowserManager:
    """
    Manages one Playwright browser and its page.

    Attributes:
        headless: Whether browser runs in headless mode (no visible window)
        viewport_width: Fixed viewport width in pixels
        viewport_height: Fixed viewport height in pixels
        launch_args: Chromium command-line switches

    Example:
        >>> manager = BrowserManager(headless=True)
        >>> page = await manager.ensure_ready()
        >>> await page.goto("https://example.com")
        >>> await manager.stop()
    """

    DEFAULT_USER_AGENT = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/131.0.0.0 Safari/537.36"
    )

    def __init__(
        self,
        headless: bool = True,
        viewport_width: int = 1920,
        viewport_height: int = 1080,
        launch_args: Optional[List[str]] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        self.headless = headless
        self.viewport_width = viewport_width
        self.viewport_height = viewport_height
        self.launch_args = list(DEFAULT_LAUNCH_ARGS if launch_args is None else launch_args)
        self.user_agent = user_agent or self.DEFAULT_USER_AGENT
        self._playwright: Any = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    @classmethod
    def from_config(cls, config) -> "BrowserManager":
        """Build from a ``BrowserConfig``."""
        return cls(
            headless=config.headless,
            viewport_width=config.viewport_width,
            viewport_height=config.viewport_height,
            launch_args=config.launch_args,
            user_agent=config.user_agent,
        )

    @property
    def is_running(self) -> bool:
        """Whether a browser handle currently exists."""
        return self._browser is not None

    @property
    def has_page(self) -> bool:
        """Whether a page handle currently exists."""
        return self._page is not None

    @property
    def page(self) -> Page:
        """Get the current page."""
        if not self._page:
            raise BrowserError("No active page. Call ensure_ready() first.")
        return self._page

    async def ensure_ready(self) -> Page:
        """
        Launch the browser and open the page if either is missing.

        Calling this when both exist returns the existing page untouched.

        Returns:
            The session's page

        Raises:
            BrowserError: If the browser or page cannot be created
        """
        try:
            if self._browser is None:
                logger.info(f"Starting chromium browser (headless={self.headless})")
                if self._playwright is None:
                    self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=self.headless, args=self.launch_args
                )

            if self._page is None:
                self._context = await self._browser.new_context(
                    viewport={"width": self.viewport_width, "height": self.viewport_height},
                    user_agent=self.user_agent,
                    locale="en-US",
                )
                self._page = await self._context.new_page()
                logger.info(
                    f"Browser page ready ({self.viewport_width}x{self.viewport_height})"
                )
        except PlaywrightError as e:
            logger.error(f"Failed to start browser: {e}")
            raise BrowserError(f"Failed to initialize browser: {e}") from e

        return self._page

    async def stop(self) -> None:
        """
        Close the page, then the browser, and release Playwright.

        Handles are reset before closing so a failed close never leaves a
        half-dead handle behind. Calling this with nothing open is a no-op.

        Raises:
            BrowserError: If any close step fails (the remaining steps still run)
        """
        page, context, browser, playwright = (
            self._page, self._context, self._browser, self._playwright
        )
        self._page = self._context = self._browser = self._playwright = None

        if not any((page, context, browser, playwright)):
            return

        logger.info("Stopping browser")
        first_error: Optional[Exception] = None
        for name, closer in (
            ("page", page.close if page else None),
            ("context", context.close if context else None),
            ("browser", browser.close if browser else None),
            ("playwright", playwright.stop if playwright else None),
        ):
            if closer is None:
                continue
            try:
                await closer()
            except PlaywrightError as e:
                logger.error(f"Error closing {name}: {e}")
                first_error = first_error or e

        if first_error is not None:
            raise BrowserError(f"Failed to stop browser: {first_error}") from first_error
        logger.info("Browser stopped successfully")

    async def __aenter__(self) -> "BrowserManager":
        await self.ensure_ready()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.stop()
