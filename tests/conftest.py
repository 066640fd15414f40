# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""
Shared test fixtures for the Tubeshot test suite.

This module provides fakes for the Playwright objects the browser layer
touches (playwright, browser, context, page, element) plus fixtures that
patch ``async_playwright`` so no real browser is ever launched.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Set
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from playwright.async_api import Error as PlaywrightError

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 2048


# ==================== Environment Setup ====================

@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """Set up test environment variables."""
    os.environ.setdefault("TUBESHOT_LOG_LEVEL", "WARNING")
    yield


# ==================== Fake Playwright Objects ====================

class FakeElement:
    """Fake element handle for the ``video`` element."""

    def __init__(self, data: bytes = PNG_BYTES):
        self.data = data
        self.screenshots: List[Dict[str, Any]] = []

    async def screenshot(self, path: Optional[str] = None, **kwargs) -> bytes:
        self.screenshots.append({"path": path, **kwargs})
        if path:
            Path(path).write_bytes(self.data)
        return self.data


class FakePage:
    """Fake Playwright page showing a video player.

    Attributes:
        menu_entries: Selectors that ``click`` succeeds on; anything else times out
        player_ready: Whether ``wait_for_selector("video")`` succeeds
        has_video: Whether ``query_selector("video")`` finds an element
        video_data: What ``evaluate`` returns
    """

    SETTINGS = 'button[aria-label="Settings"]'
    QUALITY = 'div[role="menuitem"]:has-text("Quality")'

    def __init__(self):
        self.url = "about:blank"
        self.menu_entries: Set[str] = {self.SETTINGS, self.QUALITY, "video"}
        self.player_ready = True
        self.has_video = True
        self.goto_error: Optional[str] = None
        self.video_data: Optional[Dict[str, Any]] = {
            "title": "Big Buck Bunny",
            "channel": "Blender",
            "duration": 596.5,
            "currentTime": 83.2,
            "videoWidth": 1920,
            "videoHeight": 1080,
            "paused": False,
            "url": "https://www.youtube.com/watch?v=nM_6OzE6OJY&t=83",
        }
        self.element = FakeElement()
        self.clicks: List[str] = []
        self.waits: List[int] = []
        self.gotos: List[Dict[str, Any]] = []
        self.viewport_screenshots: List[Dict[str, Any]] = []
        self.closed = False

    def offer_quality(self, *labels: str) -> None:
        """Make the quality sub-menu list the given labels."""
        for label in labels:
            self.menu_entries.add(f'div[role="menuitemradio"]:has-text("{label}")')

    async def goto(self, url: str, **kwargs) -> None:
        self.gotos.append({"url": url, **kwargs})
        if self.goto_error:
            raise PlaywrightError(self.goto_error)
        self.url = url

    async def wait_for_selector(self, selector: str, **kwargs) -> MagicMock:
        if not self.player_ready:
            raise PlaywrightError(f"Timeout {kwargs.get('timeout')}ms exceeded waiting for {selector}")
        return MagicMock()

    async def click(self, selector: str, **kwargs) -> None:
        if selector not in self.menu_entries:
            raise PlaywrightError(f"Timeout {kwargs.get('timeout')}ms exceeded clicking {selector}")
        self.clicks.append(selector)

    async def wait_for_timeout(self, timeout: float) -> None:
        self.waits.append(timeout)

    async def query_selector(self, selector: str) -> Optional[FakeElement]:
        return self.element if self.has_video else None

    async def screenshot(self, path: Optional[str] = None, **kwargs) -> bytes:
        self.viewport_screenshots.append({"path": path, **kwargs})
        if path:
            Path(path).write_bytes(PNG_BYTES)
        return PNG_BYTES

    async def evaluate(self, expression: str) -> Any:
        return self.video_data

    async def close(self) -> None:
        self.closed = True


class FakeContext:
    def __init__(self, page: FakePage):
        self.page = page
        self.closed = False

    async def new_page(self) -> FakePage:
        return self.page

    async def close(self) -> None:
        self.closed = True


class FakeBrowser:
    def __init__(self):
        self.page = FakePage()
        self.contexts: List[Dict[str, Any]] = []
        self.closed = False

    async def new_context(self, **kwargs) -> FakeContext:
        self.contexts.append(kwargs)
        return FakeContext(self.page)

    async def close(self) -> None:
        self.closed = True


class FakePlaywright:
    """Fake started Playwright instance."""

    def __init__(self):
        self.browser = FakeBrowser()
        self.chromium = MagicMock()
        self.chromium.launch = AsyncMock(return_value=self.browser)
        self.stopped = False

    @property
    def page(self) -> FakePage:
        return self.browser.page

    async def stop(self) -> None:
        self.stopped = True


class PlaywrightFactory:
    """Stands in for ``async_playwright``; every start() yields a fresh fake."""

    def __init__(self):
        self.instances: List[FakePlaywright] = []

    def __call__(self) -> MagicMock:
        starter = MagicMock()
        starter.start = AsyncMock(side_effect=self._start)
        return starter

    async def _start(self) -> FakePlaywright:
        instance = FakePlaywright()
        self.instances.append(instance)
        return instance

    @property
    def latest(self) -> FakePlaywright:
        return self.instances[-1]


@pytest.fixture
def fake_page() -> FakePage:
    """Create a fake page."""
    return FakePage()


@pytest.fixture
def playwright_factory():
    """Patch ``async_playwright`` in the browser layer with fakes."""
    factory = PlaywrightFactory()
    with patch("tubeshot.core.browser.async_playwright", factory):
        yield factory


# ==================== Markers ====================

def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
