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
Browser automation controller.

One BrowserAutomationController belongs to one session and owns that
session's BrowserManager, so sessions never share a page. The controller
sequences a capture (navigate, wait for the player, negotiate quality,
settle, screenshot, verify) and reads player metadata from the live page.

Example:
    >>> controller = BrowserAutomationController()
    >>> result = await controller.load_and_capture(
    ...     "https://www.youtube.com/watch?v=nM_6OzE6OJY&t=83",
    ...     quality=QualityTier.HD1080,
    ... )
    >>> print(result.summary())
    >>> await controller.cleanup()
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from tubeshot.core.browser import BrowserManager
from tubeshot.core.capture import VIDEO_SELECTOR, ScreenshotCapturer, default_output_path
from tubeshot.core.progress import ProgressChannel
from tubeshot.core.quality import (
    NegotiationOutcome,
    QualityTier,
    SettingsMenuSelector,
    VideoQualityNegotiator,
)
from tubeshot.exceptions import (
    ArtifactError,
    CaptureError,
    NavigationError,
    NoContentLoadedError,
    PageError,
    PlayerNotReadyError,
)
from tubeshot.utils.logger import browser_log, logger

DEFAULT_SETTLE_MS = 3000
UNKNOWN = "Unknown"

# Reads player state in one round trip. Missing elements map to null and are
# replaced by defaults on the Python side.
VIDEO_INFO_SCRIPT = """
() => {
    const pick = (selectors) => {
        for (const selector of selectors) {
            const el = document.querySelector(selector);
            const text = el && el.textContent ? el.textContent.trim() : "";
            if (text) return text;
        }
        return null;
    };
    const video = document.querySelector("video");
    return {
        title: pick([
            "h1.ytd-video-primary-info-renderer yt-formatted-string",
            "h1.ytd-watch-metadata yt-formatted-string",
            "#title h1",
        ]),
        channel: pick([
            "#channel-name a",
            "ytd-channel-name a",
        ]),
        duration: video ? video.duration : null,
        currentTime: video ? video.currentTime : null,
        videoWidth: video ? video.videoWidth : null,
        videoHeight: video ? video.videoHeight : null,
        paused: video ? video.paused : null,
        url: window.location.href,
    };
}
"""


def _number(value: Any) -> float:
    # NaN/Infinity show up for live streams and unloaded media
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    if math.isnan(value) or math.isinf(value):
        return 0.0
    return float(value)


def _millis(value: float) -> str:
    # 3000.0 reads as "3000", 1500.5 stays "1500.5"
    return str(int(value)) if float(value).is_integer() else str(value)

@dataclass
class CaptureResult:
    """Outcome of a successful load-and-capture."""

    path: Path
    size_bytes: int
    address: str
    quality: QualityTier
    negotiation: NegotiationOutcome

    @property
    def size_kb(self) -> int:
        """Size in whole kilobytes, rounded up so a non-empty file is never 0 KB."""
        return math.ceil(self.size_bytes / 1024)

    def summary(self) -> str:
        return (
            f"Screenshot successfully saved to: {self.path}\n"
            f"File size: {self.size_kb} KB\n"
            f"Video URL: {self.address}\n"
            f"Quality setting: {self.quality.value}"
        )


@dataclass
class VideoInfo:
    """Player metadata read from the live page."""

    title: str = UNKNOWN
    channel: str = UNKNOWN
    duration: float = 0.0
    current_time: float = 0.0
    width: int = 0
    height: int = 0
    paused: bool = True
    url: str = ""

    @classmethod
    def from_page_data(cls, data: Optional[Dict[str, Any]]) -> "VideoInfo":
        data = data or {}
        paused = data.get("paused")
        return cls(
            title=data.get("title") or UNKNOWN,
            channel=data.get("channel") or UNKNOWN,
            duration=_number(data.get("duration")),
            current_time=_number(data.get("currentTime")),
            width=int(_number(data.get("videoWidth"))),
            height=int(_number(data.get("videoHeight"))),
            paused=True if paused is None else bool(paused),
            url=data.get("url") or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "channel": self.channel,
            "duration": self.duration,
            "current_time": self.current_time,
            "width": self.width,
            "height": self.height,
            "paused": self.paused,
            "url": self.url,
        }

    def summary(self) -> str:
        return (
            "Video Information:\n"
            f"Title: {self.title}\n"
            f"Channel: {self.channel}\n"
            f"Duration: {round(self.duration)}s\n"
            f"Current Time: {round(self.current_time)}s\n"
            f"Resolution: {self.width}x{self.height}\n"
            f"Status: {'Paused' if self.paused else 'Playing'}\n"
            f"URL: {self.url}"
        )


class BrowserAutomationController:
    """
    Drives one session's browser through video captures.

    Attributes:
        output_dir: Directory that relative and default output paths resolve against
        navigation_timeout_ms: Upper bound for navigation
        wait_until: Load state navigation waits for
        player_timeout_ms: Upper bound for the video element to appear
    """

    def __init__(
        self,
        browser: Optional[BrowserManager] = None,
        negotiator: Optional[VideoQualityNegotiator] = None,
        capturer: Optional[ScreenshotCapturer] = None,
        output_dir: Union[str, Path] = ".",
        navigation_timeout_ms: int = 30000,
        wait_until: str = "networkidle",
        player_timeout_ms: int = 10000,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.browser = browser or BrowserManager()
        self.negotiator = negotiator or VideoQualityNegotiator()
        self.capturer = capturer or ScreenshotCapturer()
        self.output_dir = Path(output_dir)
        self.navigation_timeout_ms = navigation_timeout_ms
        self.wait_until = wait_until
        self.player_timeout_ms = player_timeout_ms
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._loaded_address: Optional[str] = None

    @classmethod
    def from_config(cls, config) -> "BrowserAutomationController":
        """Build a controller from a ``ServiceConfig``."""
        return cls(
            browser=BrowserManager.from_config(config.browser),
            negotiator=VideoQualityNegotiator(SettingsMenuSelector.from_config(config.quality)),
            output_dir=config.output_dir,
            navigation_timeout_ms=config.browser.navigation_timeout_ms,
            wait_until=config.browser.wait_until,
            player_timeout_ms=config.browser.player_timeout_ms,
        )

    @property
    def has_content(self) -> bool:
        """Whether a page exists and has been navigated."""
        return self.browser.has_page and self._loaded_address is not None

    async def ensure_ready(self) -> Page:
        """Launch the browser and open the page unless both already exist."""
        return await self.browser.ensure_ready()

    def resolve_output_path(self, output_path: Optional[str] = None) -> Path:
        """
        Absolute path for a capture; relative paths resolve against output_dir.

        Raises:
            CaptureError: If ``output_path`` cannot be turned into a path (for example a NUL byte)
        """
        if output_path:
            try:
                return (self.output_dir / Path(output_path).expanduser()).resolve()
            except (OSError, ValueError) as e:
                raise CaptureError(f"Invalid output path {output_path!r}: {e}") from e
        return default_output_path(self._clock(), self.output_dir)

    async def load_and_capture(
        self,
        address: str,
        output_path: Optional[str] = None,
        settle_ms: float = DEFAULT_SETTLE_MS,
        quality: Union[QualityTier, str] = QualityTier.HIGHEST,
        progress: Optional[ProgressChannel] = None,
    ) -> CaptureResult:
        """
        Load ``address``, steer the player to ``quality`` and capture it.

        Args:
            address: Video page URL (may carry a ``t=`` start offset)
            output_path: Where to write the PNG; derived from the capture time if omitted
            settle_ms: Delay before the capture so adaptive playback can settle
            quality: Requested quality tier (best effort)
            progress: Channel that receives a message before each blocking step

        Returns:
            CaptureResult describing the written file

        Raises:
            BrowserError: If the browser cannot be started
            NavigationError: If the page cannot be loaded
            PlayerNotReadyError: If no video element appears in time
            CaptureError: If the screenshot fails
            ArtifactError: If the screenshot file is missing afterwards
        """
        quality = QualityTier(quality)

        await self._notify(progress, "Initializing browser...")
        page = await self.ensure_ready()

        await self._notify(progress, f"Loading video: {address}")
        await self._navigate(page, address)
        await self._wait_for_player(page)

        await self._notify(progress, "Video player loaded, setting quality...")
        outcome = await self.negotiator.negotiate(page, quality)

        await self._notify(progress, f"Waiting {_millis(settle_ms)}ms for video to stabilize...")
        await page.wait_for_timeout(settle_ms)

        path = self.resolve_output_path(output_path)
        await self._notify(progress, f"Taking screenshot and saving to: {path}")
        written = await self.capturer.capture(page, path)

        size = self._verify_artifact(written)
        logger.info(f"Screenshot saved: {written} ({size} bytes, quality={quality.value})")
        return CaptureResult(
            path=written,
            size_bytes=size,
            address=address,
            quality=quality,
            negotiation=outcome,
        )

    async def describe_current(self) -> VideoInfo:
        """
        Read metadata of the video currently loaded.

        Raises:
            NoContentLoadedError: If no page has been navigated yet; no browser is started
        """
        if not self.has_content:
            raise NoContentLoadedError(
                "No browser page available. Please load a video first."
            )
        try:
            data = await self.browser.page.evaluate(VIDEO_INFO_SCRIPT)
        except PlaywrightError as e:
            raise PageError(f"Failed to read player state: {e}") from e
        return VideoInfo.from_page_data(data)

    async def cleanup(self) -> None:
        """Close the page then the browser. Safe to call at any time."""
        self._loaded_address = None
        await self.browser.stop()

    async def _navigate(self, page: Page, address: str) -> None:
        display = address[:60] + "..." if len(address) > 60 else address
        started = browser_log.start_action("NAVIGATE", display)
        try:
            await page.goto(
                address, wait_until=self.wait_until, timeout=self.navigation_timeout_ms
            )
        except PlaywrightError as e:
            browser_log.end_action("NAVIGATE", False, str(e)[:50], started=started)
            raise NavigationError(f"Failed to navigate to {address}: {e}") from e
        browser_log.end_action("NAVIGATE", True, f"loaded ({self.wait_until})", started=started)
        self._loaded_address = address

    async def _wait_for_player(self, page: Page) -> None:
        started = browser_log.start_action("WAIT", f"selector '{VIDEO_SELECTOR}'")
        try:
            await page.wait_for_selector(VIDEO_SELECTOR, timeout=self.player_timeout_ms)
        except PlaywrightError as e:
            browser_log.end_action("WAIT", False, str(e)[:50], started=started)
            raise PlayerNotReadyError(
                f"Video player did not appear within {self.player_timeout_ms}ms: {e}"
            ) from e
        browser_log.end_action("WAIT", True, "player ready", started=started)

    @staticmethod
    def _verify_artifact(path: Path) -> int:
        try:
            size = path.stat().st_size
        except OSError as e:
            raise ArtifactError(f"Screenshot file was not created: {path}") from e
        if size == 0:
            raise ArtifactError(f"Screenshot file is empty: {path}")
        return size

    @staticmethod
    async def _notify(progress: Optional[ProgressChannel], message: str) -> None:
        if progress is not None:
            await progress.info(message)
