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
Screenshot capture for the video player.

The capture prefers the bounding box of the first ``video`` element and
falls back to the visible viewport when the page has none. Each region is
tried at most once; the result is always a PNG written to the given path.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from tubeshot.exceptions import CaptureError
from tubeshot.utils.logger import browser_log

VIDEO_SELECTOR = "video"
FILENAME_PREFIX = "youtube-screenshot"


def default_output_path(
    now: Optional[datetime] = None,
    directory: Union[str, Path] = ".",
) -> Path:
    """
    Build the absolute screenshot path used when the caller gives none.

    The name embeds the UTC capture time in ISO 8601 form with millisecond
    precision, with ``:`` and ``.`` replaced by ``-`` so it is safe on every
    filesystem.

    Example:
        >>> default_output_path(datetime(2026, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)).name
        'youtube-screenshot-2026-01-02T03-04-05-678Z.png'
    """
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    stamp = f"{now.strftime('%Y-%m-%dT%H:%M:%S')}.{now.microsecond // 1000:03d}Z"
    safe = stamp.replace(":", "-").replace(".", "-")
    return (Path(directory) / f"{FILENAME_PREFIX}-{safe}.png").resolve()


class ScreenshotCapturer:
    """Writes a PNG of the player (or the viewport) to disk."""

    def __init__(self, selector: str = VIDEO_SELECTOR) -> None:
        self.selector = selector

    async def capture(self, page: Page, output_path: Union[str, Path]) -> Path:
        """
        Capture the player region and write it to ``output_path``.

        An existing file at the path is overwritten and missing parent
        directories are created.

        Args:
            page: Page showing the player
            output_path: Destination of the PNG

        Returns:
            The path written

        Raises:
            CaptureError: If the browser fails to produce the image or the path is not writable
        """
        path = Path(output_path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except (OSError, ValueError) as e:
            raise CaptureError(f"Cannot create output directory {path.parent}: {e}") from e

        started = browser_log.start_action("SCREENSHOT", str(path))
        try:
            element = await page.query_selector(self.selector)
            if element is not None:
                await element.screenshot(path=str(path), type="png")
                region = "video element"
            else:
                await page.screenshot(path=str(path), type="png", full_page=False)
                region = "viewport"
        except (PlaywrightError, OSError, ValueError) as e:
            browser_log.end_action("SCREENSHOT", False, str(e)[:50], started=started)
            raise CaptureError(f"Failed to take screenshot: {e}") from e

        browser_log.end_action("SCREENSHOT", True, region, started=started)
        return path
