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
Best-effort playback quality negotiation.

The player exposes quality only through its settings menu, so the tier is
chosen by clicking through that menu: open settings, open the quality
sub-menu, pick the entry whose label matches the tier, fall back to the
"Auto" entry if it is missing, then dismiss the menu.

The menu strategy sits behind QualitySelector so a different player (or a
test stub) can be plugged into VideoQualityNegotiator without touching the
controller. The negotiator itself never raises: the worst outcome is that
the page keeps its automatic quality and a warning is logged.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional, Union

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from tubeshot.utils.logger import logger


class QualityTier(str, Enum):
    """Requested playback quality."""

    HIGHEST = "highest"
    HD1080 = "hd1080"
    HD720 = "hd720"
    LARGE = "large"
    MEDIUM = "medium"

    @property
    def label(self) -> str:
        """Menu label the tier is matched against."""
        return QUALITY_LABELS[self]


QUALITY_LABELS = {
    QualityTier.HIGHEST: "2160p",
    QualityTier.HD1080: "1080p",
    QualityTier.HD720: "720p",
    QualityTier.LARGE: "480p",
    QualityTier.MEDIUM: "360p",
}

AUTO_LABEL = "Auto"


class NegotiationOutcome(str, Enum):
    """What the negotiation achieved."""

    SELECTED = "selected"            # The tier's own entry was clicked
    FALLBACK_AUTO = "fallback_auto"  # The tier was missing; "Auto" was clicked
    UNAVAILABLE = "unavailable"      # The menu could not be driven; quality untouched


class QualitySelector(ABC):
    """Strategy that drives a page's UI towards a quality tier."""

    @abstractmethod
    async def attempt_select(self, page: Page, tier: QualityTier) -> NegotiationOutcome:
        """Try to select ``tier`` on ``page``.

        Implementations may raise; VideoQualityNegotiator contains the failure.
        """


class SettingsMenuSelector(QualitySelector):
    """Drives the gear-icon settings menu of the YouTube web player."""

    SETTINGS_BUTTON = 'button[aria-label="Settings"]'
    QUALITY_ITEM = 'div[role="menuitem"]:has-text("Quality")'
    OPTION_TEMPLATE = 'div[role="menuitemradio"]:has-text("{label}")'
    DISMISS_TARGET = "video"

    def __init__(
        self,
        settings_timeout_ms: int = 5000,
        menu_pause_ms: int = 1000,
        option_timeout_ms: int = 3000,
    ) -> None:
        self.settings_timeout_ms = settings_timeout_ms
        self.menu_pause_ms = menu_pause_ms
        self.option_timeout_ms = option_timeout_ms

    @classmethod
    def from_config(cls, config) -> "SettingsMenuSelector":
        """Build from a ``QualityConfig``."""
        return cls(
            settings_timeout_ms=config.settings_timeout_ms,
            menu_pause_ms=config.menu_pause_ms,
            option_timeout_ms=config.option_timeout_ms,
        )

    async def attempt_select(self, page: Page, tier: QualityTier) -> NegotiationOutcome:
        menu_open = False
        outcome = NegotiationOutcome.UNAVAILABLE
        try:
            await page.click(self.SETTINGS_BUTTON, timeout=self.settings_timeout_ms)
            menu_open = True
            await page.wait_for_timeout(self.menu_pause_ms)

            await page.click(self.QUALITY_ITEM, timeout=self.settings_timeout_ms)
            await page.wait_for_timeout(self.menu_pause_ms)

            outcome = await self._choose(page, tier)
        except PlaywrightError as e:
            logger.debug(f"Quality menu unreachable: {e}")
        finally:
            if menu_open:
                await self._dismiss(page)
        return outcome

    async def _choose(self, page: Page, tier: QualityTier) -> NegotiationOutcome:
        try:
            await page.click(
                self.OPTION_TEMPLATE.format(label=tier.label),
                timeout=self.option_timeout_ms,
            )
            return NegotiationOutcome.SELECTED
        except PlaywrightError as e:
            logger.debug(f"Quality entry {tier.label} not found: {e}")

        try:
            await page.click(
                self.OPTION_TEMPLATE.format(label=AUTO_LABEL),
                timeout=self.option_timeout_ms,
            )
            return NegotiationOutcome.FALLBACK_AUTO
        except PlaywrightError as e:
            logger.debug(f"Automatic quality entry not found: {e}")
            return NegotiationOutcome.UNAVAILABLE

    async def _dismiss(self, page: Page) -> None:
        try:
            await page.click(self.DISMISS_TARGET, timeout=self.option_timeout_ms)
        except PlaywrightError as e:
            logger.debug(f"Could not dismiss settings menu: {e}")


class VideoQualityNegotiator:
    """
    Best-effort quality negotiation with automatic fallback.

    Example:
        >>> negotiator = VideoQualityNegotiator()
        >>> outcome = await negotiator.negotiate(page, QualityTier.HD1080)
    """

    def __init__(self, selector: Optional[QualitySelector] = None) -> None:
        self.selector = selector or SettingsMenuSelector()

    async def negotiate(
        self, page: Page, tier: Union[QualityTier, str]
    ) -> NegotiationOutcome:
        """Steer ``page`` towards ``tier``. Never raises."""
        try:
            tier = QualityTier(tier)
            outcome = await self.selector.attempt_select(page, tier)
        except Exception as e:
            logger.warning(f"Could not set video quality: {e}")
            return NegotiationOutcome.UNAVAILABLE

        if outcome == NegotiationOutcome.SELECTED:
            logger.info(f"Video quality set to {tier.label} ({tier.value})")
        else:
            logger.warning(
                f"Quality {tier.label} ({tier.value}) not applied, "
                f"player keeps automatic quality ({outcome.value})"
            )
        return outcome
