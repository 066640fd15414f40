# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Unit tests for BrowserAutomationController."""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from tubeshot.core.controller import BrowserAutomationController, CaptureResult, VideoInfo
from tubeshot.core.progress import ProgressChannel
from tubeshot.core.quality import NegotiationOutcome, QualityTier
from tubeshot.exceptions import (
    ArtifactError,
    NavigationError,
    NoContentLoadedError,
    PlayerNotReadyError,
)

VIDEO_URL = "https://www.youtube.com/watch?v=nM_6OzE6OJY&t=83"
FIXED_NOW = datetime(2026, 3, 4, 5, 6, 7, 890000, tzinfo=timezone.utc)


class NullCapturer:
    """Reports success without writing anything."""

    async def capture(self, page, output_path):
        return Path(output_path)


@pytest.fixture
def controller(tmp_path, playwright_factory):
    return BrowserAutomationController(output_dir=tmp_path, clock=lambda: FIXED_NOW)


async def drain(channel: ProgressChannel):
    channel.close()
    return [event async for event in channel]


class TestLoadAndCapture:
    """Tests for the load-and-capture sequence."""

    @pytest.mark.asyncio
    async def test_scenario_hd1080(self, controller, playwright_factory, tmp_path):
        progress = ProgressChannel()
        await controller.ensure_ready()
        playwright_factory.latest.page.offer_quality("1080p")

        result = await controller.load_and_capture(
            VIDEO_URL,
            output_path="frame.png",
            settle_ms=100,
            quality="hd1080",
            progress=progress,
        )

        summary = result.summary()
        assert "saved to" in summary
        assert str(tmp_path.resolve() / "frame.png") in summary
        assert f"Video URL: {VIDEO_URL}" in summary
        assert summary.endswith("Quality setting: hd1080")
        assert result.size_kb > 0
        assert result.path.exists() and result.path.stat().st_size > 0
        assert result.negotiation == NegotiationOutcome.SELECTED

        messages = [e.message for e in await drain(progress)]
        assert messages == [
            "Initializing browser...",
            f"Loading video: {VIDEO_URL}",
            "Video player loaded, setting quality...",
            "Waiting 100ms for video to stabilize...",
            f"Taking screenshot and saving to: {result.path}",
        ]

    @pytest.mark.asyncio
    async def test_navigation_options_and_settle(self, controller, playwright_factory):
        await controller.load_and_capture(VIDEO_URL, settle_ms=250)

        page = playwright_factory.latest.page
        assert page.gotos == [{"url": VIDEO_URL, "wait_until": "networkidle", "timeout": 30000}]
        assert page.waits[-1] == 250

    @pytest.mark.asyncio
    async def test_default_path_uses_clock(self, controller, tmp_path):
        result = await controller.load_and_capture(VIDEO_URL, settle_ms=0)

        assert result.path == tmp_path.resolve() / "youtube-screenshot-2026-03-04T05-06-07-890Z.png"
        assert result.quality == QualityTier.HIGHEST

    @pytest.mark.asyncio
    async def test_quality_failure_is_not_fatal(self, controller, playwright_factory):
        await controller.ensure_ready()
        playwright_factory.latest.page.menu_entries = set()

        result = await controller.load_and_capture(VIDEO_URL, settle_ms=0, quality="medium")

        assert result.negotiation == NegotiationOutcome.UNAVAILABLE
        assert result.path.exists()

    @pytest.mark.asyncio
    async def test_player_timeout_is_fatal_but_keeps_browser(self, controller, playwright_factory):
        await controller.ensure_ready()
        playwright_factory.latest.page.player_ready = False

        with pytest.raises(PlayerNotReadyError):
            await controller.load_and_capture(VIDEO_URL, settle_ms=0)
        assert controller.browser.is_running

    @pytest.mark.asyncio
    async def test_navigation_failure(self, controller, playwright_factory):
        await controller.ensure_ready()
        playwright_factory.latest.page.goto_error = "net::ERR_NAME_NOT_RESOLVED"

        with pytest.raises(NavigationError, match="ERR_NAME_NOT_RESOLVED"):
            await controller.load_and_capture("https://nowhere.invalid/watch", settle_ms=0)
        assert not controller.has_content

    @pytest.mark.asyncio
    async def test_missing_artifact(self, tmp_path, playwright_factory):
        controller = BrowserAutomationController(capturer=NullCapturer(), output_dir=tmp_path)

        with pytest.raises(ArtifactError, match="was not created"):
            await controller.load_and_capture(VIDEO_URL, settle_ms=0)

    @pytest.mark.asyncio
    async def test_empty_artifact(self, tmp_path, playwright_factory):
        controller = BrowserAutomationController(capturer=NullCapturer(), output_dir=tmp_path)
        (tmp_path / "empty.png").write_bytes(b"")

        with pytest.raises(ArtifactError, match="empty"):
            await controller.load_and_capture(VIDEO_URL, output_path="empty.png", settle_ms=0)

    @pytest.mark.asyncio
    async def test_reuses_browser_across_calls(self, controller, playwright_factory):
        await controller.load_and_capture(VIDEO_URL, output_path="a.png", settle_ms=0)
        await controller.load_and_capture(VIDEO_URL, output_path="b.png", settle_ms=0)

        assert len(playwright_factory.instances) == 1


class TestDescribeCurrent:
    """Tests for reading player metadata."""

    @pytest.mark.asyncio
    async def test_before_load_fails_without_launching(self, controller, playwright_factory):
        with pytest.raises(NoContentLoadedError, match="Please load a video first"):
            await controller.describe_current()

        assert playwright_factory.instances == []

    @pytest.mark.asyncio
    async def test_reads_player_state(self, controller):
        await controller.load_and_capture(VIDEO_URL, settle_ms=0)

        info = await controller.describe_current()

        assert info.title == "Big Buck Bunny"
        assert info.channel == "Blender"
        assert info.width == 1920 and info.height == 1080
        assert info.paused is False
        assert "Duration: 596s" in info.summary() or "Duration: 597s" in info.summary()
        assert "Current Time: 83s" in info.summary()
        assert "Status: Playing" in info.summary()

    @pytest.mark.asyncio
    async def test_after_cleanup_fails_again(self, controller):
        await controller.load_and_capture(VIDEO_URL, settle_ms=0)
        await controller.cleanup()

        with pytest.raises(NoContentLoadedError):
            await controller.describe_current()


class TestVideoInfo:
    """Tests for VideoInfo defaults."""

    def test_defaults_without_media(self):
        info = VideoInfo.from_page_data({"title": None, "url": "https://example.com"})

        assert info.title == "Unknown"
        assert info.channel == "Unknown"
        assert info.duration == 0
        assert info.paused is True
        assert info.summary().splitlines() == [
            "Video Information:",
            "Title: Unknown",
            "Channel: Unknown",
            "Duration: 0s",
            "Current Time: 0s",
            "Resolution: 0x0",
            "Status: Paused",
            "URL: https://example.com",
        ]

    def test_non_finite_numbers(self):
        info = VideoInfo.from_page_data({"duration": float("nan"), "currentTime": float("inf")})

        assert info.duration == 0
        assert info.current_time == 0


class TestCaptureResult:
    """Tests for CaptureResult."""

    def test_size_rounds_up(self):
        result = CaptureResult(
            path=Path("/tmp/x.png"),
            size_bytes=1,
            address=VIDEO_URL,
            quality=QualityTier.HD720,
            negotiation=NegotiationOutcome.SELECTED,
        )

        assert result.size_kb == 1
        assert "File size: 1 KB" in result.summary()


class TestCleanup:
    """Tests for cleanup."""

    @pytest.mark.asyncio
    async def test_cleanup_without_browser(self, controller, playwright_factory):
        await controller.cleanup()
        await controller.cleanup()

        assert playwright_factory.instances == []

    @pytest.mark.asyncio
    async def test_cleanup_is_idempotent(self, controller, playwright_factory):
        await controller.ensure_ready()

        await controller.cleanup()
        await controller.cleanup()

        assert playwright_factory.latest.browser.closed
        assert not controller.browser.is_running

    def test_relative_output_resolves_against_output_dir(self, tmp_path):
        controller = BrowserAutomationController(output_dir=tmp_path)

        assert controller.resolve_output_path("shots/x.png") == tmp_path.resolve() / "shots" / "x.png"
        assert controller.resolve_output_path(str(tmp_path / "abs.png")) == (tmp_path / "abs.png").resolve()
