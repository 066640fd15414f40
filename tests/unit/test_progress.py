# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Unit tests for progress events and channels."""

import pytest

from tubeshot.core.progress import LEVELS, ProgressChannel, ProgressEvent, level_rank


class TestProgressEvent:
    """Tests for ProgressEvent rendering."""

    def test_to_notification(self):
        """Events render as notifications/message with level, logger and data."""
        event = ProgressEvent(level="info", message="Initializing browser...")

        note = event.to_notification()

        assert note["jsonrpc"] == "2.0"
        assert note["method"] == "notifications/message"
        assert note["params"] == {
            "level": "info",
            "logger": "tubeshot",
            "data": "Initializing browser...",
        }
        assert "id" not in note

    def test_to_dict_has_timestamp(self):
        event = ProgressEvent(level="error", message="boom", timestamp=12.5)

        assert event.to_dict() == {"level": "error", "message": "boom", "timestamp": 12.5}


class TestLevelRank:
    """Tests for severity ordering."""

    def test_levels_are_ordered(self):
        assert level_rank("debug") < level_rank("info") < level_rank("warning") < level_rank("error")
        assert [level_rank(level) for level in LEVELS] == list(range(len(LEVELS)))

    def test_unknown_level_ranks_as_info(self):
        assert level_rank("chatty") == level_rank("info")


class TestProgressChannel:
    """Tests for ProgressChannel ordering and closing."""

    @pytest.mark.asyncio
    async def test_events_arrive_in_publish_order(self):
        channel = ProgressChannel()
        await channel.info("one")
        await channel.warning("two")
        await channel.error("three")
        channel.close()

        events = [event async for event in channel]

        assert [e.message for e in events] == ["one", "two", "three"]
        assert [e.level for e in events] == ["info", "warning", "error"]

    @pytest.mark.asyncio
    async def test_publish_after_close_is_ignored(self):
        channel = ProgressChannel()
        await channel.info("before")
        channel.close()
        await channel.info("after")

        assert channel.closed
        assert [e.message async for e in channel] == ["before"]

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        channel = ProgressChannel()
        channel.close()
        channel.close()

        assert [e async for e in channel] == []
