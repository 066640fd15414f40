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

"""Progress events emitted by long-running tool calls.

The controller publishes events into a ProgressChannel while it works; the
transport drains the channel and turns each event into a
``notifications/message`` notification. Events come out in the order they
were published and the channel is closed before the call's result is sent,
so every progress event of a call precedes its terminal result.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Optional

# Ordered from least to most severe, as used by ``logging/setLevel``.
LEVELS = (
    "debug",
    "info",
    "notice",
    "warning",
    "error",
    "critical",
    "alert",
    "emergency",
)


def level_rank(level: str) -> int:
    """Position of ``level`` in LEVELS; unknown levels rank as info."""
    try:
        return LEVELS.index(level)
    except ValueError:
        return LEVELS.index("info")


@dataclass
class ProgressEvent:
    """A single human-readable progress message.

    Attributes:
        level: Severity, one of LEVELS.
        message: Text shown to the caller.
        timestamp: Unix timestamp of the event.
    """

    level: str
    message: str
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "message": self.message,
            "timestamp": self.timestamp,
        }

    def to_notification(self, logger_name: str = "tubeshot") -> Dict[str, Any]:
        """Render as a JSON-RPC ``notifications/message`` notification."""
        return {
            "jsonrpc": "2.0",
            "method": "notifications/message",
            "params": {
                "level": self.level,
                "logger": logger_name,
                "data": self.message,
            },
        }


class ProgressChannel:
    """Ordered, closable stream of ProgressEvents.

    Example:
        >>> channel = ProgressChannel()
        >>> await channel.info("Initializing browser...")
        >>> channel.close()
        >>> [e.message async for e in channel]
        ['Initializing browser...']
    """

    def __init__(self) -> None:
        self._queue: "asyncio.Queue[Optional[ProgressEvent]]" = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def publish(self, level: str, message: str) -> None:
        """Queue an event. Publishing on a closed channel is a no-op."""
        if self._closed:
            return
        await self._queue.put(ProgressEvent(level=level, message=message))

    async def info(self, message: str) -> None:
        await self.publish("info", message)

    async def warning(self, message: str) -> None:
        await self.publish("warning", message)

    async def error(self, message: str) -> None:
        await self.publish("error", message)

    def close(self) -> None:
        """Mark the end of the stream; iteration stops after queued events."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)

    async def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event
