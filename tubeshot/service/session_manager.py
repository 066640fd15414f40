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

"""Session registry mapping session ids to their transports."""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from tubeshot.exceptions import SessionLimitError
from tubeshot.service.transport import SessionTransport
from tubeshot.utils.logger import logger

TransportFactory = Callable[[str], SessionTransport]


class ResolutionKind(str, Enum):
    """How the front door should treat an inbound message."""

    EXISTING = "existing"
    NEEDS_INIT = "needs_init"
    INVALID = "invalid"


@dataclass
class Resolution:
    kind: ResolutionKind
    transport: Optional[SessionTransport] = None


@dataclass
class SessionRecord:
    """A live session and its bookkeeping."""

    session_id: str
    transport: SessionTransport
    created_at: float = field(default_factory=time.time)

    @property
    def last_activity(self) -> float:
        return self.transport.last_activity

    @property
    def idle(self) -> bool:
        """No running or queued work and no open push stream."""
        return not self.transport.busy and not self.transport.has_stream


class SessionRegistry:
    """Owns the session id to transport mapping."""

    def __init__(
        self,
        transport_factory: TransportFactory,
        max_sessions: int = 100,
        session_timeout: float = 3600,
        cleanup_interval: float = 60.0,
    ):
        """
        Initialize the session registry.

        Args:
            transport_factory: Builds the transport for a freshly minted session id
            max_sessions: Maximum number of concurrent sessions
            session_timeout: Idle timeout in seconds (0 disables expiry)
            cleanup_interval: Seconds between expiry checks
        """
        self._factory = transport_factory
        self._sessions: Dict[str, SessionRecord] = {}
        self.max_sessions = max_sessions
        self.session_timeout = session_timeout
        self.cleanup_interval = cleanup_interval
        self._cleanup_task: Optional[asyncio.Task] = None
        self._total_requests = 0

    def start(self) -> None:
        """Start the background expiry task. Needs a running event loop."""
        if self.session_timeout <= 0:
            return
        if self._cleanup_task is not None and not self._cleanup_task.done():
            return

        async def cleanup_loop():
            while True:
                await asyncio.sleep(self.cleanup_interval)
                await self._cleanup_expired_sessions()

        self._cleanup_task = asyncio.create_task(cleanup_loop())

    async def _cleanup_expired_sessions(self) -> None:
        """Close sessions idle for longer than the timeout."""
        now = time.time()
        expired = [
            session_id
            for session_id, record in self._sessions.items()
            if record.idle and now - record.last_activity > self.session_timeout
        ]
        for session_id in expired:
            logger.info(f"Cleaning up expired session: {session_id}")
            try:
                await self.remove(session_id)
            except Exception as e:
                logger.error(f"Error closing expired session {session_id}: {e}")

    def resolve(self, session_id: Optional[str], is_initialize: bool) -> Resolution:
        """
        Classify an inbound message by its session header.

        Args:
            session_id: Value of the session header, if any
            is_initialize: Whether the body is a well-formed initialize request

        Returns:
            EXISTING with the transport for a known id, NEEDS_INIT for an
            initialize without an id, INVALID for everything else
        """
        if session_id:
            record = self._sessions.get(session_id)
            if record is None or record.transport.closed:
                return Resolution(ResolutionKind.INVALID)
            self._total_requests += 1
            return Resolution(ResolutionKind.EXISTING, record.transport)
        if is_initialize:
            return Resolution(ResolutionKind.NEEDS_INIT)
        return Resolution(ResolutionKind.INVALID)

    def create(self) -> SessionTransport:
        """
        Mint a session id and register its transport.

        Raises:
            SessionLimitError: If max sessions reached
        """
        if len(self._sessions) >= self.max_sessions:
            raise SessionLimitError(f"Maximum sessions ({self.max_sessions}) reached")

        session_id = str(uuid.uuid4())
        transport = self._factory(session_id)
        transport.on_close(self._forget)
        self._sessions[session_id] = SessionRecord(session_id=session_id, transport=transport)
        self._total_requests += 1

        logger.info(f"Session initialized with ID: {session_id}")
        return transport

    def _forget(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is not None:
            logger.info(f"Transport closed for session {session_id}, removed from registry")

    async def remove(self, session_id: str) -> bool:
        """
        Close and drop a session. Removing an unknown id is a no-op.

        Returns:
            True if a session was removed
        """
        record = self._sessions.pop(session_id, None)
        if record is None:
            return False
        await record.transport.close()
        logger.info(f"Deleted session: {session_id}")
        return True

    async def close_all(self) -> None:
        """Close every live session; failures are logged and skipped."""
        logger.info("Closing all sessions...")

        if self._cleanup_task:
            self._cleanup_task.cancel()
            self._cleanup_task = None

        for session_id in list(self._sessions.keys()):
            try:
                await self.remove(session_id)
            except Exception as e:
                logger.error(f"Error closing transport for session {session_id}: {e}")

        logger.info("All sessions closed")

    def get_active_session_count(self) -> int:
        """Get the number of active sessions."""
        return len(self._sessions)

    def session_ids(self) -> List[str]:
        return list(self._sessions.keys())

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def get_stats(self) -> Dict[str, Any]:
        """Registry statistics for the health endpoint."""
        return {
            "active_sessions": len(self._sessions),
            "max_sessions": self.max_sessions,
            "total_requests": self._total_requests,
            "session_timeout": self.session_timeout,
        }
