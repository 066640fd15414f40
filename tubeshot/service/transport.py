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
Per-session protocol transport.

A SessionTransport owns everything that belongs to one session: its
browser controller, its JSON-RPC state (protocol version, log level) and
an optional standalone server-push stream. Incoming messages go into a
FIFO inbox drained by a single worker task, so the calls of one session
run strictly in arrival order while other sessions proceed independently.

Each submitted message gets its own outbox queue. For a request, the
outbox receives the progress notifications of the call (when the caller
streams) followed by exactly one response, then ``None`` to mark the end.
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from tubeshot import __version__
from tubeshot.core.controller import BrowserAutomationController
from tubeshot.core.progress import LEVELS, ProgressChannel, ProgressEvent, level_rank
from tubeshot.exceptions import SessionError
from tubeshot.service.models import (
    DEFAULT_PROTOCOL_VERSION,
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    SUPPORTED_PROTOCOL_VERSIONS,
    JsonRpcMessage,
    error_envelope,
    initialize_result,
    result_envelope,
)
from tubeshot.service.tools import InvalidToolCallError, ToolContext, ToolRegistry
from tubeshot.utils.logger import logger

SERVER_NAME = "tubeshot"


def format_sse(message: Dict[str, Any]) -> str:
    """Frame a JSON-RPC message as one server-sent event."""
    return f"event: message\ndata: {json.dumps(message)}\n\n"


@dataclass
class _Exchange:
    message: JsonRpcMessage
    outbox: Any
    stream_progress: bool


class SessionTransport:
    """
    Protocol state and ordered execution for one session.

    Attributes:
        session_id: Identifier the registry filed this transport under
        controller: The session's own browser controller
        tools: Tool catalog shared by all sessions
        created_at: Unix time of creation
        last_activity: Unix time of the last submitted message or stream open
    """

    def __init__(
        self,
        session_id: str,
        controller: BrowserAutomationController,
        tools: ToolRegistry,
    ) -> None:
        self.session_id = session_id
        self.controller = controller
        self.tools = tools
        self.created_at = time.time()
        self.last_activity = self.created_at
        self.protocol_version = DEFAULT_PROTOCOL_VERSION
        self.client_info: Dict[str, Any] = {}
        self._initialized = False
        self._min_level = "debug"
        self._inbox: "asyncio.Queue[Optional[_Exchange]]" = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._busy = False
        self._stream: Optional[asyncio.Queue] = None
        self._closed = False
        self._close_callbacks: List[Callable[[str], None]] = []

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def busy(self) -> bool:
        """Whether a message is running or waiting in the inbox."""
        return self._busy or not self._inbox.empty()

    @property
    def has_stream(self) -> bool:
        return self._stream is not None

    def on_close(self, callback: Callable[[str], None]) -> None:
        """Register ``callback(session_id)`` to run once the transport has closed."""
        self._close_callbacks.append(callback)

    def submit(self, message: JsonRpcMessage, stream_progress: bool = False) -> Any:
        """
        Queue a message behind everything already submitted to this session.

        Args:
            message: Decoded JSON-RPC message
            stream_progress: Deliver the call's progress notifications through the
                returned outbox rather than the standalone stream

        Returns:
            The message's outbox; ``None`` is its last item

        Raises:
            SessionError: If the transport is closed
        """
        if self._closed:
            raise SessionError(f"Session {self.session_id} is closed")
        self.last_activity = time.time()
        outbox: Any = asyncio.Queue()
        self._inbox.put_nowait(_Exchange(message, outbox, stream_progress))
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(
                self._run(), name=f"tubeshot-session-{self.session_id}"
            )
        return outbox

    def open_stream(self) -> asyncio.Queue:
        """
        Open the standalone server-push stream.

        Raises:
            SessionError: If the session is closed or a stream is already open
        """
        if self._closed:
            raise SessionError(f"Session {self.session_id} is closed")
        if self._stream is not None:
            raise SessionError("Conflict: Only one SSE stream is allowed per session")
        self.last_activity = time.time()
        self._stream = asyncio.Queue()
        return self._stream

    def release_stream(self, stream: asyncio.Queue) -> None:
        if self._stream is stream:
            self._stream = None

    def push(self, message: Dict[str, Any]) -> bool:
        """Send ``message`` on the standalone stream; False when none is open."""
        if self._stream is None:
            return False
        self._stream.put_nowait(message)
        return True

    async def close(self) -> None:
        """
        Finish queued work, release the browser and notify close callbacks.

        In-flight and queued calls run to completion first; nothing is
        cancelled midway. Calling close again is a no-op.
        """
        if self._closed:
            return
        self._closed = True
        logger.info(f"Closing transport for session {self.session_id}")

        self._inbox.put_nowait(None)
        try:
            if self._worker is not None:
                await self._worker
            if self._stream is not None:
                self._stream.put_nowait(None)
                self._stream = None
            await self.controller.cleanup()
        finally:
            for callback in self._close_callbacks:
                callback(self.session_id)

    async def _run(self) -> None:
        while True:
            exchange = await self._inbox.get()
            if exchange is None:
                return
            self._busy = True
            try:
                await self._process(exchange)
            except Exception as e:
                logger.error(
                    f"Unhandled error in session {self.session_id}: {e}", exc_info=True
                )
                if exchange.message.is_request:
                    exchange.outbox.put_nowait(
                        error_envelope(INTERNAL_ERROR, "Internal error", exchange.message.id)
                    )
            finally:
                self._busy = False
                exchange.outbox.put_nowait(None)

    async def _process(self, exchange: _Exchange) -> None:
        message = exchange.message
        if message.is_notification:
            self._handle_notification(message)
            return
        if not message.is_request:
            # A client response; this server never sends requests that await one.
            logger.debug(f"Ignoring client response in session {self.session_id}")
            return
        exchange.outbox.put_nowait(await self._dispatch(exchange))

    def _handle_notification(self, message: JsonRpcMessage) -> None:
        if message.method == "notifications/initialized":
            logger.debug(f"Session {self.session_id} confirmed initialization")
        elif message.method == "notifications/cancelled":
            # Calls are never interrupted once started.
            logger.debug(f"Cancellation ignored in session {self.session_id}")
        else:
            logger.debug(f"Unhandled notification {message.method}")

    async def _dispatch(self, exchange: _Exchange) -> Dict[str, Any]:
        message = exchange.message
        method = message.method
        params = message.params or {}

        if method == "initialize":
            if self._initialized:
                return error_envelope(
                    INVALID_REQUEST, "Invalid Request: Server already initialized", message.id
                )
            return result_envelope(self._initialize(params), message.id)
        if method == "ping":
            return result_envelope({}, message.id)
        if method == "tools/list":
            tools = [
                tool.model_dump(by_alias=True, exclude_none=True, mode="json")
                for tool in self.tools.list_tools()
            ]
            return result_envelope({"tools": tools}, message.id)
        if method == "tools/call":
            return await self._call_tool(exchange)
        if method == "logging/setLevel":
            level = params.get("level")
            if level not in LEVELS:
                return error_envelope(INVALID_PARAMS, f"Invalid log level: {level}", message.id)
            self._min_level = level
            return result_envelope({}, message.id)
        return error_envelope(METHOD_NOT_FOUND, f"Method not found: {method}", message.id)

    def _initialize(self, params: Dict[str, Any]) -> Dict[str, Any]:
        requested = params.get("protocolVersion")
        self.protocol_version = (
            requested if requested in SUPPORTED_PROTOCOL_VERSIONS else DEFAULT_PROTOCOL_VERSION
        )
        self.client_info = params.get("clientInfo") or {}
        self._initialized = True
        logger.info(
            f"Session {self.session_id} initialized "
            f"(protocol {self.protocol_version}, client {self.client_info.get('name', 'unknown')})"
        )
        return initialize_result(self.protocol_version, SERVER_NAME, __version__)

    async def _call_tool(self, exchange: _Exchange) -> Dict[str, Any]:
        message = exchange.message
        params = message.params or {}
        name = params.get("name")
        arguments = params.get("arguments")
        if not isinstance(name, str):
            return error_envelope(INVALID_PARAMS, "Invalid params: missing tool name", message.id)
        if arguments is not None and not isinstance(arguments, dict):
            return error_envelope(
                INVALID_PARAMS, "Invalid params: arguments must be an object", message.id
            )

        meta = params.get("_meta") or {}
        progress_token = meta.get("progressToken") if isinstance(meta, dict) else None

        channel = ProgressChannel()
        forwarder = asyncio.create_task(
            self._forward_progress(channel, exchange, progress_token)
        )
        try:
            result = await self.tools.call(
                name, arguments, ToolContext(controller=self.controller, progress=channel)
            )
        except InvalidToolCallError as e:
            return error_envelope(INVALID_PARAMS, str(e), message.id)
        finally:
            channel.close()
            await forwarder
        return result_envelope(result.to_wire(), message.id)

    async def _forward_progress(
        self, channel: ProgressChannel, exchange: _Exchange, progress_token: Any
    ) -> None:
        count = 0
        async for event in channel:
            count += 1
            for note in self._render(event, progress_token, count):
                if exchange.stream_progress:
                    exchange.outbox.put_nowait(note)
                elif not self.push(note):
                    logger.debug(f"No stream open for session {self.session_id}: {event.message}")

    def _render(
        self, event: ProgressEvent, progress_token: Any, count: int
    ) -> List[Dict[str, Any]]:
        notes = []
        if level_rank(event.level) >= level_rank(self._min_level):
            notes.append(event.to_notification(SERVER_NAME))
        if progress_token is not None:
            notes.append({
                "jsonrpc": "2.0",
                "method": "notifications/progress",
                "params": {
                    "progressToken": progress_token,
                    "progress": count,
                    "message": event.message,
                },
            })
        return notes
