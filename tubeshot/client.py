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
Tubeshot HTTP client.

Speaks the session-based JSON-RPC protocol of a Tubeshot server: opens a
session with ``initialize``, calls tools and relays progress notifications
to a callback, and terminates the session with DELETE. Responses may come
back as plain JSON or as a server-sent event stream; both are handled.

Example:
    >>> from tubeshot.client import TubeshotClient
    >>>
    >>> async with TubeshotClient("http://localhost:3000/mcp") as client:
    ...     await client.connect()
    ...     result = await client.take_screenshot(
    ...         "https://www.youtube.com/watch?v=nM_6OzE6OJY&t=83",
    ...         quality="hd1080",
    ...         on_progress=lambda params: print(params["data"]),
    ...     )
    ...     print(result.text)
"""

from __future__ import annotations

import inspect
import itertools
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import aiohttp
from mcp import types
from pydantic import ValidationError

from tubeshot import __version__
from tubeshot.exceptions import ProtocolError
from tubeshot.utils.logger import logger

SESSION_HEADER = "Mcp-Session-Id"
PROTOCOL_VERSION = "2025-03-26"

ProgressCallback = Callable[[Dict[str, Any]], Any]


@dataclass
class ToolResult:
    """Result of a tool call."""

    text: str
    is_error: bool = False
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_result(cls, result: Dict[str, Any]) -> "ToolResult":
        try:
            parsed = types.CallToolResult.model_validate(result)
        except ValidationError as e:
            raise ProtocolError(f"Malformed tool result: {e}") from e
        texts = [item.text for item in parsed.content if isinstance(item, types.TextContent)]
        return cls(text="\n".join(texts), is_error=parsed.isError, raw=result)


class TubeshotClient:
    """Async client for a Tubeshot server.

    Example:
        >>> async with TubeshotClient() as client:
        ...     await client.connect()
        ...     tools = await client.list_tools()
    """

    def __init__(
        self,
        endpoint: str = "http://localhost:3000/mcp",
        timeout: float = 120.0,
        client_name: str = "tubeshot-client",
    ) -> None:
        """Initialize the client.

        Args:
            endpoint: Full URL of the protocol endpoint
            timeout: Request timeout in seconds
            client_name: Name announced during initialization
        """
        self.endpoint = endpoint
        self.timeout = timeout
        self.client_name = client_name
        self.server_info: Dict[str, Any] = {}
        self._ids = itertools.count(1)
        self._session_id: Optional[str] = None
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    # ==================== Lifecycle ====================

    async def start(self) -> None:
        """Open the HTTP connection pool."""
        if self._session is not None:
            return
        self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))

    async def stop(self) -> None:
        """Close the HTTP connection pool."""
        if self._session is None:
            return
        await self._session.close()
        self._session = None

    async def __aenter__(self) -> "TubeshotClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        try:
            await self.close()
        finally:
            await self.stop()

    # ==================== Session ====================

    async def connect(self) -> Dict[str, Any]:
        """Open a session.

        Returns:
            The server's ``initialize`` result
        """
        await self.start()
        logger.info(f"Connecting to Tubeshot server at {self.endpoint}...")
        params = types.InitializeRequestParams(
            protocolVersion=PROTOCOL_VERSION,
            capabilities=types.ClientCapabilities(),
            clientInfo=types.Implementation(name=self.client_name, version=__version__),
        )
        result = await self._request(
            "initialize", params.model_dump(by_alias=True, exclude_none=True, mode="json")
        )
        if self._session_id is None:
            raise ProtocolError("Server did not assign a session ID")
        await self._notify("notifications/initialized")
        self.server_info = result.get("serverInfo", {})
        logger.info(f"Connected, session {self._session_id}")
        return result

    async def close(self) -> None:
        """Terminate the session on the server. No-op without a session."""
        if self._session_id is None or self._session is None:
            return
        session_id, self._session_id = self._session_id, None
        async with self._session.delete(
            self.endpoint, headers={SESSION_HEADER: session_id}
        ) as response:
            if response.status >= 400:
                text = await response.text()
                raise ProtocolError(f"Session termination failed (HTTP {response.status}): {text}")
        logger.info(f"Session {session_id} terminated")

    # ==================== Tools ====================

    async def list_tools(self) -> List[Dict[str, Any]]:
        result = await self._request("tools/list")
        return result.get("tools", [])

    async def call_tool(
        self,
        name: str,
        arguments: Optional[Dict[str, Any]] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ToolResult:
        """Call a tool.

        Args:
            name: Tool name
            arguments: Tool arguments
            on_progress: Receives the ``params`` of every progress notification

        Returns:
            ToolResult; tool-level failures have ``is_error`` set

        Raises:
            ProtocolError: If the server rejects the call itself
        """
        result = await self._request(
            "tools/call", {"name": name, "arguments": arguments or {}}, on_progress
        )
        return ToolResult.from_result(result)

    async def take_screenshot(
        self,
        address: str,
        output_path: Optional[str] = None,
        wait_millis: Optional[float] = None,
        quality: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ToolResult:
        arguments: Dict[str, Any] = {"address": address}
        if output_path is not None:
            arguments["outputPath"] = output_path
        if wait_millis is not None:
            arguments["waitMillis"] = wait_millis
        if quality is not None:
            arguments["quality"] = quality
        return await self.call_tool("load-and-screenshot", arguments, on_progress)

    async def get_video_info(self, on_progress: Optional[ProgressCallback] = None) -> ToolResult:
        return await self.call_tool("get-video-info", {}, on_progress)

    async def cleanup(self, on_progress: Optional[ProgressCallback] = None) -> ToolResult:
        return await self.call_tool("cleanup", {}, on_progress)

    # ==================== Transport ====================

    async def _request(
        self,
        method: str,
        params: Optional[Dict[str, Any]] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Dict[str, Any]:
        request_id = next(self._ids)
        payload: Dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
        if params is not None:
            payload["params"] = params

        message = await self._post(payload, on_progress)
        if message is None:
            raise ProtocolError(f"No response to {method}")
        if "error" in message:
            error = message["error"]
            raise ProtocolError(
                f"{method} failed: {error.get('message')}", details={"code": error.get("code")}
            )
        return message.get("result") or {}

    async def _notify(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        payload: Dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            payload["params"] = params
        await self._post(payload)

    async def _post(
        self, payload: Dict[str, Any], on_progress: Optional[ProgressCallback] = None
    ) -> Optional[Dict[str, Any]]:
        if self._session is None:
            raise RuntimeError("Client not started")

        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json, text/event-stream",
        }
        if self._session_id:
            headers[SESSION_HEADER] = self._session_id

        async with self._session.post(self.endpoint, json=payload, headers=headers) as response:
            session_id = response.headers.get(SESSION_HEADER)
            if session_id:
                self._session_id = session_id

            if response.status == 202:
                return None
            if response.status >= 400:
                text = await response.text()
                raise ProtocolError(f"HTTP {response.status}: {text}")

            if response.headers.get("Content-Type", "").startswith("text/event-stream"):
                return await self._read_stream(response, payload.get("id"), on_progress)
            return await response.json()

    async def _read_stream(
        self,
        response: aiohttp.ClientResponse,
        request_id: Any,
        on_progress: Optional[ProgressCallback],
    ) -> Dict[str, Any]:
        data_lines: List[str] = []
        async for raw in response.content:
            line = raw.decode("utf-8").rstrip("\r\n")
            if line.startswith(":"):
                continue
            if line.startswith("data:"):
                data_lines.append(line[5:].lstrip())
                continue
            if line or not data_lines:
                continue

            message = json.loads("\n".join(data_lines))
            data_lines = []
            if message.get("id") == request_id and ("result" in message or "error" in message):
                return message
            await self._handle_notification(message, on_progress)

        raise ProtocolError("Event stream ended without a response")

    @staticmethod
    async def _handle_notification(
        message: Dict[str, Any], on_progress: Optional[ProgressCallback]
    ) -> None:
        if message.get("method") != "notifications/message":
            logger.debug(f"Ignoring server message: {message.get('method')}")
            return
        if on_progress is None:
            return
        outcome = on_progress(message.get("params", {}))
        if inspect.isawaitable(outcome):
            await outcome
