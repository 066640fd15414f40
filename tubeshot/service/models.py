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
Pydantic models for the Tubeshot protocol endpoint.

This module defines the JSON-RPC envelope, the tool argument schemas and
the tool result shapes. Argument models forbid unknown fields so a bad
call is rejected before the browser is touched.

Example:
    >>> from tubeshot.service.models import LoadAndScreenshotArgs
    >>> args = LoadAndScreenshotArgs.model_validate(
    ...     {"address": "https://youtu.be/nM_6OzE6OJY?t=83", "quality": "hd1080"}
    ... )
    >>> args.wait_millis
    3000
"""

from __future__ import annotations

from typing import Any, Dict, Literal, Optional, Union

from mcp import types
from pydantic import BaseModel, ConfigDict, Field

from tubeshot.core.quality import QualityTier

JSONRPC_VERSION = "2.0"

# JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
BAD_REQUEST = -32000

SUPPORTED_PROTOCOL_VERSIONS = ("2025-06-18", "2025-03-26", "2024-11-05")
DEFAULT_PROTOCOL_VERSION = "2025-03-26"

RequestId = Union[str, int]


class JsonRpcMessage(BaseModel):
    """A single JSON-RPC 2.0 message (request, notification or response)."""

    model_config = ConfigDict(extra="allow")

    jsonrpc: Literal["2.0"]
    id: Optional[RequestId] = None
    method: Optional[str] = None
    params: Optional[Dict[str, Any]] = None
    result: Optional[Any] = None
    error: Optional[Dict[str, Any]] = None

    @property
    def is_request(self) -> bool:
        return self.method is not None and self.id is not None

    @property
    def is_notification(self) -> bool:
        return self.method is not None and self.id is None

    @property
    def is_initialize(self) -> bool:
        return self.is_request and self.method == "initialize"


def is_initialize_request(body: Any) -> bool:
    """Whether ``body`` is a well-formed ``initialize`` request."""
    if not isinstance(body, dict):
        return False
    return (
        body.get("jsonrpc") == JSONRPC_VERSION
        and body.get("method") == "initialize"
        and isinstance(body.get("id"), (str, int))
        and not isinstance(body.get("id"), bool)
        and isinstance(body.get("params", {}), dict)
    )


def error_envelope(code: int, message: str, request_id: Optional[RequestId] = None) -> Dict[str, Any]:
    """JSON-RPC error response body."""
    return {
        "jsonrpc": JSONRPC_VERSION,
        "error": {"code": code, "message": message},
        "id": request_id,
    }


def result_envelope(result: Any, request_id: RequestId) -> Dict[str, Any]:
    """JSON-RPC success response body."""
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


class LoadAndScreenshotArgs(BaseModel):
    """Arguments of the ``load-and-screenshot`` tool."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    address: str = Field(
        ...,
        min_length=1,
        description="Video page URL (can include a timestamp parameter like ?t=83)",
    )
    output_path: Optional[str] = Field(
        None,
        alias="outputPath",
        description="Output path for the screenshot (defaults to ./youtube-screenshot-{timestamp}.png)",
    )
    wait_millis: float = Field(
        3000,
        alias="waitMillis",
        ge=0,
        description="Time to wait after loading before taking the screenshot (milliseconds)",
    )
    quality: QualityTier = Field(
        QualityTier.HIGHEST,
        description="Video quality preference",
    )


class NoArgs(BaseModel):
    """Arguments of tools that take none."""

    model_config = ConfigDict(extra="forbid")


class CallToolResult(types.CallToolResult):
    """Result of a ``tools/call`` request, with text-only helpers."""

    @classmethod
    def text(cls, text: str, is_error: bool = False) -> "CallToolResult":
        return cls(content=[types.TextContent(type="text", text=text)], isError=is_error)

    @property
    def is_error(self) -> bool:
        return bool(self.isError)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


def tool_definition(name: str, description: str, input_schema: Dict[str, Any]) -> types.Tool:
    """Entry of a ``tools/list`` result."""
    return types.Tool(name=name, description=description, inputSchema=input_schema)


def initialize_result(protocol_version: str, server_name: str, server_version: str) -> Dict[str, Any]:
    """Body of the ``initialize`` response: logging and a fixed tool list."""
    result = types.InitializeResult(
        protocolVersion=protocol_version,
        capabilities=types.ServerCapabilities(
            logging=types.LoggingCapability(),
            tools=types.ToolsCapability(listChanged=False),
        ),
        serverInfo=types.Implementation(name=server_name, version=server_version),
    )
    return result.model_dump(by_alias=True, exclude_none=True, mode="json")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Service status")
    version: str = Field(..., description="Service version")
    uptime_seconds: float = Field(..., description="Service uptime")
    active_sessions: int = Field(..., description="Number of active sessions")
    max_sessions: int = Field(..., description="Session limit")
