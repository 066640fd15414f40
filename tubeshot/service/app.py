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
FastAPI application exposing the Tubeshot tools over streamable HTTP.

A single endpoint path accepts JSON-RPC messages:

- ``POST``: an ``initialize`` request without a session header opens a new
  session whose id comes back in the ``Mcp-Session-Id`` header; any other
  message must carry a known session id.
- ``GET``: opens the session's standalone server-push stream.
- ``DELETE``: closes the session and its browser.

Example Usage:
    Start the service:
    ```bash
    tubeshot serve --port 3000
    # or
    uvicorn --factory tubeshot.service.app:create_app --port 3000
    ```

    Open a session:
    ```bash
    curl -i -X POST http://localhost:3000/mcp \\
      -H "Content-Type: application/json" \\
      -H "Accept: application/json, text/event-stream" \\
      -d '{"jsonrpc": "2.0", "id": 1, "method": "initialize",
           "params": {"protocolVersion": "2025-03-26", "capabilities": {},
                      "clientInfo": {"name": "curl", "version": "1.0"}}}'
    ```
"""

from __future__ import annotations

import asyncio
import json
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse
from pydantic import ValidationError

from tubeshot import __version__
from tubeshot.core.controller import BrowserAutomationController
from tubeshot.exceptions import SessionError, SessionLimitError
from tubeshot.service.config import ServiceConfig, get_config
from tubeshot.service.models import (
    BAD_REQUEST,
    INTERNAL_ERROR,
    INVALID_REQUEST,
    PARSE_ERROR,
    HealthResponse,
    JsonRpcMessage,
    error_envelope,
    is_initialize_request,
)
from tubeshot.service.session_manager import ResolutionKind, SessionRegistry
from tubeshot.service.tools import ToolRegistry, create_default_registry
from tubeshot.service.transport import SessionTransport, format_sse
from tubeshot.utils.logger import logger

SESSION_HEADER = "Mcp-Session-Id"
INVALID_SESSION_TEXT = "Invalid or missing session ID"

_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
    "Connection": "keep-alive",
}

ControllerFactory = Callable[[], BrowserAutomationController]


def _rpc_error(status_code: int, code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_envelope(code, message))


async def _relay(
    outbox: Any, keepalive_seconds: float
) -> AsyncIterator[str]:
    """Frame an exchange's outbox as SSE, with keepalive comments while idle."""
    while True:
        try:
            item = await asyncio.wait_for(outbox.get(), timeout=keepalive_seconds)
        except asyncio.TimeoutError:
            yield ": keepalive\n\n"
            continue
        if item is None:
            return
        yield format_sse(item)


async def _final_response(outbox: Any) -> Dict[str, Any]:
    response: Optional[Dict[str, Any]] = None
    while True:
        item = await outbox.get()
        if item is None:
            break
        if "id" in item:
            response = item
    if response is None:
        return error_envelope(INTERNAL_ERROR, "Internal error")
    return response


def create_app(
    config: Optional[ServiceConfig] = None,
    controller_factory: Optional[ControllerFactory] = None,
    tools: Optional[ToolRegistry] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        config: Service configuration (defaults to the global one)
        controller_factory: Builds the browser controller of each new session
        tools: Tool catalog shared by all sessions

    Returns:
        FastAPI application with the session registry on ``app.state.registry``
    """
    config = config or get_config()
    tools = tools or create_default_registry()
    if controller_factory is None:
        def controller_factory() -> BrowserAutomationController:
            return BrowserAutomationController.from_config(config)

    def transport_factory(session_id: str) -> SessionTransport:
        return SessionTransport(session_id, controller_factory(), tools)

    registry = SessionRegistry(
        transport_factory,
        max_sessions=config.max_sessions,
        session_timeout=config.session_timeout,
    )
    keepalive = config.keepalive_seconds

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting Tubeshot service...")
        registry.start()
        logger.info(f"Tubeshot service listening on {config.endpoint_path}")

        yield

        logger.info("Shutting down server...")
        await registry.close_all()
        logger.info("Server shutdown complete")

    app = FastAPI(
        title="Tubeshot",
        description="Video page screenshots over a session-based tool protocol.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.registry = registry
    app.state.start_time = time.time()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
        expose_headers=[SESSION_HEADER],
    )

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """Global exception handler."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return _rpc_error(
            status.HTTP_500_INTERNAL_SERVER_ERROR, INTERNAL_ERROR, "Internal server error"
        )

    @app.post(config.endpoint_path)
    async def handle_post(request: Request) -> Response:
        """Process one JSON-RPC message."""
        try:
            try:
                body = json.loads(await request.body())
            except (ValueError, UnicodeDecodeError):
                return _rpc_error(
                    status.HTTP_400_BAD_REQUEST, PARSE_ERROR, "Parse error: Invalid JSON"
                )

            resolution = registry.resolve(
                request.headers.get(SESSION_HEADER), is_initialize_request(body)
            )
            if resolution.kind == ResolutionKind.INVALID:
                return _rpc_error(
                    status.HTTP_400_BAD_REQUEST,
                    BAD_REQUEST,
                    "Bad Request: No valid session ID provided",
                )

            try:
                message = JsonRpcMessage.model_validate(body)
            except ValidationError:
                return _rpc_error(
                    status.HTTP_400_BAD_REQUEST,
                    INVALID_REQUEST,
                    "Invalid Request: not a JSON-RPC 2.0 message",
                )

            if resolution.kind == ResolutionKind.NEEDS_INIT:
                try:
                    transport = registry.create()
                except SessionLimitError as e:
                    logger.warning(str(e))
                    return _rpc_error(status.HTTP_503_SERVICE_UNAVAILABLE, BAD_REQUEST, str(e))
            else:
                transport = resolution.transport

            headers = {SESSION_HEADER: transport.session_id}

            if not message.is_request:
                transport.submit(message)
                return Response(status_code=status.HTTP_202_ACCEPTED, headers=headers)

            wants_stream = "text/event-stream" in request.headers.get("accept", "")
            outbox = transport.submit(message, stream_progress=wants_stream)
            if wants_stream:
                return StreamingResponse(
                    _relay(outbox, keepalive),
                    media_type="text/event-stream",
                    headers={**_SSE_HEADERS, **headers},
                )
            return JSONResponse(content=await _final_response(outbox), headers=headers)
        except SessionError:
            # The session closed between lookup and submission.
            return _rpc_error(
                status.HTTP_400_BAD_REQUEST,
                BAD_REQUEST,
                "Bad Request: No valid session ID provided",
            )
        except Exception as e:
            logger.error(f"Error handling request: {e}", exc_info=True)
            return _rpc_error(
                status.HTTP_500_INTERNAL_SERVER_ERROR, INTERNAL_ERROR, "Internal server error"
            )

    @app.get(config.endpoint_path)
    async def handle_stream(request: Request) -> Response:
        """Open the standalone server-push stream of a session."""
        resolution = registry.resolve(request.headers.get(SESSION_HEADER), False)
        if resolution.kind != ResolutionKind.EXISTING:
            return PlainTextResponse(INVALID_SESSION_TEXT, status_code=status.HTTP_400_BAD_REQUEST)

        transport = resolution.transport
        try:
            stream = transport.open_stream()
        except SessionError as e:
            return PlainTextResponse(str(e), status_code=status.HTTP_409_CONFLICT)

        async def event_stream():
            try:
                while True:
                    try:
                        item = await asyncio.wait_for(stream.get(), timeout=keepalive)
                    except asyncio.TimeoutError:
                        if await request.is_disconnected():
                            break
                        yield ": keepalive\n\n"
                        continue
                    if item is None:
                        break
                    yield format_sse(item)
            finally:
                transport.release_stream(stream)

        return StreamingResponse(
            event_stream(),
            media_type="text/event-stream",
            headers={**_SSE_HEADERS, SESSION_HEADER: transport.session_id},
        )

    @app.delete(config.endpoint_path)
    async def handle_delete(request: Request) -> Response:
        """Terminate a session."""
        session_id = request.headers.get(SESSION_HEADER)
        resolution = registry.resolve(session_id, False)
        if resolution.kind != ResolutionKind.EXISTING:
            return PlainTextResponse(INVALID_SESSION_TEXT, status_code=status.HTTP_400_BAD_REQUEST)

        logger.info(f"Received session termination request for session {session_id}")
        try:
            await registry.remove(session_id)
        except Exception as e:
            logger.error(f"Error handling session termination: {e}", exc_info=True)
            return PlainTextResponse(
                "Error processing session termination",
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )
        return Response(status_code=status.HTTP_200_OK)

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check() -> HealthResponse:
        """Service status and session count."""
        return HealthResponse(
            status="healthy",
            version=__version__,
            uptime_seconds=time.time() - app.state.start_time,
            active_sessions=registry.get_active_session_count(),
            max_sessions=registry.max_sessions,
        )

    return app
