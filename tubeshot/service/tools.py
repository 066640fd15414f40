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
Tool registry for the Tubeshot protocol endpoint.

Each tool pairs a name and description with a pydantic argument model and
an async handler. Arguments are validated against the model before the
handler runs; expected failures inside a handler come back as error
results (``isError``), never as exceptions.

Example:
    >>> registry = create_default_registry()
    >>> [tool.name for tool in registry.list_tools()]
    ['load-and-screenshot', 'get-video-info', 'cleanup']
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type

from mcp import types
from playwright.async_api import Error as PlaywrightError
from pydantic import BaseModel, ValidationError

from tubeshot.core.controller import BrowserAutomationController
from tubeshot.core.progress import ProgressChannel
from tubeshot.exceptions import TubeshotError
from tubeshot.service.models import (
    CallToolResult,
    LoadAndScreenshotArgs,
    NoArgs,
    tool_definition,
)
from tubeshot.utils.logger import logger

LOAD_AND_SCREENSHOT = "load-and-screenshot"
GET_VIDEO_INFO = "get-video-info"
CLEANUP = "cleanup"


class InvalidToolCallError(TubeshotError):
    """Unknown tool name or arguments that fail validation."""


@dataclass
class ToolContext:
    """What a handler may touch: its session's controller and progress channel."""

    controller: BrowserAutomationController
    progress: ProgressChannel


ToolHandler = Callable[[Any, ToolContext], Awaitable[CallToolResult]]


@dataclass
class ToolSpec:
    """A registered tool."""

    name: str
    description: str
    args_model: Type[BaseModel]
    handler: ToolHandler

    def definition(self) -> types.Tool:
        return tool_definition(
            self.name,
            self.description,
            self.args_model.model_json_schema(by_alias=True),
        )


class ToolRegistry:
    """Catalog of callable tools, in registration order."""

    def __init__(self) -> None:
        self._tools: Dict[str, ToolSpec] = {}

    def register(self, spec: ToolSpec) -> None:
        """
        Register a tool.

        Raises:
            ValueError: If a tool with the same name is already registered
        """
        if spec.name in self._tools:
            raise ValueError(f"Tool '{spec.name}' is already registered")
        self._tools[spec.name] = spec

    def get(self, name: str) -> Optional[ToolSpec]:
        return self._tools.get(name)

    def list_tools(self) -> List[types.Tool]:
        return [spec.definition() for spec in self._tools.values()]

    def validate(
        self, name: str, arguments: Optional[Dict[str, Any]]
    ) -> Tuple[ToolSpec, BaseModel]:
        """
        Resolve ``name`` and validate ``arguments`` without side effects.

        Raises:
            InvalidToolCallError: If the tool is unknown or the arguments are invalid
        """
        spec = self._tools.get(name)
        if spec is None:
            raise InvalidToolCallError(f"Tool {name} not found")
        try:
            args = spec.args_model.model_validate(arguments or {})
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in err['loc']) or 'arguments'}: {err['msg']}"
                for err in e.errors()
            )
            raise InvalidToolCallError(
                f"Invalid arguments for tool {name}: {problems}"
            ) from e
        return spec, args

    async def call(
        self, name: str, arguments: Optional[Dict[str, Any]], context: ToolContext
    ) -> CallToolResult:
        """Validate then run a tool."""
        spec, args = self.validate(name, arguments)
        logger.debug(f"Calling tool {name}")
        return await spec.handler(args, context)


async def _load_and_screenshot(args: LoadAndScreenshotArgs, ctx: ToolContext) -> CallToolResult:
    try:
        result = await ctx.controller.load_and_capture(
            args.address,
            output_path=args.output_path,
            settle_ms=args.wait_millis,
            quality=args.quality,
            progress=ctx.progress,
        )
    except (TubeshotError, PlaywrightError) as e:
        logger.error(f"{LOAD_AND_SCREENSHOT} failed for {args.address}: {e}")
        await ctx.progress.error(f"Error: {e}")
        return CallToolResult.text(f"Failed to take screenshot: {e}", is_error=True)
    return CallToolResult.text(result.summary())


async def _get_video_info(args: NoArgs, ctx: ToolContext) -> CallToolResult:
    try:
        if ctx.controller.has_content:
            await ctx.progress.info("Extracting video information...")
        info = await ctx.controller.describe_current()
    except (TubeshotError, PlaywrightError) as e:
        await ctx.progress.error(f"Error: {e}")
        return CallToolResult.text(f"Failed to get video info: {e}", is_error=True)
    return CallToolResult.text(info.summary())


async def _cleanup(args: NoArgs, ctx: ToolContext) -> CallToolResult:
    try:
        await ctx.progress.info("Cleaning up browser resources...")
        await ctx.controller.cleanup()
    except (TubeshotError, PlaywrightError) as e:
        logger.error(f"{CLEANUP} failed: {e}")
        await ctx.progress.error(f"Error: {e}")
        return CallToolResult.text(f"Failed to cleanup browser: {e}", is_error=True)
    return CallToolResult.text("Browser resources cleaned up successfully")


def create_default_registry() -> ToolRegistry:
    """Registry with the three video tools."""
    registry = ToolRegistry()
    registry.register(ToolSpec(
        name=LOAD_AND_SCREENSHOT,
        description="Load a video page at a specific address and take a screenshot of the player",
        args_model=LoadAndScreenshotArgs,
        handler=_load_and_screenshot,
    ))
    registry.register(ToolSpec(
        name=GET_VIDEO_INFO,
        description="Get information about the currently loaded video",
        args_model=NoArgs,
        handler=_get_video_info,
    ))
    registry.register(ToolSpec(
        name=CLEANUP,
        description="Close the browser and clean up resources",
        args_model=NoArgs,
        handler=_cleanup,
    ))
    return registry
