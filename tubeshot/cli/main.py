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
Tubeshot unified CLI.

Usage:
    tubeshot serve [OPTIONS]      # Start the protocol server
    tubeshot demo URL [OPTIONS]   # Capture a video frame through a running server
    tubeshot version              # Show version information

Examples:
    # Start the server on the default port
    tubeshot serve

    # Serve with a config file and JSON logs
    tubeshot serve --config tubeshot.yaml --log-format json

    # Capture a frame at 1080p
    tubeshot demo "https://www.youtube.com/watch?v=nM_6OzE6OJY&t=83" --quality hd1080
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import platform
import sys
from typing import Any, Dict, List, Optional

from tubeshot.core.quality import QualityTier
from tubeshot.exceptions import TubeshotError
from tubeshot.utils.logger import LogFormat, configure_logging


def get_version() -> str:
    """Get the Tubeshot version."""
    import tubeshot
    return getattr(tubeshot, "__version__", "unknown")


def cmd_version(args: argparse.Namespace) -> int:
    """Show version information."""
    version = get_version()

    if args.json:
        info = {
            "tubeshot": version,
            "python": platform.python_version(),
            "platform": platform.system(),
            "architecture": platform.machine(),
        }
        print(json.dumps(info, indent=2))
    else:
        print(f"Tubeshot {version}")

    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the protocol server."""
    import uvicorn

    from tubeshot.service.app import create_app
    from tubeshot.service.config import get_config, load_config_from_file

    config = load_config_from_file(args.config) if args.config else get_config()

    overrides: Dict[str, Any] = {}
    for name in ("host", "port", "log_level", "log_format"):
        value = getattr(args, name)
        if value is not None:
            overrides[name] = value
    if overrides:
        config = config.model_copy(update=overrides)

    configure_logging(level=config.log_level, log_format=LogFormat(config.log_format))

    print(f"Tubeshot server listening on http://{config.host}:{config.port}{config.endpoint_path}")
    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )
    return 0


async def run_demo(
    address: str,
    endpoint: str,
    output_path: Optional[str] = None,
    wait_millis: Optional[float] = None,
    quality: Optional[str] = None,
) -> int:
    """Connect, list tools, capture, read video info, clean up and close."""
    from tubeshot.client import TubeshotClient

    def show_progress(params: Dict[str, Any]) -> None:
        print(f"  [{params.get('level', 'info')}] {params.get('data')}")

    async with TubeshotClient(endpoint) as client:
        print(f"Connecting to Tubeshot server at {endpoint}...")
        await client.connect()
        print(f"Connected (session {client.session_id})")

        tools = await client.list_tools()
        print("Available tools:")
        for tool in tools:
            print(f"  - {tool['name']}: {tool.get('description', '')}")

        print(f"Taking screenshot of: {address}")
        shot = await client.take_screenshot(
            address,
            output_path=output_path,
            wait_millis=wait_millis,
            quality=quality,
            on_progress=show_progress,
        )
        print(("Screenshot failed: " if shot.is_error else "Screenshot completed:\n") + shot.text)

        info = await client.get_video_info(on_progress=show_progress)
        print(("Failed to get video info: " if info.is_error else "") + info.text)

        cleaned = await client.cleanup(on_progress=show_progress)
        print(cleaned.text)

    print("Disconnected")
    return 1 if shot.is_error else 0


def cmd_demo(args: argparse.Namespace) -> int:
    """Run the demonstration client."""
    configure_logging(level="WARNING", log_format=LogFormat.HUMAN)
    try:
        return asyncio.run(run_demo(
            args.url,
            endpoint=args.endpoint,
            output_path=args.output,
            wait_millis=args.wait,
            quality=args.quality,
        ))
    except (TubeshotError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser."""
    parser = argparse.ArgumentParser(
        prog="tubeshot",
        description="Tubeshot - video player screenshots over a session-based tool protocol",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  serve       Start the protocol server
  demo        Capture a frame through a running server
  version     Show version information

Examples:
  tubeshot serve --port 3000
  tubeshot demo "https://www.youtube.com/watch?v=nM_6OzE6OJY&t=83" --quality hd1080
""",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    version_parser = subparsers.add_parser("version", help="Show version information")
    version_parser.add_argument("--json", action="store_true", help="Output as JSON")
    version_parser.set_defaults(func=cmd_version)

    serve_parser = subparsers.add_parser("serve", help="Start the protocol server")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: 127.0.0.1)")
    serve_parser.add_argument("--port", type=int, default=None, help="Port (default: 3000)")
    serve_parser.add_argument("--config", default=None, help="YAML or JSON configuration file")
    serve_parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("TUBESHOT_LOG_LEVEL"),
        help="Set logging level (default: INFO)",
    )
    serve_parser.add_argument(
        "--log-format",
        choices=[f.value for f in LogFormat],
        default=None,
        help="Log format (default: human)",
    )
    serve_parser.set_defaults(func=cmd_serve)

    demo_parser = subparsers.add_parser("demo", help="Capture a frame through a running server")
    demo_parser.add_argument("url", help="Video page address")
    demo_parser.add_argument(
        "--endpoint", default="http://localhost:3000/mcp", help="Server endpoint URL"
    )
    demo_parser.add_argument("--output", default=None, help="Screenshot output path")
    demo_parser.add_argument("--wait", type=float, default=None, help="Settle delay in milliseconds")
    demo_parser.add_argument(
        "--quality",
        choices=[tier.value for tier in QualityTier],
        default=None,
        help="Requested quality tier (default: highest)",
    )
    demo_parser.set_defaults(func=cmd_demo)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the unified CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if hasattr(args, "func"):
        sys.exit(args.func(args))
    parser.print_help()
    sys.exit(0)


if __name__ == "__main__":
    main()
