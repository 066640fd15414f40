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
Service configuration management for Tubeshot.

Configuration is loaded from environment variables, from a YAML/JSON file,
or built programmatically.

Example:
    >>> from tubeshot.service.config import ServiceConfig
    >>> config = ServiceConfig()  # Loads from environment
    >>> print(config.browser.viewport_width)
    1920
"""

from __future__ import annotations

import os
from typing import List, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


DEFAULT_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
]


class BrowserConfig(BaseModel):
    """Configuration for the per-session headless browser.

    Attributes:
        headless: Whether to run the browser without a window
        viewport_width: Fixed viewport width in pixels
        viewport_height: Fixed viewport height in pixels
        launch_args: Chromium command-line switches
        user_agent: Optional user agent override
        navigation_timeout_ms: Upper bound for page navigation
        wait_until: Navigation load state to wait for
        player_timeout_ms: Upper bound for the video element to appear
    """

    headless: bool = Field(default=True, description="Run browser in headless mode")
    viewport_width: int = Field(default=1920, ge=320, le=7680, description="Viewport width")
    viewport_height: int = Field(default=1080, ge=240, le=4320, description="Viewport height")
    launch_args: List[str] = Field(default_factory=lambda: list(DEFAULT_LAUNCH_ARGS))
    user_agent: Optional[str] = Field(default=None, description="User agent override")
    navigation_timeout_ms: int = Field(default=30000, ge=1000, description="Navigation timeout")
    wait_until: str = Field(default="networkidle", description="Navigation wait condition")
    player_timeout_ms: int = Field(default=10000, ge=100, description="Video element timeout")


class QualityConfig(BaseModel):
    """Time budgets for the settings-menu quality negotiation.

    Attributes:
        settings_timeout_ms: Budget for opening the settings menu and its quality item
        menu_pause_ms: Pause after each menu click so the menu can animate open
        option_timeout_ms: Budget for clicking a single quality entry
    """

    settings_timeout_ms: int = Field(default=5000, ge=0)
    menu_pause_ms: int = Field(default=1000, ge=0)
    option_timeout_ms: int = Field(default=3000, ge=0)


class ServiceConfig(BaseSettings):
    """Main service configuration loaded from environment variables.

    Environment variables are prefixed with TUBESHOT_ and use uppercase.
    Nested configs use double underscore as separator.

    Example:
        TUBESHOT_PORT=3000
        TUBESHOT_ENDPOINT_PATH=/mcp
        TUBESHOT_BROWSER__HEADLESS=false
        TUBESHOT_QUALITY__OPTION_TIMEOUT_MS=5000
    """

    # Service settings
    host: str = Field(default="127.0.0.1", description="Service host")
    port: int = Field(default=3000, ge=1, le=65535, description="Service port")
    endpoint_path: str = Field(default="/mcp", description="Protocol endpoint path")
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="human", description="Log format: json, human or text")

    # Session settings
    max_sessions: int = Field(default=100, ge=1, description="Maximum concurrent sessions")
    session_timeout: int = Field(default=3600, ge=0, description="Idle session timeout in seconds, 0 disables")
    keepalive_seconds: float = Field(default=15.0, gt=0, description="Server-push keepalive interval")

    # Artifact settings
    output_dir: str = Field(default=".", description="Directory for default screenshot paths")

    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    quality: QualityConfig = Field(default_factory=QualityConfig)

    model_config = {
        "env_prefix": "TUBESHOT_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
    }


# Global configuration instance
_config: Optional[ServiceConfig] = None


def get_config() -> ServiceConfig:
    """Get the global service configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = ServiceConfig()
    return _config


def reload_config() -> ServiceConfig:
    """Reload configuration from environment.

    Returns:
        Fresh ServiceConfig instance
    """
    global _config
    _config = ServiceConfig()
    return _config


def load_config_from_file(path: str) -> ServiceConfig:
    """Load configuration from a YAML or JSON file.

    Values in the file take precedence over environment variables.

    Args:
        path: Path to configuration file

    Returns:
        ServiceConfig instance

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If file format is invalid
    """
    import json
    import yaml

    if not os.path.exists(path):
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "r") as f:
        if path.endswith(".yaml") or path.endswith(".yml"):
            data = yaml.safe_load(f) or {}
        elif path.endswith(".json"):
            data = json.load(f)
        else:
            raise ValueError(f"Unsupported config file format: {path}")

    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")

    global _config
    _config = ServiceConfig(**data)
    return _config
