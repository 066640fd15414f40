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
Exception types raised by Tubeshot.

All errors derive from TubeshotError so callers at the tool boundary can
turn any expected failure into an error result with a single ``except``
clause. Unexpected exceptions (anything not derived from TubeshotError)
are left to the HTTP layer, which answers them with a 500.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class TubeshotError(Exception):
    """Base class for all Tubeshot errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class BrowserError(TubeshotError):
    """The browser or page could not be launched, opened or closed."""


class NavigationError(TubeshotError):
    """Navigation to the requested address failed."""


class PlayerNotReadyError(NavigationError):
    """The page never exposed a playable media element within its timeout."""


class PageError(TubeshotError):
    """Reading from the live page failed."""


class CaptureError(TubeshotError):
    """Writing the screenshot failed."""


class ArtifactError(CaptureError):
    """The capture reported success but no usable file exists on disk."""


class NoContentLoadedError(TubeshotError):
    """Metadata was requested before any video page was loaded."""


class SessionError(TubeshotError):
    """Session bookkeeping failed."""


class SessionLimitError(SessionError):
    """The maximum number of concurrent sessions has been reached."""


class ProtocolError(TubeshotError):
    """The server answered with a JSON-RPC error or an unexpected HTTP status."""
