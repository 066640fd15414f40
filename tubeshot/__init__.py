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
Tubeshot - screenshots of online video players over a session-based tool protocol.

The server exposes three tools (load-and-screenshot, get-video-info, cleanup)
through a streamable HTTP endpoint. Every session drives its own headless
browser, so concurrent sessions never interfere.
"""

__version__ = "26.10.0"
__author__ = "Firefly Software Solutions Inc"
__license__ = "Apache-2.0"

from tubeshot.client import ToolResult, TubeshotClient
from tubeshot.core.browser import BrowserManager
from tubeshot.core.controller import BrowserAutomationController, CaptureResult, VideoInfo
from tubeshot.core.quality import NegotiationOutcome, QualityTier

__all__ = [
    "BrowserAutomationController",
    "BrowserManager",
    "CaptureResult",
    "NegotiationOutcome",
    "QualityTier",
    "ToolResult",
    "TubeshotClient",
    "VideoInfo",
    "__version__",
]
