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
Logging configuration for Tubeshot.

All modules log through the ``tubeshot`` logger defined here. Output goes
to stdout in one of three formats: single-line JSON (default, for log
collectors), a compact human layout, or plain text. ``TUBESHOT_LOG_FORMAT``
and ``TUBESHOT_LOG_LEVEL`` set the initial format and level; the CLI calls
``configure_logging`` to change them at startup.
"""

import json
import logging
import os
import sys
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union

__all__ = [
    "logger",
    "setup_logger",
    "configure_logging",
    "LogFormat",
    "BrowserActionLogger",
    "browser_log",
]

LOGGER_NAME = "tubeshot"


class LogFormat(str, Enum):
    """Supported log output formats."""

    JSON = "json"
    HUMAN = "human"
    TEXT = "text"


# Present on every LogRecord; anything else arrived through ``extra``.
_STANDARD_RECORD_FIELDS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}


class JsonFormatter(logging.Formatter):
    """One JSON object per line, with ``extra`` fields under ``context``."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        context = {
            key: value
            for key, value in vars(record).items()
            if key not in _STANDARD_RECORD_FIELDS
        }
        if context:
            entry["context"] = context
        return json.dumps(entry, default=str)


class HumanFormatter(logging.Formatter):
    """``HH:MM:SS [   LEVEL] message``, colored when stdout is a terminal."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"
    DIM = "\033[2m"

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors and sys.stdout.isatty()

    def _paint(self, text: str, code: str) -> str:
        return f"{code}{text}{self.RESET}" if self.use_colors and code else text

    def format(self, record: logging.LogRecord) -> str:
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        level = self._paint(f"[{record.levelname:>8}]", self.LEVEL_COLORS.get(record.levelno, ""))
        line = f"{self._paint(clock, self.DIM)} {level} {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self._paint(
                self.formatException(record.exc_info), self.LEVEL_COLORS[logging.ERROR]
            )
        return line


class TextFormatter(logging.Formatter):
    """Classic ``asctime - name - level - message`` lines."""

    def __init__(self):
        super().__init__(fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s")


def get_log_level(level: Union[str, int]) -> int:
    """
    Resolve a level name (any case, ``WARN`` accepted) or number.

    Unknown names resolve to INFO.
    """
    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name == "WARN":
        name = "WARNING"
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def get_formatter(log_format: Union[LogFormat, str], use_colors: bool = True) -> logging.Formatter:
    """Formatter for ``log_format``; unknown names fall back to JSON."""
    if not isinstance(log_format, LogFormat):
        try:
            log_format = LogFormat(str(log_format).lower())
        except ValueError:
            log_format = LogFormat.JSON
    if log_format == LogFormat.HUMAN:
        return HumanFormatter(use_colors=use_colors)
    if log_format == LogFormat.TEXT:
        return TextFormatter()
    return JsonFormatter()


def _install(log: logging.Logger, level: int, formatter: logging.Formatter) -> None:
    log.setLevel(level)
    log.handlers.clear()
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(formatter)
    log.addHandler(handler)


def configure_logging(
    level: str = "INFO",
    log_format: Union[LogFormat, str] = LogFormat.JSON,
    human_readable: bool = False,
) -> None:
    """
    Reconfigure the global Tubeshot logger.

    Args:
        level: Log level name
        log_format: json, human or text
        human_readable: Force the human format regardless of ``log_format``
    """
    if human_readable:
        log_format = LogFormat.HUMAN
    _install(logger, get_log_level(level), get_formatter(log_format))


def setup_logger(
    name: str = LOGGER_NAME,
    level: int = logging.INFO,
    format_string: Optional[str] = None,
) -> logging.Logger:
    """
    Create a stdout logger that does not propagate to the root logger.

    Args:
        name: Logger name
        level: Level used unless ``TUBESHOT_LOG_LEVEL`` is set
        format_string: Custom ``logging.Formatter`` format; overrides ``TUBESHOT_LOG_FORMAT``

    Returns:
        Configured logger instance
    """
    log = logging.getLogger(name)
    log.propagate = False

    env_level = os.environ.get("TUBESHOT_LOG_LEVEL")
    if env_level:
        level = get_log_level(env_level)

    if format_string is not None:
        formatter = logging.Formatter(format_string)
    else:
        formatter = get_formatter(os.environ.get("TUBESHOT_LOG_FORMAT", LogFormat.JSON.value))

    _install(log, level, formatter)
    return log


class BrowserActionLogger:
    """
    Start/end log lines for page-level browser actions.

    The logger keeps no per-action state: ``start_action`` returns a token
    that the caller hands back to ``end_action``, so one instance can be
    shared by concurrent sessions.

    Example output:
        > [BROWSER NAVIGATE] https://www.youtube.com/watch?v=...
        [OK] [BROWSER NAVIGATE] 812ms -> loaded (networkidle)
    """

    RESET = "\033[0m"
    START = "\033[38;5;111m"
    OK = "\033[38;5;82m"
    FAIL = "\033[38;5;196m"

    def __init__(self, log: logging.Logger, use_colors: bool = False) -> None:
        self._log = log
        self._use_colors = use_colors

    def _tint(self, text: str, code: str) -> str:
        return f"{code}{text}{self.RESET}" if self._use_colors else text

    def start_action(self, action_type: str, description: str) -> float:
        """Log the start of an action; returns its start token."""
        started = time.monotonic()
        self._log.info(f"{self._tint(f'> [BROWSER {action_type}]', self.START)} {description}")
        return started

    def end_action(
        self,
        action_type: str,
        success: bool,
        details: Optional[str] = None,
        started: Optional[float] = None,
    ) -> float:
        """
        Log the end of an action; returns its duration in milliseconds.

        ``started`` is the token from ``start_action``; without it the
        duration is reported as 0.
        """
        duration_ms = (time.monotonic() - started) * 1000 if started is not None else 0.0

        badge = self._tint("[OK]", self.OK) if success else self._tint("[FAIL]", self.FAIL)
        suffix = f" -> {details}" if details else ""
        log_fn = self._log.info if success else self._log.warning
        log_fn(f"{badge} [BROWSER {action_type}] {duration_ms:.0f}ms{suffix}")
        return duration_ms


logger = setup_logger()

browser_log = BrowserActionLogger(logger)
