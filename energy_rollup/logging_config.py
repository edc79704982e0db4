"""
JSON-lines logging for the rollup service and the backfill CLI.

``setup_logging()`` swaps whatever handlers the root logger has for one
stream handler that writes each record as a JSON object:
``timestamp``, ``level``, ``logger``, ``message`` and, for records logged
with exception info, ``exception``.

CHANGELOG:
- 2026-10-09: Accept level names, emit formatted tracebacks (STORY-024)
- 2026-10-02: Initial creation (STORY-020)

TODO:
- None
"""

import json
import logging
from datetime import UTC, datetime


class JSONFormatter(logging.Formatter):
    """Render a log record as a single-line JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    # Unknown names come back as the string "Level X".
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level: int | str = logging.INFO) -> None:
    """Install JSON output on the root logger.

    Calling it again replaces the handler instead of stacking another one.

    Args:
        level: Level number or name such as ``"DEBUG"``; unknown names
            fall back to INFO.
    """
    root = logging.getLogger()
    root.setLevel(_resolve_level(level))

    for existing in root.handlers[:]:
        root.removeHandler(existing)

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    root.addHandler(handler)
