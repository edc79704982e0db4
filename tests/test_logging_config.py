"""
Tests for structured JSON logging.

CHANGELOG:
- 2026-10-09: Level names and exception field (STORY-024)
- 2026-10-02: Initial creation (STORY-020)

TODO:
- None
"""

import json
import logging
import sys
from collections.abc import Iterator

import pytest

from energy_rollup.logging_config import JSONFormatter, setup_logging


def _record(msg: str, *args: object, level: int = logging.INFO, exc_info=None) -> logging.LogRecord:
    return logging.LogRecord(
        name="energy_rollup.test",
        level=level,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=args,
        exc_info=exc_info,
    )


@pytest.fixture()
def _restore_root() -> Iterator[None]:
    """Put the root logger back the way pytest configured it."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestJSONFormatter:
    """JSONFormatter emits one JSON object per record."""

    def test_required_fields(self) -> None:
        parsed = json.loads(JSONFormatter().format(_record("processed=%d", 42, level=logging.WARNING)))

        assert set(parsed) == {"timestamp", "level", "logger", "message"}
        assert parsed["level"] == "WARNING"
        assert parsed["logger"] == "energy_rollup.test"
        assert parsed["message"] == "processed=42"
        assert parsed["timestamp"].endswith("+00:00")

    def test_exception_field(self) -> None:
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = _record("failed", level=logging.ERROR, exc_info=sys.exc_info())

        parsed = json.loads(JSONFormatter().format(record))

        assert "RuntimeError: boom" in parsed["exception"]
        assert "Traceback" in parsed["exception"]


@pytest.mark.usefixtures("_restore_root")
class TestSetupLogging:
    """setup_logging() installs a single JSON handler on the root logger."""

    def test_single_json_handler(self) -> None:
        setup_logging()
        setup_logging()

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)

    @pytest.mark.parametrize(
        ("level", "expected"),
        [(logging.DEBUG, logging.DEBUG), ("warning", logging.WARNING), ("bogus", logging.INFO)],
    )
    def test_level(self, level: int | str, expected: int) -> None:
        setup_logging(level)
        assert logging.getLogger().level == expected
