"""Tests for the logging setup and context formatter.

Run:
    pytest tests/test_logging_config.py -v
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from resin_layers.utils import logging_config
from resin_layers.utils.logging_config import (
    ContextFormatter,
    get_context,
    pop_context,
    push_context,
    setup_logging,
)


@pytest.fixture()
def restore_logging():
    """Drop handlers installed by setup_logging and reset module state."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in list(root.handlers):
        if isinstance(handler.formatter, ContextFormatter):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
    logging_config._configured = False
    pop_context()


def _record(msg: str = "hello", level: int = logging.INFO) -> logging.LogRecord:
    return logging.LogRecord("resin_layers.test", level, __file__, 1, msg, None, None)


class TestContext:
    def test_push_and_pop(self, restore_logging) -> None:
        push_context(app="resin-layers")
        push_context(op="bleed")
        assert get_context() == {"app": "resin-layers", "op": "bleed"}
        pop_context(["op"])
        assert get_context() == {"app": "resin-layers"}
        pop_context()
        assert get_context() == {}


class TestFormatter:
    def test_human(self, restore_logging) -> None:
        push_context(op="shrink")
        line = ContextFormatter("human", use_color=False).format(_record())
        assert "| INFO     |" in line
        assert "op=shrink" in line
        assert line.endswith("hello")

    def test_json(self, restore_logging) -> None:
        push_context(op="grid")
        payload = json.loads(ContextFormatter("json").format(_record("x", logging.WARNING)))
        assert payload["lvl"] == "WARNING"
        assert payload["msg"] == "x"
        assert payload["op"] == "grid"
        assert payload["name"] == "resin_layers.test"
        assert "thread" in payload

    def test_unknown_mode(self) -> None:
        with pytest.raises(ValueError):
            ContextFormatter("xml")


class TestSetupLogging:
    def test_idempotent(self, restore_logging) -> None:
        first = setup_logging("INFO", capture_warnings=False)
        second = setup_logging("DEBUG", capture_warnings=False)
        root = logging.getLogger()
        assert len(first["handlers"]) == 1
        assert all(h not in root.handlers for h in first["handlers"])
        assert all(h in root.handlers for h in second["handlers"])
        assert root.level == logging.DEBUG

    def test_file_handler_json(self, restore_logging, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "run.log"
        result = setup_logging(
            "INFO",
            log_file=str(log_file),
            json=True,
            to_stderr=False,
            capture_warnings=False,
            context={"app": "resin-layers"},
        )
        logging.getLogger("resin_layers.test").info("written")
        for handler in result["handlers"]:
            handler.flush()

        payload = json.loads(log_file.read_text(encoding="utf-8").strip().splitlines()[-1])
        assert payload["msg"] == "written"
        assert payload["app"] == "resin-layers"

    def test_quiet_libs(self, restore_logging) -> None:
        setup_logging("DEBUG", quiet_libs=["PIL"], capture_warnings=False)
        assert logging.getLogger("PIL").level == logging.WARNING

    def test_bad_rotation_mode(self, restore_logging, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            setup_logging(
                "INFO",
                log_file=str(tmp_path / "x.log"),
                rotate={"mode": "weekly"},
                capture_warnings=False,
            )
