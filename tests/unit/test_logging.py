"""Tests for loadstage logging setup."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

import pytest

from loadstage._internal.logging import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import Iterator


@pytest.fixture(autouse=True)
def _restore_logger() -> Iterator[None]:
    logger = logging.getLogger("loadstage")
    handlers = list(logger.handlers)
    level = logger.level
    propagate = logger.propagate
    # A fresh handler binds to the captured sys.stderr.
    logger.handlers = []
    yield
    logger.handlers = handlers
    logger.setLevel(level)
    logger.propagate = propagate


def test_get_logger_namespaces_under_loadstage():
    assert get_logger("engine.session").name == "loadstage.engine.session"


def test_setup_logging_does_not_stack_handlers():
    logger = setup_logging(logging.DEBUG)
    count = len(logger.handlers)
    setup_logging(logging.WARNING)

    assert len(logger.handlers) == count
    assert logger.level == logging.WARNING
    assert logger.propagate is False


def test_text_format(capsys: pytest.CaptureFixture[str]):
    setup_logging(logging.INFO)
    get_logger("test").info("hello %s", "world")

    err = capsys.readouterr().err
    assert "[INFO    ] loadstage.test: hello world" in err


def test_json_format_includes_context(capsys: pytest.CaptureFixture[str]):
    setup_logging(logging.DEBUG, json_format=True)
    get_logger("engine.executor").debug(
        "check failed",
        extra={"vu": 3, "iteration": 7, "group": "Private endpoints", "step": "login"},
    )

    line = capsys.readouterr().err.strip().splitlines()[-1]
    entry = json.loads(line)
    assert entry["level"] == "DEBUG"
    assert entry["logger"] == "loadstage.engine.executor"
    assert entry["message"] == "check failed"
    assert entry["vu"] == 3
    assert entry["iteration"] == 7
    assert entry["group"] == "Private endpoints"
    assert entry["step"] == "login"
    assert "timestamp" in entry


def test_json_format_includes_exception(capsys: pytest.CaptureFixture[str]):
    setup_logging(logging.INFO, json_format=True)
    try:
        raise ValueError("boom")
    except ValueError:
        get_logger("test").exception("failed")

    entry = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
    assert "ValueError: boom" in entry["exception"]
