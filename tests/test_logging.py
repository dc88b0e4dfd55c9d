"""Tests for kubeprompt logging setup."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from kubeprompt.logging import component_name, configure_logging, get_logger


@pytest.fixture(autouse=True)
def _restore_logger():
    logger = logging.getLogger("kubeprompt")
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = propagate


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("kubeprompt.kube.executor", "kube.executor"),
        ("kubeprompt", "main"),
        ("uvicorn.error", "uvicorn.error"),
    ],
)
def test_component_name(name: str, expected: str) -> None:
    assert component_name(name) == expected


def test_verbose_console_lines_name_the_component(capsys) -> None:
    configure_logging(verbose=True)

    get_logger("git.store").debug("cloned %s", "org/repo")

    assert "[kubeprompt] DEBUG git.store: cloned org/repo" in capsys.readouterr().err


def test_default_console_hides_debug(capsys) -> None:
    configure_logging()

    get_logger("orchestrator").debug("hidden")
    get_logger("orchestrator").info("shown")

    err = capsys.readouterr().err
    assert "hidden" not in err
    assert "[kubeprompt] INFO shown" in err


def test_log_file_receives_timestamped_records(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "kubeprompt.log"
    configure_logging(log_file=log_file)

    get_logger("kube.executor").warning("kubectl failed for %s", "app.yaml")
    for handler in logging.getLogger("kubeprompt").handlers:
        handler.flush()

    line = log_file.read_text(encoding="utf-8").strip()
    assert line.endswith("WARNING kube.executor: kubectl failed for app.yaml")


def test_repeated_configuration_does_not_stack_handlers() -> None:
    configure_logging()
    configure_logging(verbose=True)

    assert len(logging.getLogger("kubeprompt").handlers) == 1
