"""Logging setup shared by the CLI and the HTTP service."""

from __future__ import annotations

import logging
from pathlib import Path

_LOGGER_NAME = "kubeprompt"
_CONSOLE_FORMAT = "[kubeprompt] %(levelname)s %(message)s"
_VERBOSE_FORMAT = "[kubeprompt] %(levelname)s %(component)s: %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(component)s: %(message)s"


class ComponentFormatter(logging.Formatter):
    """Formatter exposing ``%(component)s``: the logger name below ``kubeprompt``.

    ``kubeprompt.kube.executor`` renders as ``kube.executor`` and the root
    ``kubeprompt`` logger as ``main``.
    """

    def format(self, record: logging.LogRecord) -> str:
        record.component = component_name(record.name)
        return super().format(record)


def component_name(logger_name: str) -> str:
    prefix = f"{_LOGGER_NAME}."
    if logger_name.startswith(prefix):
        return logger_name[len(prefix):]
    if logger_name == _LOGGER_NAME:
        return "main"
    return logger_name


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a component logger, e.g. ``get_logger("git.store")``."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def configure_logging(
    *, verbose: bool = False, log_file: Path | str | None = None
) -> logging.Logger:
    """Send kubeprompt records to stderr, and to ``log_file`` when given.

    Verbose mode lowers the level to DEBUG and prefixes each console line with
    the emitting component. The file sink always records timestamps and
    components, creating its parent directory if needed.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    # Repeated calls in one process (tests, `serve` reloads) must not stack handlers.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(ComponentFormatter(_VERBOSE_FORMAT if verbose else _CONSOLE_FORMAT))
    logger.addHandler(stream_handler)

    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(ComponentFormatter(_FILE_FORMAT))
        logger.addHandler(file_handler)

    return logger


__all__ = ["ComponentFormatter", "component_name", "configure_logging", "get_logger"]
