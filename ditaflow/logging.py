"""Logging utilities for ditaflow commands.

Two streams reach the console: ditaflow's own messages, prefixed with
``[ditaflow] LEVEL``, and DITA-OT's raw console output, which is relayed on the
``ditaflow.tool`` logger at DEBUG and only shown with ``--verbose``.
"""

from __future__ import annotations

import logging
from pathlib import Path

_LOGGER_NAME = "ditaflow"
TOOL_LOGGER_NAME = f"{_LOGGER_NAME}.tool"

_CONSOLE_FORMAT = "[ditaflow] %(levelname)s %(message)s"
_TOOL_FORMAT = "  [dita-ot] %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a module-scoped logger under the ditaflow hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Configure the ditaflow loggers with console output and optional file sink.

    The log file always receives DITA-OT output, so a failed run can be
    diagnosed afterwards without rerunning it in verbose mode.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    tool_logger = logging.getLogger(TOOL_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False
    tool_logger.setLevel(logging.DEBUG if verbose or log_file is not None else logging.INFO)
    tool_logger.propagate = False

    # Reset handlers to avoid duplicate output when the CLI is invoked multiple times.
    for configured in (logger, tool_logger):
        for handler in list(configured.handlers):
            configured.removeHandler(handler)
            handler.close()

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    logger.addHandler(stream_handler)

    tool_handler = logging.StreamHandler()
    tool_handler.setLevel(level)
    tool_handler.setFormatter(logging.Formatter(_TOOL_FORMAT))
    tool_logger.addHandler(tool_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(file_handler)
        tool_logger.addHandler(file_handler)

    return logger


__all__ = ["TOOL_LOGGER_NAME", "configure_logging", "get_logger"]
