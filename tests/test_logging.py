from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

import pytest

from ditaflow.logging import TOOL_LOGGER_NAME, configure_logging, get_logger


@pytest.fixture(autouse=True)
def _reset_loggers() -> Iterator[None]:
    yield
    for name in ("ditaflow", TOOL_LOGGER_NAME):
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        logger.propagate = True
        logger.setLevel(logging.NOTSET)


def test_tool_output_is_relayed_only_when_verbose(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(verbose=False)
    get_logger("tool").debug("[DOTJ031I] hidden")
    get_logger("pipeline").info("visible")
    assert capsys.readouterr().err == "[ditaflow] INFO visible\n"

    configure_logging(verbose=True)
    get_logger("tool").debug("[DOTJ031I] shown")
    assert capsys.readouterr().err == "  [dita-ot] [DOTJ031I] shown\n"


def test_reconfiguring_does_not_duplicate_output(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging()
    configure_logging()
    get_logger("cli").warning("once")
    assert capsys.readouterr().err.count("once") == 1


def test_log_file_keeps_tool_output(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    log_file = tmp_path / "logs" / "ditaflow.log"
    configure_logging(log_file=log_file)

    get_logger("tool").debug("[DOTX023W] navtitle")
    get_logger("pipeline").info("done")

    for handler in logging.getLogger("ditaflow").handlers:
        handler.flush()
    written = log_file.read_text(encoding="utf-8")
    assert "DEBUG ditaflow.tool: [DOTX023W] navtitle" in written
    assert "INFO ditaflow.pipeline: done" in written
    assert "navtitle" not in capsys.readouterr().err
