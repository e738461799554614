from __future__ import annotations

import io
import logging

import pytest

from ditaflow.output import ProgressReporter, ProgressStyle, render_progress
from ditaflow.output.progress import progress_bar, progress_percent
from ditaflow.output.stages import STAGES_BY_KEY, StageTable

TOTAL = StageTable().total


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("tests.progress")


def test_percent_spans_the_stage_table() -> None:
    assert progress_percent(STAGES_BY_KEY["init"], TOTAL) == 0
    assert progress_percent(STAGES_BY_KEY["transform"], TOTAL) == 68
    assert progress_percent(STAGES_BY_KEY["complete"], TOTAL) == 100


def test_progress_bar_shapes() -> None:
    assert progress_bar(0) == "[" + " " * 30 + "]"
    assert progress_bar(100) == "[" + "=" * 30 + "]"
    assert progress_bar(50) == "[" + "=" * 14 + ">" + " " * 15 + "]"


def test_render_detailed_includes_label_and_files() -> None:
    line = render_progress(STAGES_BY_KEY["transform"], TOTAL, ProgressStyle.DETAILED, files=12)
    assert line is not None
    assert line.endswith("68% - Transforming (12 files)")


def test_render_simple_omits_label() -> None:
    line = render_progress(STAGES_BY_KEY["transform"], TOTAL, ProgressStyle.SIMPLE)
    assert line is not None
    assert line.endswith("] 68%")


def test_render_minimal_only_announces_milestones() -> None:
    assert render_progress(STAGES_BY_KEY["preprocess"], TOTAL, ProgressStyle.MINIMAL) == "  Preprocessing..."
    assert render_progress(STAGES_BY_KEY["chunk"], TOTAL, ProgressStyle.MINIMAL) is None


def test_render_quiet_is_silent() -> None:
    assert render_progress(STAGES_BY_KEY["transform"], TOTAL, ProgressStyle.QUIET) is None


def test_style_parse() -> None:
    assert ProgressStyle.parse(None) is ProgressStyle.DETAILED
    assert ProgressStyle.parse(" Simple ") is ProgressStyle.SIMPLE
    with pytest.raises(ValueError):
        ProgressStyle.parse("fancy")


def test_interactive_reporter_draws_live_bar(logger: logging.Logger, caplog: pytest.LogCaptureFixture) -> None:
    stream = io.StringIO()
    reporter = ProgressReporter(ProgressStyle.DETAILED, stream=stream, interactive=True, logger=logger)

    with caplog.at_level(logging.INFO, logger=logger.name):
        reporter.on_stage(STAGES_BY_KEY["preprocess"], TOTAL)
        reporter.on_stage(STAGES_BY_KEY["transform"], TOTAL, files=3)

    written = stream.getvalue()
    assert "68%" in written
    assert "Transforming (3 files)" in written
    assert caplog.records == []


def test_interactive_reporter_stops_bar_before_logging(
    logger: logging.Logger, caplog: pytest.LogCaptureFixture
) -> None:
    reporter = ProgressReporter(ProgressStyle.SIMPLE, stream=io.StringIO(), interactive=True, logger=logger)
    reporter.on_stage(STAGES_BY_KEY["preprocess"], TOTAL)
    live = reporter._progress
    assert live is not None and live.live.is_started

    with caplog.at_level(logging.ERROR, logger=logger.name):
        reporter.on_error("[DOTJ013E] err")

    assert not live.live.is_started
    assert reporter._progress is None
    assert [record.getMessage() for record in caplog.records] == ["[DOTJ013E] err"]


def test_non_interactive_reporter_logs(logger: logging.Logger, caplog: pytest.LogCaptureFixture) -> None:
    reporter = ProgressReporter(ProgressStyle.DETAILED, stream=io.StringIO(), interactive=False, logger=logger)
    with caplog.at_level(logging.INFO, logger=logger.name):
        reporter.on_stage(STAGES_BY_KEY["transform"], TOTAL)
        reporter.on_stage(STAGES_BY_KEY["transform"], TOTAL)

    assert [record.getMessage() for record in caplog.records] == [
        "[" + "=" * 19 + ">" + " " * 10 + "] 68% - Transforming"
    ]


def test_warnings_only_shown_on_request(logger: logging.Logger, caplog: pytest.LogCaptureFixture) -> None:
    quiet_warnings = ProgressReporter(stream=io.StringIO(), interactive=False, logger=logger)
    loud_warnings = ProgressReporter(
        stream=io.StringIO(), interactive=False, logger=logger, show_warnings=True
    )
    with caplog.at_level(logging.WARNING, logger=logger.name):
        quiet_warnings.on_warning("[DOTX023W] hidden")
        loud_warnings.on_warning("[DOTX023W] shown")

    assert [record.getMessage() for record in caplog.records] == ["[DOTX023W] shown"]


def test_quiet_reporter_suppresses_errors(logger: logging.Logger, caplog: pytest.LogCaptureFixture) -> None:
    reporter = ProgressReporter(ProgressStyle.QUIET, stream=io.StringIO(), interactive=False, logger=logger)
    with caplog.at_level(logging.DEBUG, logger=logger.name):
        reporter.on_error("[DOTJ013E] err")
        reporter.finish(succeeded=False, stage=STAGES_BY_KEY["keyref"], total=TOTAL, files=0, duration=1.0)
    assert caplog.records == []


def test_finish_reports_failed_stage(logger: logging.Logger, caplog: pytest.LogCaptureFixture) -> None:
    reporter = ProgressReporter(stream=io.StringIO(), interactive=False, logger=logger)
    with caplog.at_level(logging.INFO, logger=logger.name):
        reporter.finish(succeeded=False, stage=STAGES_BY_KEY["keyref"], total=TOTAL, files=0, duration=1.0)
    assert caplog.records[-1].getMessage().endswith("26% - Failed at Resolving key references")
