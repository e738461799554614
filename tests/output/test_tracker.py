"""Tests for the progress tracker fold and transcript summaries."""

from __future__ import annotations

from pathlib import Path

from ditaflow.models import ExitKind, ExitStatus, LogLine
from ditaflow.output import ProgressTracker, summarize_transcript
from ditaflow.output.stages import StageTable


def test_three_line_transcript_summary() -> None:
    result = summarize_transcript(
        ["[DOTJ031I] info", "[DOTX023W] warn", "[DOTJ013E] err"],
        ExitStatus.success(),
    )
    assert result.errors == 1
    assert result.warnings == 1
    assert result.info_count == 1
    assert result.exit_status.kind is ExitKind.SUCCESS
    assert result.recent_errors == ["[DOTJ013E] err"]
    assert not result.succeeded


def test_stage_never_rewinds_but_history_records_regression() -> None:
    tracker = ProgressTracker()
    tracker.consume_all(
        [
            "[init] INFO: Initializing",
            "[preprocess] INFO: Starting",
            "[transform] INFO: Transforming topics",
            "[conref] INFO: Resolving content references",
        ]
    )
    assert tracker.stage.key == "transform"
    assert tracker.stage_history == ["init", "preprocess", "transform", "conref"]


def test_recent_errors_are_bounded() -> None:
    tracker = ProgressTracker()
    tracker.consume_all(f"[DOTX{index:03d}E] problem {index}" for index in range(8))
    result = tracker.summarize(ExitStatus.from_code(1), 1.0)
    assert result.error_count == 8
    assert result.recent_errors == [f"[DOTX{index:03d}E] problem {index}" for index in range(3, 8)]


def test_summarize_is_idempotent() -> None:
    tracker = ProgressTracker()
    tracker.consume(LogLine(text="[DOTX023W] warn", sequence=0, timestamp=0.0))
    first = tracker.summarize(ExitStatus.success(), 2.5, [Path("out/index.html")])
    second = tracker.summarize(ExitStatus.success(), 2.5, [Path("out/index.html")])
    assert first == second
    assert first.stage == StageTable().terminal.key


def test_failed_run_reports_stage_reached() -> None:
    result = summarize_transcript(
        ["[preprocess] INFO: Starting", "[keyref] INFO: Resolving keys"],
        ExitStatus.from_code(2),
    )
    assert result.stage == "keyref"
    assert result.exit_status.code == 2


def test_files_processed_counts_progress_lines() -> None:
    result = summarize_transcript(
        [
            "Processing topics/a.dita",
            "Writing out/a.html",
            "Reading images/logo.png",
        ]
    )
    assert result.files_processed == 2


def test_output_tail_keeps_last_lines() -> None:
    tracker = ProgressTracker(tail_size=3)
    tracker.consume_all(str(index) for index in range(10))
    result = tracker.summarize(ExitStatus.from_code(1), 0.0)
    assert result.output_tail == ["7", "8", "9"]


def test_retained_lines_replay_to_same_counts() -> None:
    transcript = ["[DOTJ013E] err", "noise", "[DOTX023W] warn", "[DOTJ031I] info"]
    live = ProgressTracker(retain_lines=True).consume_all(transcript)
    replayed = summarize_transcript(live.lines)
    assert replayed.errors == live.error_count
    assert replayed.warnings == live.warning_count
