"""Fold classified output lines into a transformation summary."""

from __future__ import annotations

from collections import deque
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from ..logging import get_logger
from ..models import ExitStatus, LogLine, Severity, Stage, TransformResult
from .classifier import Classification, OutputClassifier
from .progress import ProgressReporter

RECENT_ERROR_LIMIT = 5


class ProgressTracker:
    """Incremental consumer of DITA-OT output.

    Counts per severity come only from message codes. The stage never moves
    backwards: an earlier marker seen after a later one is recorded in the
    history but does not rewind the reported stage.
    """

    def __init__(
        self,
        classifier: OutputClassifier | None = None,
        *,
        reporter: ProgressReporter | None = None,
        retain_lines: bool = False,
        tail_size: int = 20,
    ) -> None:
        self.classifier = classifier or OutputClassifier()
        self.reporter = reporter
        self.retain_lines = retain_lines
        self.logger = get_logger("tool")
        self.counts = {severity: 0 for severity in Severity}
        self.recent_errors: deque[str] = deque(maxlen=RECENT_ERROR_LIMIT)
        self.stage: Stage = self.classifier.stages.initial
        self.stage_history: List[str] = [self.stage.key]
        self.files_processed = 0
        self.file_count_hint: Optional[int] = None
        self.lines: List[str] = []
        self.tail: deque[str] = deque(maxlen=tail_size)
        self.unclassified = 0

    def consume(self, line: LogLine | str) -> Classification:
        text = line.text if isinstance(line, LogLine) else line
        classification = self.classifier.classify(text)
        if self.retain_lines:
            self.lines.append(text)
        self.tail.append(text)

        if classification.file_progress:
            self.files_processed += 1

        event = classification.stage_event
        if event is not None:
            if event.file_count_hint is not None:
                self.file_count_hint = event.file_count_hint
            if event.stage.key != self.stage_history[-1]:
                self.stage_history.append(event.stage.key)
            if event.stage.index > self.stage.index:
                self.stage = event.stage
                if self.reporter is not None:
                    self.reporter.on_stage(
                        self.stage, self.classifier.stages.total, self.files_processed or None
                    )

        severity = classification.severity
        if severity is None:
            self.unclassified += 1
            self.logger.debug(text)
        else:
            self.counts[severity] += 1
            if severity.is_error:
                self.recent_errors.append(text)
                if self.reporter is not None:
                    self.reporter.on_error(text)
            elif severity is Severity.WARNING:
                if self.reporter is not None:
                    self.reporter.on_warning(text)
            else:
                self.logger.debug(text)
        return classification

    def consume_all(self, lines: Iterable[LogLine | str]) -> "ProgressTracker":
        for line in lines:
            self.consume(line)
        return self

    @property
    def error_count(self) -> int:
        return self.counts[Severity.ERROR] + self.counts[Severity.FATAL]

    @property
    def warning_count(self) -> int:
        return self.counts[Severity.WARNING]

    def summarize(
        self,
        exit_status: ExitStatus,
        duration: float,
        outputs: Sequence[Path] = (),
    ) -> TransformResult:
        """Build a result from the current state; repeated calls agree."""
        stage = self.stage
        if exit_status.ok and self.error_count == 0:
            stage = self.classifier.stages.terminal
        return TransformResult(
            exit_status=exit_status,
            duration=duration,
            info_count=self.counts[Severity.INFO],
            warning_count=self.counts[Severity.WARNING],
            error_count=self.counts[Severity.ERROR],
            fatal_count=self.counts[Severity.FATAL],
            recent_errors=list(self.recent_errors),
            stage=stage.key,
            stage_history=list(self.stage_history),
            outputs=list(outputs),
            files_processed=self.files_processed,
            output_tail=list(self.tail),
        )


def summarize_transcript(
    lines: Iterable[str],
    exit_status: ExitStatus | None = None,
    *,
    duration: float = 0.0,
    outputs: Sequence[Path] = (),
    classifier: OutputClassifier | None = None,
) -> TransformResult:
    """Replay a captured transcript through a fresh tracker."""
    tracker = ProgressTracker(classifier, retain_lines=True)
    tracker.consume_all(line.rstrip("\r\n") for line in lines)
    return tracker.summarize(exit_status or ExitStatus.success(), duration, outputs)


__all__ = ["RECENT_ERROR_LIMIT", "ProgressTracker", "summarize_transcript"]
