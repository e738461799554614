"""Progress rendering, decoupled from severity classification."""

from __future__ import annotations

import logging
import sys
from enum import Enum
from typing import Optional, TextIO

from rich.console import Console
from rich.progress import BarColumn, Progress, TaskID, TaskProgressColumn, TextColumn

from ..logging import get_logger
from ..models import Stage

BAR_WIDTH = 30


class ProgressStyle(str, Enum):
    DETAILED = "detailed"
    SIMPLE = "simple"
    MINIMAL = "minimal"
    QUIET = "quiet"

    @classmethod
    def parse(cls, value: str | "ProgressStyle" | None) -> "ProgressStyle":
        if isinstance(value, ProgressStyle):
            return value
        if not value:
            return cls.DETAILED
        try:
            return cls(value.strip().lower())
        except ValueError as exc:
            choices = ", ".join(style.value for style in cls)
            raise ValueError(f"Unknown progress style {value!r}; expected one of: {choices}") from exc


# Stages announced by the minimal style.
_MILESTONES = frozenset({"init", "preprocess", "transform", "complete"})


def progress_percent(stage: Stage, total: int) -> int:
    if total <= 1:
        return 100
    return max(0, min(100, round(100 * stage.index / (total - 1))))


def progress_bar(percent: int, width: int = BAR_WIDTH) -> str:
    filled = max(0, min(width, width * percent // 100))
    head = ""
    if filled:
        head = "=" * (filled - 1) + (">" if percent < 100 else "=")
    return f"[{head}{' ' * (width - filled)}]"


def render_progress(
    stage: Stage,
    total: int,
    style: ProgressStyle = ProgressStyle.DETAILED,
    files: Optional[int] = None,
) -> Optional[str]:
    """Return the progress line for ``stage`` or ``None`` when nothing is shown."""
    if style is ProgressStyle.QUIET:
        return None
    percent = progress_percent(stage, total)
    if style is ProgressStyle.MINIMAL:
        return f"  {stage.label}..." if stage.key in _MILESTONES else None
    bar = progress_bar(percent)
    if style is ProgressStyle.SIMPLE:
        return f"  {bar} {percent}%"
    suffix = f" ({files} files)" if files else ""
    return f"  {bar} {percent}% - {stage.label}{suffix}"


class ProgressReporter:
    """Shows progress renderings and surfaces coded errors/warnings as they arrive.

    On a terminal the bar is a transient ``rich`` progress display that is torn
    down whenever a message has to be logged; elsewhere each distinct rendering is
    logged once.
    """

    def __init__(
        self,
        style: ProgressStyle = ProgressStyle.DETAILED,
        *,
        show_warnings: bool = False,
        stream: TextIO | None = None,
        interactive: bool | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.style = ProgressStyle.parse(style)
        self.show_warnings = show_warnings
        self.stream = stream if stream is not None else sys.stdout
        if interactive is None:
            isatty = getattr(self.stream, "isatty", None)
            interactive = bool(isatty and isatty())
        self.interactive = interactive
        self.logger = logger or get_logger("progress")
        self.console = Console(file=self.stream, force_terminal=interactive, highlight=False)
        self._progress: Optional[Progress] = None
        self._task: Optional[TaskID] = None
        self._last_line = ""

    def on_stage(self, stage: Stage, total: int, files: Optional[int] = None) -> None:
        line = render_progress(stage, total, self.style, files)
        if line is None:
            return
        if self.style is ProgressStyle.MINIMAL:
            self._clear()
            self.logger.info(line.strip())
            return
        if self.interactive:
            self._show(stage, total, files)
        elif line != self._last_line:
            self.logger.info(line.strip())
        self._last_line = line

    def on_warning(self, text: str) -> None:
        if self.show_warnings and self.style is not ProgressStyle.QUIET:
            self._clear()
            self.logger.warning(text)

    def on_error(self, text: str) -> None:
        if self.style is not ProgressStyle.QUIET:
            self._clear()
            self.logger.error(text)

    def finish(self, *, succeeded: bool, stage: Stage, total: int, files: int, duration: float) -> None:
        self._clear()
        if self.style is ProgressStyle.QUIET:
            return
        if succeeded:
            self.logger.info("%s 100%% - Complete (%d files, %.1fs)", progress_bar(100), files, duration)
        else:
            percent = progress_percent(stage, total)
            self.logger.info("%s %d%% - Failed at %s", progress_bar(percent), percent, stage.label)

    def _show(self, stage: Stage, total: int, files: Optional[int]) -> None:
        description = ""
        if self.style is ProgressStyle.DETAILED:
            description = stage.label + (f" ({files} files)" if files else "")
        if self._progress is None:
            self._progress = Progress(
                TextColumn(" "),
                BarColumn(bar_width=BAR_WIDTH),
                TaskProgressColumn(),
                TextColumn("{task.description}"),
                console=self.console,
                auto_refresh=False,
                transient=True,
                redirect_stdout=False,
                redirect_stderr=False,
            )
            self._progress.start()
            self._task = self._progress.add_task(description, total=100)
        assert self._task is not None
        self._progress.update(self._task, completed=progress_percent(stage, total), description=description)
        self._progress.refresh()

    def _clear(self) -> None:
        if self._progress is not None:
            self._progress.stop()
            self._progress = None
            self._task = None
        self._last_line = ""


__all__ = [
    "BAR_WIDTH",
    "ProgressReporter",
    "ProgressStyle",
    "progress_bar",
    "progress_percent",
    "render_progress",
]
