"""Classification and progress tracking of DITA-OT console output."""

from .classifier import Classification, OutputClassifier
from .codes import DEFAULT_PREFIXES, MessageCodeRegistry
from .progress import ProgressReporter, ProgressStyle, render_progress
from .stages import STAGES, StageTable
from .tracker import ProgressTracker, summarize_transcript

__all__ = [
    "Classification",
    "DEFAULT_PREFIXES",
    "MessageCodeRegistry",
    "OutputClassifier",
    "ProgressReporter",
    "ProgressStyle",
    "ProgressTracker",
    "STAGES",
    "StageTable",
    "render_progress",
    "summarize_transcript",
]
