"""Code-only classification of DITA-OT output lines."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from ..models import MessageCode, Severity, StageEvent
from .codes import MessageCodeRegistry
from .stages import StageTable

_FILE_PROGRESS = re.compile(
    r"(Processing|Reading|Writing|Transforming)\s+(.+\.(dita|ditamap|xml|html|pdf))\b"
)


@dataclass(frozen=True)
class Classification:
    """What a single output line means to the tracker."""

    text: str
    code: Optional[MessageCode] = None
    stage_event: Optional[StageEvent] = None
    file_progress: bool = False

    @property
    def severity(self) -> Optional[Severity]:
        """Severity from the message code; ``None`` for unclassified lines."""
        return self.code.severity if self.code is not None else None

    @property
    def is_error(self) -> bool:
        return self.code is not None and self.code.severity.is_error

    @property
    def is_warning(self) -> bool:
        return self.code is not None and self.code.severity is Severity.WARNING


class OutputClassifier:
    """Assigns severity from registered message codes and detects stages.

    Severity never comes from keywords: ``Error:``, ``[ERROR]`` or a file called
    ``error-messages.xml`` stay unclassified unless a registered code is present.
    Stage detection is independent and skips file progress lines so a
    ``Processing topic.dita`` line cannot move the stage.
    """

    def __init__(
        self,
        registry: MessageCodeRegistry | None = None,
        stages: StageTable | None = None,
    ) -> None:
        self.registry = registry or MessageCodeRegistry()
        self.stages = stages or StageTable()

    def classify(self, line: str) -> Classification:
        code = self.registry.find(line)
        file_progress = bool(_FILE_PROGRESS.search(line))
        stage_event = None if file_progress else self.stages.detect(line)
        return Classification(
            text=line,
            code=code,
            stage_event=stage_event,
            file_progress=file_progress,
        )


__all__ = ["Classification", "OutputClassifier"]
