"""Content validation by running DITA-OT's ``dita`` transtype into a scratch directory."""

from __future__ import annotations

import re
import shutil
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import messages
from .errors import ConfigurationError
from .logging import get_logger
from .models import ExitStatus, InvocationSpec, StrategyKind
from .output import OutputClassifier
from .process import ProcessOrchestrator

PROCESSING_MODES = ("strict", "lax", "skip")

_FILE_LOCATION = re.compile(
    r"(?:file:/*)?(?P<file>[^\s:\[\]]+\.(?:dita|ditamap|xml))(?::(?P<line>\d+))?",
    re.IGNORECASE,
)
_LINE_NUMBER = re.compile(r"\bline\s+(\d+)", re.IGNORECASE)


@dataclass(frozen=True)
class ValidationMessage:
    file: str
    line: Optional[int]
    message: str
    code: Optional[str] = None

    @property
    def location(self) -> str:
        return f"{self.file}:{self.line}" if self.line is not None else self.file


@dataclass
class ValidationReport:
    input: Path
    exit_status: ExitStatus
    errors: List[ValidationMessage] = field(default_factory=list)
    warnings: List[ValidationMessage] = field(default_factory=list)
    strict: bool = False
    processing_mode: str = "strict"
    output_tail: List[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        if self.errors:
            return False
        return not (self.strict and self.warnings)

    @property
    def status(self) -> str:
        if self.errors:
            return "FAILED"
        if self.strict and self.warnings:
            return "FAILED (strict mode)"
        if self.warnings:
            return "PASSED (with warnings)"
        return "PASSED"

    def to_dict(self) -> Dict[str, Any]:
        def _entry(item: ValidationMessage) -> Dict[str, Any]:
            return {"file": item.file, "line": item.line, "message": item.message, "code": item.code}

        return {
            "input": str(self.input),
            "status": self.status,
            "passed": self.passed,
            "processing_mode": self.processing_mode,
            "strict": self.strict,
            "exit_status": self.exit_status.to_dict(),
            "errors": [_entry(item) for item in self.errors],
            "warnings": [_entry(item) for item in self.warnings],
        }


def extract_location(text: str, default_file: str) -> tuple[str, Optional[int]]:
    match = _FILE_LOCATION.search(text)
    if match:
        line = match.group("line")
        if line is None:
            line_match = _LINE_NUMBER.search(text)
            line = line_match.group(1) if line_match else None
        return match.group("file"), int(line) if line else None
    line_match = _LINE_NUMBER.search(text)
    return default_file, int(line_match.group(1)) if line_match else None


class ContentValidator:
    """Validates DITA content and reports coded errors and warnings with locations."""

    def __init__(
        self,
        orchestrator: ProcessOrchestrator | None = None,
        *,
        classifier: OutputClassifier | None = None,
    ) -> None:
        self.orchestrator = orchestrator or ProcessOrchestrator()
        self.classifier = classifier or OutputClassifier()
        self.logger = get_logger("validation")
        self.tool_logger = get_logger("tool")

    def validate(
        self,
        tool_home: Path,
        input_path: Path,
        *,
        processing_mode: str = "strict",
        strict: bool = False,
        filter_file: Path | None = None,
        strategy: StrategyKind = StrategyKind.SCRIPT,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ValidationReport:
        if processing_mode not in PROCESSING_MODES:
            raise ConfigurationError(
                f"Invalid processing mode {processing_mode!r}; expected one of: "
                + ", ".join(PROCESSING_MODES)
            )
        input_path = Path(input_path)
        scratch = Path(tempfile.mkdtemp(prefix="ditaflow-validate-"))
        try:
            spec = InvocationSpec(
                tool_home=Path(tool_home),
                inputs=(input_path,),
                output_dir=scratch / "out",
                temp_dir=scratch / "temp",
                transtype="dita",
                filter_file=filter_file,
                strategy=strategy,
                extra_args=("--processing-mode", processing_mode, "-v"),
                timeout=timeout,
            )
            report = ValidationReport(
                input=input_path,
                exit_status=ExitStatus.success(),
                strict=strict,
                processing_mode=processing_mode,
            )
            default_file = str(input_path.absolute())
            with self.orchestrator.run(spec, cancel_event=cancel_event) as running:
                for line in running.lines():
                    self._collect(line.text, default_file, report)
                report.exit_status = running.wait()
                report.output_tail = running.tail
        finally:
            shutil.rmtree(scratch, ignore_errors=True)

        if not report.exit_status.ok and not report.errors:
            report.errors.append(
                ValidationMessage(
                    file=default_file,
                    line=None,
                    message=messages.validation_exit_without_codes(
                        report.exit_status, report.output_tail
                    ),
                )
            )

        self.logger.info(
            "Validated %s: %s (%d error(s), %d warning(s))",
            input_path.name,
            report.status,
            len(report.errors),
            len(report.warnings),
        )
        return report

    def _collect(self, text: str, default_file: str, report: ValidationReport) -> None:
        stripped = text.strip()
        if not stripped:
            return
        classification = self.classifier.classify(stripped)
        if classification.code is None:
            self.tool_logger.debug(stripped)
            return
        if not (classification.is_error or classification.is_warning):
            self.tool_logger.debug(stripped)
            return
        file, line = extract_location(stripped, default_file)
        message = ValidationMessage(
            file=file, line=line, message=stripped, code=str(classification.code)
        )
        if classification.is_error:
            report.errors.append(message)
        else:
            report.warnings.append(message)


__all__ = [
    "ContentValidator",
    "PROCESSING_MODES",
    "ValidationMessage",
    "ValidationReport",
    "extract_location",
]
