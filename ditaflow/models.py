"""Core data models shared across ditaflow components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union


class StrategyKind(str, Enum):
    """Selector for how DITA-OT is launched."""

    SCRIPT = "script"
    CLASSPATH = "classpath"
    HOST = "host"


@dataclass(frozen=True)
class InvocationSpec:
    """Immutable description of one DITA-OT run."""

    tool_home: Path
    inputs: Tuple[Path, ...]
    output_dir: Path
    temp_dir: Path
    transtype: str = "html5"
    filter_file: Optional[Path] = None
    properties: Mapping[str, str] = field(default_factory=dict)
    strategy: StrategyKind = StrategyKind.SCRIPT
    property_file: Optional[Path] = None
    extra_args: Tuple[str, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)
    timeout: Optional[float] = None
    host_command: Tuple[str, ...] = ()
    java: Optional[str] = None


@dataclass(frozen=True)
class SubprocessScript:
    """Run the toolkit through its ``dita``/``dita.bat`` launcher."""

    script: Path


@dataclass(frozen=True)
class InProcessClasspath:
    """Run the toolkit's Java entry point directly on a resolved classpath."""

    java: str
    entries: Tuple[Path, ...]
    main_class: str = "org.dita.dost.invoker.Main"


@dataclass(frozen=True)
class HostExec:
    """Run the toolkit through a command prefix supplied by the host."""

    command: Tuple[str, ...]


ExecutionStrategy = Union[SubprocessScript, InProcessClasspath, HostExec]


@dataclass(frozen=True)
class LogLine:
    """A single captured output line."""

    text: str
    sequence: int
    timestamp: float


class Severity(str, Enum):
    """Severity suffix of a DITA-OT message code."""

    INFO = "I"
    WARNING = "W"
    ERROR = "E"
    FATAL = "F"

    @property
    def is_error(self) -> bool:
        return self in (Severity.ERROR, Severity.FATAL)


@dataclass(frozen=True)
class MessageCode:
    """Structured identifier such as ``DOTJ013E``."""

    prefix: str
    number: str
    severity: Severity

    def __str__(self) -> str:
        return f"{self.prefix}{self.number}{self.severity.value}"


@dataclass(frozen=True)
class Stage:
    """Named phase of the DITA-OT pipeline."""

    key: str
    label: str
    index: int


@dataclass(frozen=True)
class StageEvent:
    """A stage recognized from an output line."""

    stage: Stage
    file_count_hint: Optional[int] = None


class ExitKind(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    START_FAILED = "start_failed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class ExitStatus:
    """Structured outcome of a DITA-OT process."""

    kind: ExitKind
    code: Optional[int] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.kind is ExitKind.SUCCESS

    @classmethod
    def success(cls) -> "ExitStatus":
        return cls(ExitKind.SUCCESS, 0)

    @classmethod
    def from_code(cls, code: int) -> "ExitStatus":
        if code == 0:
            return cls.success()
        return cls(ExitKind.FAILED, code, f"exit code {code}")

    def describe(self) -> str:
        if self.kind is ExitKind.SUCCESS:
            return "success"
        if self.kind is ExitKind.FAILED:
            return f"failed with exit code {self.code}"
        if self.kind is ExitKind.START_FAILED:
            return f"could not start: {self.detail}" if self.detail else "could not start"
        if self.kind is ExitKind.TIMED_OUT:
            return f"timed out{f' ({self.detail})' if self.detail else ''}"
        return "cancelled"

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "code": self.code, "detail": self.detail}


@dataclass
class TransformResult:
    """Outcome of one transformation, owned by the caller once returned."""

    exit_status: ExitStatus
    duration: float
    info_count: int = 0
    warning_count: int = 0
    error_count: int = 0
    fatal_count: int = 0
    recent_errors: List[str] = field(default_factory=list)
    stage: str = "init"
    stage_history: List[str] = field(default_factory=list)
    outputs: List[Path] = field(default_factory=list)
    files_processed: int = 0
    output_tail: List[str] = field(default_factory=list)
    transtype: Optional[str] = None
    inputs: List[Path] = field(default_factory=list)
    tool_version: str = "unknown"
    message: Optional[str] = None

    @property
    def errors(self) -> int:
        """Lines carrying an ``E`` or ``F`` message code."""
        return self.error_count + self.fatal_count

    @property
    def warnings(self) -> int:
        return self.warning_count

    @property
    def succeeded(self) -> bool:
        return self.exit_status.ok and self.errors == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exit_status": self.exit_status.to_dict(),
            "duration": round(self.duration, 3),
            "errors": self.errors,
            "warnings": self.warnings,
            "counts": {
                "info": self.info_count,
                "warning": self.warning_count,
                "error": self.error_count,
                "fatal": self.fatal_count,
            },
            "recent_errors": list(self.recent_errors),
            "stage": self.stage,
            "stage_history": list(self.stage_history),
            "outputs": [str(path) for path in self.outputs],
            "files_processed": self.files_processed,
            "output_tail": list(self.output_tail),
            "transtype": self.transtype,
            "inputs": [str(path) for path in self.inputs],
            "tool_version": self.tool_version,
            "message": self.message,
        }


class LinkKind(str, Enum):
    XREF = "xref"
    CONREF = "conref"
    MAPREF = "mapref"
    IMAGE = "image"
    HREF = "href"
    KEYREF = "keyref"
    CONKEYREF = "conkeyref"

    @property
    def needs_key_resolution(self) -> bool:
        return self in (LinkKind.KEYREF, LinkKind.CONKEYREF)


class LinkScope(str, Enum):
    LOCAL = "local"
    PEER = "peer"
    EXTERNAL = "external"


class LinkStatus(str, Enum):
    VALID = "valid"
    BROKEN = "broken"
    SKIPPED_PEER = "skipped_peer"
    SKIPPED_EXTERNAL = "skipped_external"
    SKIPPED_KEY = "skipped_key"


@dataclass(frozen=True)
class LinkRecord:
    """One reference discovered inside a source document."""

    source: Path
    line: Optional[int]
    element: str
    kind: LinkKind
    target: str
    scope: LinkScope = LinkScope.LOCAL

    @property
    def locator(self) -> str:
        where = f"{self.source.name}:{self.line}" if self.line is not None else self.source.name
        return f"{where} <{self.element}>"

    @property
    def is_url(self) -> bool:
        return self.target.lower().startswith(("http://", "https://", "ftp://"))


@dataclass(frozen=True)
class LinkOutcome:
    record: LinkRecord
    status: LinkStatus
    reason: str = ""


@dataclass
class CheckResult:
    """Aggregated outcome of one integrity check."""

    outcomes: List[LinkOutcome] = field(default_factory=list)
    scanned_files: List[Path] = field(default_factory=list)
    parse_errors: Dict[Path, str] = field(default_factory=dict)

    def _count(self, status: LinkStatus, *, external: Optional[bool] = None) -> int:
        total = 0
        for outcome in self.outcomes:
            if outcome.status is not status:
                continue
            if external is not None and (outcome.record.scope is LinkScope.EXTERNAL) != external:
                continue
            total += 1
        return total

    @property
    def resolved(self) -> List[LinkOutcome]:
        return [o for o in self.outcomes if o.status is LinkStatus.VALID]

    @property
    def broken(self) -> List[LinkOutcome]:
        return [o for o in self.outcomes if o.status is LinkStatus.BROKEN]

    @property
    def skipped_peer(self) -> List[LinkOutcome]:
        return [o for o in self.outcomes if o.status is LinkStatus.SKIPPED_PEER]

    @property
    def skipped_external(self) -> List[LinkOutcome]:
        return [o for o in self.outcomes if o.status is LinkStatus.SKIPPED_EXTERNAL]

    @property
    def skipped_keys(self) -> List[LinkOutcome]:
        return [o for o in self.outcomes if o.status is LinkStatus.SKIPPED_KEY]

    @property
    def internal_valid(self) -> int:
        return self._count(LinkStatus.VALID, external=False)

    @property
    def internal_broken(self) -> int:
        return self._count(LinkStatus.BROKEN, external=False)

    @property
    def external_valid(self) -> int:
        return self._count(LinkStatus.VALID, external=True)

    @property
    def external_broken(self) -> int:
        return self._count(LinkStatus.BROKEN, external=True)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def passed(self) -> bool:
        return not self.broken

    def should_fail(self, fail_on_broken: bool = True) -> bool:
        return fail_on_broken and not self.passed

    def counts(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "internal_valid": self.internal_valid,
            "internal_broken": self.internal_broken,
            "peer_skipped": len(self.skipped_peer),
            "external_valid": self.external_valid,
            "external_broken": self.external_broken,
            "external_skipped": len(self.skipped_external),
            "key_skipped": len(self.skipped_keys),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "counts": self.counts(),
            "scanned_files": [str(path) for path in self.scanned_files],
            "parse_errors": {str(path): message for path, message in self.parse_errors.items()},
            "broken": [
                {
                    "source": str(outcome.record.source),
                    "line": outcome.record.line,
                    "element": outcome.record.element,
                    "kind": outcome.record.kind.value,
                    "target": outcome.record.target,
                    "reason": outcome.reason,
                }
                for outcome in self.broken
            ],
        }
