"""End-to-end transformation: orchestrate, classify, summarize."""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from . import messages
from .logging import get_logger
from .models import ExitKind, InvocationSpec, TransformResult
from .output import OutputClassifier, ProgressReporter, ProgressTracker
from .process import ProcessOrchestrator, detect_tool_version
from .process.orchestrator import is_outdated_version
from .retry import RetryPolicy

_RETRYABLE = frozenset({ExitKind.FAILED, ExitKind.START_FAILED, ExitKind.TIMED_OUT})


class TransformPipeline:
    """Runs DITA-OT for one or more invocation specs and returns structured results."""

    def __init__(
        self,
        orchestrator: ProcessOrchestrator | None = None,
        *,
        classifier: OutputClassifier | None = None,
        reporter_factory: Callable[[], ProgressReporter] | None = None,
        retry: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.orchestrator = orchestrator or ProcessOrchestrator()
        self.classifier = classifier or OutputClassifier()
        self.reporter_factory = reporter_factory
        self.retry = retry or RetryPolicy()
        self._sleep = sleep
        self.logger = get_logger("pipeline")

    def transform(
        self, spec: InvocationSpec, *, cancel_event: Optional[threading.Event] = None
    ) -> TransformResult:
        """Run ``spec``, retrying whole invocations according to the retry policy.

        Configuration problems raise ``ConfigurationError`` before anything starts;
        process-level failures are reported through ``TransformResult.exit_status``.
        """
        self.orchestrator.validate(spec)
        return self.retry.run(
            lambda attempt: self._transform_once(spec, cancel_event),
            should_retry=lambda result: result.exit_status.kind in _RETRYABLE
            and not (cancel_event is not None and cancel_event.is_set()),
            sleep=self._sleep,
        )

    def transform_all(
        self,
        specs: Sequence[InvocationSpec],
        *,
        max_workers: int = 1,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[TransformResult]:
        """Run independent specs; a failed one never stops the others."""
        for spec in specs:
            self.orchestrator.validate(spec)
        if max_workers <= 1 or len(specs) <= 1:
            return [self.transform(spec, cancel_event=cancel_event) for spec in specs]
        cancel_event = cancel_event or threading.Event()
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = [
                executor.submit(self.transform, spec, cancel_event=cancel_event) for spec in specs
            ]
            try:
                return [future.result() for future in futures]
            except BaseException:
                # Workers only stop once their processes are cancelled.
                cancel_event.set()
                for future in futures:
                    future.cancel()
                raise

    def _transform_once(
        self, spec: InvocationSpec, cancel_event: Optional[threading.Event]
    ) -> TransformResult:
        tool_home = Path(spec.tool_home)
        version = detect_tool_version(tool_home)
        if is_outdated_version(version):
            self.logger.warning(
                "DITA-OT %s detected at %s; version 3.0 or newer is required", version, tool_home
            )
        self.logger.info(
            "Transforming %s to %s (DITA-OT %s)",
            ", ".join(Path(path).name for path in spec.inputs),
            spec.transtype,
            version,
        )

        reporter = self.reporter_factory() if self.reporter_factory is not None else None
        tracker = ProgressTracker(self.classifier, reporter=reporter)
        before = _snapshot(Path(spec.output_dir))
        started = time.monotonic()

        with self.orchestrator.run(spec, cancel_event=cancel_event) as running:
            for line in running.lines():
                tracker.consume(line)
            status = running.wait()
        duration = time.monotonic() - started

        outputs = _generated_files(Path(spec.output_dir), before)
        result = tracker.summarize(status, duration, outputs)
        result.transtype = spec.transtype
        result.inputs = [Path(path) for path in spec.inputs]
        result.tool_version = version
        if not status.ok:
            result.message = messages.transform_failure(
                status,
                transtype=spec.transtype,
                stage=result.stage,
                tool_version=version,
                tool_home=tool_home,
                tail=result.output_tail,
            )
            self.logger.error(result.message)
        elif result.errors:
            result.message = messages.coded_errors(result.errors, result.stage)
            self.logger.error(result.message)

        if reporter is not None:
            reporter.finish(
                succeeded=result.succeeded,
                stage=tracker.stage,
                total=self.classifier.stages.total,
                files=result.files_processed,
                duration=duration,
            )
        return result


def _snapshot(directory: Path) -> Dict[Path, float]:
    if not directory.is_dir():
        return {}
    return {path: path.stat().st_mtime for path in directory.rglob("*") if path.is_file()}


def _generated_files(directory: Path, before: Dict[Path, float]) -> List[Path]:
    after = _snapshot(directory)
    return sorted(path for path, mtime in after.items() if before.get(path) != mtime)


__all__ = ["TransformPipeline"]
