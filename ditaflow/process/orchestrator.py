"""Process lifecycle management for DITA-OT invocations."""

from __future__ import annotations

import os
import queue
import signal
import subprocess
import threading
import time
from collections import deque
from concurrent.futures import Future
from pathlib import Path
from typing import Callable, Iterator, List, Mapping, Optional, Sequence

from .. import messages
from ..classpath import ClasspathResolver
from ..errors import ConfigurationError
from ..logging import get_logger
from ..models import ExitKind, ExitStatus, InvocationSpec, LogLine, StrategyKind
from ..platform import Platform
from .commands import (
    CommandLine,
    Invocation,
    build_environment,
    launcher_prefix,
    select_strategy,
    transform_command,
)

_END_OF_STREAM = object()


class RunningProcess:
    """A started (or failed-to-start) DITA-OT process.

    ``lines()`` yields merged stdout/stderr incrementally while a dedicated reader
    thread drains the pipe, and ``exit_status`` resolves once the process exits.
    """

    def __init__(
        self,
        invocation: Invocation,
        process: Optional[subprocess.Popen] = None,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
        grace_period: float = 5.0,
        tail_size: int = 20,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.invocation = invocation
        self.exit_status: Future[ExitStatus] = Future()
        self.timeout = timeout
        self._process = process
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._tail: deque[str] = deque(maxlen=tail_size)
        self._grace_period = grace_period
        self._clock = clock
        self._lock = threading.Lock()
        self._termination: Optional[ExitKind] = None
        self._timer: Optional[threading.Timer] = None
        self.logger = get_logger("process")

        if process is None:
            return

        reader = threading.Thread(target=self._pump, name="ditaflow-output-reader", daemon=True)
        reader.start()
        if timeout is not None:
            self._timer = threading.Timer(timeout, self._terminate, args=(ExitKind.TIMED_OUT,))
            self._timer.daemon = True
            self._timer.start()
        if cancel_event is not None:
            watcher = threading.Thread(
                target=self._watch_cancel,
                args=(cancel_event,),
                name="ditaflow-cancel-watcher",
                daemon=True,
            )
            watcher.start()

    def __enter__(self) -> "RunningProcess":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        # A consumer that leaves early (an exception, Ctrl-C) must not orphan the
        # process: it runs in its own session and never sees the terminal's SIGINT.
        if not self.exit_status.done() and self.cancel():
            self.logger.warning("Cancelled DITA-OT process %s after early exit", self.pid)

    @classmethod
    def failed_to_start(cls, invocation: Invocation, detail: str) -> "RunningProcess":
        running = cls(invocation)
        running._queue.put(_END_OF_STREAM)
        running.exit_status.set_result(ExitStatus(ExitKind.START_FAILED, None, detail))
        return running

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process is not None else None

    @property
    def tail(self) -> List[str]:
        """Most recent output lines, verbatim."""
        return list(self._tail)

    def lines(self) -> Iterator[LogLine]:
        while True:
            item = self._queue.get()
            if item is _END_OF_STREAM:
                # Leave the marker for any other consumer.
                self._queue.put(_END_OF_STREAM)
                return
            yield item  # type: ignore[misc]

    def wait(self, timeout: Optional[float] = None) -> ExitStatus:
        return self.exit_status.result(timeout)

    def cancel(self) -> bool:
        """Terminate the process; the exit status resolves to ``cancelled``."""
        return self._terminate(ExitKind.CANCELLED)

    # ------------------------------------------------------------------
    # Internals

    def _pump(self) -> None:
        process = self._process
        assert process is not None and process.stdout is not None
        sequence = 0
        try:
            for raw in process.stdout:
                text = raw.rstrip("\r\n")
                self._tail.append(text)
                self._queue.put(LogLine(text=text, sequence=sequence, timestamp=self._clock()))
                sequence += 1
        except (OSError, ValueError) as exc:
            # The pipe closes underneath us when the process is killed.
            self.logger.debug("Output reader stopped: %s", exc)
        finally:
            process.stdout.close()
            code = process.wait()
            if self._timer is not None:
                self._timer.cancel()
            self._queue.put(_END_OF_STREAM)
            self._resolve(code)

    def _resolve(self, code: int) -> None:
        with self._lock:
            termination = self._termination
        if termination is ExitKind.CANCELLED:
            status = ExitStatus(ExitKind.CANCELLED, code, "cancelled by caller")
        elif termination is ExitKind.TIMED_OUT:
            status = ExitStatus(ExitKind.TIMED_OUT, code, f"deadline of {self.timeout:g}s exceeded")
        else:
            status = ExitStatus.from_code(code)
        if not self.exit_status.done():
            self.exit_status.set_result(status)

    def _watch_cancel(self, event: threading.Event) -> None:
        while not self.exit_status.done():
            if event.wait(0.1):
                self._terminate(ExitKind.CANCELLED)
                return

    def _terminate(self, kind: ExitKind) -> bool:
        process = self._process
        if process is None:
            return False
        with self._lock:
            if self._termination is not None or process.poll() is not None:
                return False
            self._termination = kind
        self.logger.info("Terminating DITA-OT process %s (%s)", process.pid, kind.value)
        _signal_tree(process, signal.SIGTERM)
        try:
            process.wait(self._grace_period)
        except subprocess.TimeoutExpired:
            self.logger.warning("DITA-OT process %s ignored SIGTERM; killing it", process.pid)
            _signal_tree(process, getattr(signal, "SIGKILL", signal.SIGTERM))
        return True


class ProcessOrchestrator:
    """Builds invocations for DITA-OT and starts them."""

    def __init__(
        self,
        *,
        platform: Platform | None = None,
        classpath_resolver: ClasspathResolver | None = None,
        popen: Callable[..., subprocess.Popen] | None = None,
        grace_period: float = 5.0,
        tail_size: int = 20,
    ) -> None:
        self.platform = platform or Platform.current()
        self.classpath_resolver = classpath_resolver or ClasspathResolver()
        self._popen = popen or subprocess.Popen
        self.grace_period = grace_period
        self.tail_size = tail_size
        self.logger = get_logger("orchestrator")

    def run(
        self,
        spec: InvocationSpec,
        *,
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> RunningProcess:
        """Validate, build, and start a transformation."""
        invocation = self.build_invocation(spec)
        effective_timeout = timeout if timeout is not None else spec.timeout
        return self.start(invocation, timeout=effective_timeout, cancel_event=cancel_event)

    def build_invocation(self, spec: InvocationSpec) -> Invocation:
        self.validate(spec)
        Path(spec.output_dir).mkdir(parents=True, exist_ok=True)
        Path(spec.temp_dir).mkdir(parents=True, exist_ok=True)
        return self.tool_invocation(
            Path(spec.tool_home),
            transform_command(spec),
            strategy=spec.strategy,
            env=spec.env,
            host_command=spec.host_command,
            java=spec.java,
        )

    def tool_invocation(
        self,
        tool_home: Path,
        command: CommandLine,
        *,
        strategy: StrategyKind = StrategyKind.SCRIPT,
        env: Mapping[str, str] | None = None,
        host_command: Sequence[str] = (),
        java: Optional[str] = None,
    ) -> Invocation:
        """Resolve the launcher for ``command`` against the chosen strategy."""
        tool_home = self.check_tool_home(tool_home)
        variant = select_strategy(
            strategy,
            tool_home,
            platform=self.platform,
            classpath_resolver=self.classpath_resolver,
            host_command=host_command,
            java=java,
        )
        command.with_executable(launcher_prefix(variant, tool_home, self.platform))
        return Invocation(
            args=tuple(command.to_args()),
            cwd=tool_home,
            env=build_environment(tool_home, env),
            strategy=variant,
        )

    def start(
        self,
        invocation: Invocation,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> RunningProcess:
        self.logger.debug("Executing: %s", invocation.display())
        kwargs: dict[str, object] = {}
        if self.platform.is_windows:
            kwargs["creationflags"] = getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0)
        else:
            # Own process group so termination reaches the JVM behind the launcher.
            kwargs["start_new_session"] = True
        try:
            process = self._popen(
                list(invocation.args),
                cwd=str(invocation.cwd),
                env=dict(invocation.env),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                **kwargs,
            )
        except OSError as exc:
            self.logger.error("Failed to start %s: %s", invocation.args[0], exc)
            return RunningProcess.failed_to_start(invocation, f"{invocation.args[0]}: {exc}")
        return RunningProcess(
            invocation,
            process,
            timeout=timeout,
            cancel_event=cancel_event,
            grace_period=self.grace_period,
            tail_size=self.tail_size,
        )

    def validate(self, spec: InvocationSpec) -> None:
        """Fail fast on configuration problems before any process starts."""
        self.check_tool_home(Path(spec.tool_home))
        if not spec.inputs:
            raise ConfigurationError("No input documents were given for the transformation.")
        for input_path in spec.inputs:
            path = Path(input_path)
            if not path.is_file():
                raise ConfigurationError(messages.input_not_found(path.absolute()))
            if not os.access(path, os.R_OK):
                raise ConfigurationError(messages.input_not_readable(path.absolute()))
        if spec.filter_file is not None and not Path(spec.filter_file).is_file():
            raise ConfigurationError(messages.filter_not_found(Path(spec.filter_file).absolute()))

    @staticmethod
    def check_tool_home(tool_home: Path) -> Path:
        tool_home = Path(tool_home).expanduser()
        if not tool_home.exists():
            raise ConfigurationError(messages.tool_home_not_found(tool_home.absolute()))
        if not tool_home.is_dir():
            raise ConfigurationError(messages.tool_home_not_directory(tool_home.absolute()))
        return tool_home.resolve()


def detect_tool_version(tool_home: Path) -> str:
    """Return the DITA-OT version from its VERSION file, or ``unknown``."""
    version_file = Path(tool_home) / "VERSION"
    try:
        text = version_file.read_text(encoding="utf-8").strip()
    except OSError:
        return "unknown"
    for line in text.splitlines():
        line = line.strip()
        if line.lower().startswith("version="):
            return line.split("=", 1)[1].strip() or "unknown"
        if line:
            return line
    return "unknown"


def is_outdated_version(version: str) -> bool:
    major = version.split(".", 1)[0]
    return major.isdigit() and int(major) < 3


def _signal_tree(process: subprocess.Popen, signum: int) -> None:
    try:
        if os.name == "posix":
            os.killpg(os.getpgid(process.pid), signum)
        elif signum == signal.SIGTERM:
            process.terminate()
        else:
            process.kill()
    except (ProcessLookupError, PermissionError, OSError):
        # Already gone.
        pass


__all__ = ["ProcessOrchestrator", "RunningProcess", "detect_tool_version", "is_outdated_version"]
