"""Command-line construction for DITA-OT invocations."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .. import messages
from ..classpath import ClasspathResolver
from ..errors import ConfigurationError
from ..models import (
    ExecutionStrategy,
    HostExec,
    InProcessClasspath,
    InvocationSpec,
    StrategyKind,
    SubprocessScript,
)
from ..platform import Platform

# Properties already expressed through dedicated options.
_RESERVED_PROPERTIES = frozenset(
    {"args.input", "output.dir", "dita.temp.dir", "args.filter", "transtype"}
)


@dataclass
class CommandLine:
    """Argument list builder that keeps every value in its own slot.

    Rendered order: executable, subcommand, positionals, option pairs,
    ``-D`` definitions, switches, trailing flags.
    """

    executable: Tuple[str, ...] = ()
    subcommand: Optional[str] = None
    positionals: List[str] = field(default_factory=list)
    options: List[Tuple[str, str]] = field(default_factory=list)
    definitions: List[str] = field(default_factory=list)
    switches: List[str] = field(default_factory=list)
    trailing: List[str] = field(default_factory=list)

    def positional(self, value: str | Path) -> "CommandLine":
        self.positionals.append(str(value))
        return self

    def option(self, flag: str, value: str | Path) -> "CommandLine":
        self.options.append((flag, str(value)))
        return self

    def define(self, name: str, value: str) -> "CommandLine":
        self.definitions.append(f"-D{name}={value}")
        return self

    def switch(self, flag: str) -> "CommandLine":
        self.switches.append(flag)
        return self

    def trail(self, flag: str) -> "CommandLine":
        """Append a flag that must follow the positional arguments."""
        self.trailing.append(flag)
        return self

    def with_executable(self, prefix: Sequence[str]) -> "CommandLine":
        self.executable = tuple(prefix)
        return self

    def to_args(self) -> List[str]:
        args: List[str] = list(self.executable)
        if self.subcommand:
            args.append(self.subcommand)
        args.extend(self.positionals)
        for flag, value in self.options:
            args.append(flag)
            args.append(value)
        args.extend(self.definitions)
        args.extend(self.switches)
        args.extend(self.trailing)
        return args


@dataclass(frozen=True)
class Invocation:
    """A fully resolved process launch."""

    args: Tuple[str, ...]
    cwd: Path
    env: Mapping[str, str]
    strategy: ExecutionStrategy

    def display(self) -> str:
        return " ".join(_quote_for_display(arg) for arg in self.args)


def resolve_script(tool_home: Path, platform: Platform) -> Path:
    """Probe ``bin/`` then the tool home root for the platform launcher."""
    candidates = platform.script_candidates(tool_home)
    for candidate in candidates:
        if candidate.is_file():
            return candidate.resolve()
    raise ConfigurationError(messages.script_not_found(candidates))


def select_strategy(
    kind: StrategyKind,
    tool_home: Path,
    *,
    platform: Platform,
    classpath_resolver: ClasspathResolver,
    host_command: Sequence[str] = (),
    java: Optional[str] = None,
) -> ExecutionStrategy:
    """Map the configured selector to exactly one strategy variant."""
    if kind is StrategyKind.SCRIPT:
        return SubprocessScript(script=resolve_script(tool_home, platform))
    if kind is StrategyKind.CLASSPATH:
        entries = classpath_resolver.compile_classpath(tool_home)
        return InProcessClasspath(java=java or platform.java_executable(), entries=entries)
    if kind is StrategyKind.HOST:
        if not host_command:
            raise ConfigurationError(messages.host_command_missing())
        return HostExec(command=tuple(host_command))
    raise ConfigurationError(f"Unknown execution strategy: {kind!r}")  # pragma: no cover


def launcher_prefix(
    strategy: ExecutionStrategy, tool_home: Path, platform: Platform
) -> Tuple[str, ...]:
    if isinstance(strategy, SubprocessScript):
        return platform.launcher_prefix(strategy.script)
    if isinstance(strategy, InProcessClasspath):
        classpath = platform.path_separator.join(str(entry) for entry in strategy.entries)
        return (
            strategy.java,
            "-cp",
            classpath,
            f"-Ddita.dir={tool_home}",
            f"-Dlogback.configurationFile={tool_home / 'config' / 'logback.xml'}",
            strategy.main_class,
        )
    if isinstance(strategy, HostExec):
        return strategy.command
    raise TypeError(f"Unsupported strategy variant: {type(strategy).__name__}")  # pragma: no cover


def transform_command(spec: InvocationSpec) -> CommandLine:
    """Return the tool arguments for a transformation (without the launcher)."""
    command = CommandLine()
    for input_path in spec.inputs:
        command.option("--input", Path(input_path).absolute())
    command.option("--format", spec.transtype)
    command.option("--output", Path(spec.output_dir).absolute())
    command.option("--temp", Path(spec.temp_dir).absolute())
    if spec.filter_file is not None:
        command.option("--filter", Path(spec.filter_file).absolute())
    if spec.property_file is not None:
        command.option("--propertyfile", Path(spec.property_file).absolute())
    for name, value in spec.properties.items():
        if name in _RESERVED_PROPERTIES:
            continue
        command.define(name, str(value))
    for extra in spec.extra_args:
        command.switch(extra)
    return command


def build_environment(
    tool_home: Path, extra: Mapping[str, str] | None = None
) -> Dict[str, str]:
    """Return a copy of the current environment with DITA_HOME injected."""
    env = os.environ.copy()
    env["DITA_HOME"] = str(tool_home)
    if extra:
        env.update({str(key): str(value) for key, value in extra.items()})
    return env


def _quote_for_display(arg: str) -> str:
    if not arg or any(char.isspace() for char in arg):
        return f'"{arg}"'
    return arg


__all__ = [
    "CommandLine",
    "Invocation",
    "build_environment",
    "launcher_prefix",
    "resolve_script",
    "select_strategy",
    "transform_command",
]
