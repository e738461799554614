"""DITA-OT plugin installation through ``dita install``."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import List, Union

from .logging import get_logger
from .models import ExitKind, StrategyKind
from .process import CommandLine, ProcessOrchestrator

INSTALL_TIMEOUT = 300.0
MAX_CAPTURED_CHARS = 100 * 1024


@dataclass(frozen=True)
class Installed:
    plugin: str
    plugin_id: str


@dataclass(frozen=True)
class AlreadyInstalled:
    plugin: str
    plugin_id: str


@dataclass(frozen=True)
class InstallFailed:
    plugin: str
    message: str


InstallResult = Union[Installed, AlreadyInstalled, InstallFailed]


def plugin_id(plugin: str) -> str:
    """Derive the installed directory name from a URL, path, GitHub slug or id."""
    plugin = plugin.strip()
    lowered = plugin.lower()
    if lowered.startswith(("http://", "https://")):
        name = plugin.rstrip("/").rsplit("/", 1)[-1]
    elif lowered.startswith("file://"):
        name = PurePosixPath(plugin[len("file://"):]).name
    elif lowered.startswith("github.com/"):
        name = plugin.rstrip("/").rsplit("/", 1)[-1]
    elif "\\" in plugin:
        name = PureWindowsPath(plugin).name
    elif "/" in plugin:
        name = PurePosixPath(plugin).name
    else:
        return plugin
    return name[: -len(".zip")] if name.lower().endswith(".zip") else name


def install_command(plugin: str, *, force: bool = False) -> CommandLine:
    command = CommandLine(subcommand="install").positional(plugin)
    if force:
        command.trail("--force")
    return command


class PluginInstaller:
    """Installs plugins into a DITA-OT home, skipping ones already present."""

    def __init__(
        self,
        orchestrator: ProcessOrchestrator | None = None,
        *,
        timeout: float = INSTALL_TIMEOUT,
    ) -> None:
        self.orchestrator = orchestrator or ProcessOrchestrator()
        self.timeout = timeout
        self.logger = get_logger("plugins")
        self.tool_logger = get_logger("tool")

    def is_installed(self, tool_home: Path, plugin: str) -> bool:
        plugins_dir = Path(tool_home) / "plugins"
        if not plugins_dir.is_dir():
            return False
        identifier = plugin_id(plugin)
        return any(
            entry.is_dir() and (entry.name == identifier or entry.name.startswith(f"{identifier}-"))
            for entry in plugins_dir.iterdir()
        )

    def install(self, tool_home: Path, plugin: str, *, force: bool = False) -> InstallResult:
        """Install ``plugin``; configuration problems raise before anything runs."""
        identifier = plugin_id(plugin)
        if not force and self.is_installed(tool_home, plugin):
            self.logger.info("Plugin %s is already installed", identifier)
            return AlreadyInstalled(plugin=plugin, plugin_id=identifier)

        invocation = self.orchestrator.tool_invocation(
            Path(tool_home), install_command(plugin, force=force), strategy=StrategyKind.SCRIPT
        )
        self.logger.info("Installing plugin %s", plugin)
        captured: List[str] = []
        size = 0
        truncated = False
        with self.orchestrator.start(invocation, timeout=self.timeout) as running:
            for line in running.lines():
                self.tool_logger.debug(line.text)
                if size < MAX_CAPTURED_CHARS:
                    captured.append(line.text)
                    size += len(line.text) + 1
                elif not truncated:
                    captured.append("... (output truncated)")
                    truncated = True
            status = running.wait()

        if status.ok:
            return Installed(plugin=plugin, plugin_id=identifier)
        if status.kind is ExitKind.TIMED_OUT:
            message = f"Installation timed out after {self.timeout:g} seconds"
        elif status.kind is ExitKind.FAILED:
            message = f"Exit code: {status.code}"
            if captured:
                message += "\n" + "\n".join(captured)
        else:
            message = status.describe()
        return InstallFailed(plugin=plugin, message=message)


__all__ = [
    "AlreadyInstalled",
    "InstallFailed",
    "InstallResult",
    "Installed",
    "PluginInstaller",
    "install_command",
    "plugin_id",
]
