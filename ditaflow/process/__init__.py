"""Launching and supervising DITA-OT processes."""

from .commands import CommandLine, Invocation, resolve_script, select_strategy, transform_command
from .orchestrator import ProcessOrchestrator, RunningProcess, detect_tool_version

__all__ = [
    "CommandLine",
    "Invocation",
    "ProcessOrchestrator",
    "RunningProcess",
    "detect_tool_version",
    "resolve_script",
    "select_strategy",
    "transform_command",
]
