"""User-facing failure messages with remedies."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

from .models import ExitKind, ExitStatus

TOOL_HOME_MISSING = (
    "You must specify the DITA-OT directory (tool.home in .ditaflow.yml, --dita-home, "
    "or the DITA_HOME environment variable)."
)


def tool_home_not_found(tool_home: Path) -> str:
    return (
        f"DITA-OT directory does not exist: {tool_home}\n"
        "Install DITA-OT 3.0+ and point --dita-home (or tool.home) at its root directory."
    )


def tool_home_not_directory(tool_home: Path) -> str:
    return f"DITA-OT path is not a directory: {tool_home}"


def script_not_found(candidates: Sequence[Path]) -> str:
    locations = " or ".join(str(path) for path in candidates)
    return (
        f"DITA-OT script not found at either location: {locations}\n"
        "This requires DITA-OT 3.0+ which ships the dita/dita.bat launcher "
        "(in bin/ or the root directory)."
    )


def input_not_found(path: Path) -> str:
    return f"Input file does not exist: {path}"


def input_not_readable(path: Path) -> str:
    return f"Input file is not readable: {path}. Check its permissions."


def filter_not_found(path: Path) -> str:
    return f"DITAVAL filter file does not exist: {path}"


def host_command_missing() -> str:
    return (
        "The 'host' execution strategy needs a command prefix. "
        "Set tool.host_command in .ditaflow.yml or choose the 'script' strategy."
    )


def transform_failure(
    status: ExitStatus,
    *,
    transtype: str | None,
    stage: str,
    tool_version: str,
    tool_home: Path,
    tail: Sequence[str] = (),
) -> str:
    """Describe a failed transformation: what failed, how far it got, what to try."""
    subject = f"DITA-OT {transtype} transformation" if transtype else "DITA-OT transformation"
    lines = [
        f"{subject} {status.describe()} at stage '{stage}' "
        f"(DITA-OT {tool_version} at {tool_home})."
    ]
    if status.kind is ExitKind.START_FAILED:
        lines.append("Check that the launcher is executable and that Java is installed and on PATH.")
    elif status.kind is ExitKind.TIMED_OUT:
        lines.append("Increase transform.timeout or split the map into smaller deliverables.")
    elif status.kind is ExitKind.CANCELLED:
        lines.append("The run was cancelled before DITA-OT finished; outputs may be incomplete.")
    else:
        lines.append("Review the DITA-OT messages below, or rerun with --verbose for the full log.")
    if tail:
        lines.append("Last output lines:")
        lines.extend(f"  {line}" for line in tail)
    return "\n".join(lines)


def validation_exit_without_codes(status: ExitStatus, tail: Sequence[str] = ()) -> str:
    lines = [
        f"DITA-OT validation {status.describe()} without reporting a coded error. "
        "Check the input is well-formed and rerun with --verbose."
    ]
    if tail:
        lines.append("Last output lines:")
        lines.extend(f"  {line}" for line in tail)
    return "\n".join(lines)


def coded_errors(errors: int, stage: str) -> str:
    return (
        f"DITA-OT reported {errors} error(s) while reaching stage '{stage}'. "
        "Fix the reported message codes or rerun with --verbose."
    )


def download_http_error(status: int, url: str, version: str) -> str:
    return (
        f"Failed to download DITA-OT: HTTP {status}\nURL: {url}\n"
        f"Check that DITA-OT {version} exists "
        "(https://github.com/dita-ot/dita-ot/releases) and that the network is reachable."
    )


def checksum_mismatch(archive: Path, algorithm: str, expected: str, actual: str) -> str:
    return (
        f"Checksum verification failed for {archive.name}\n"
        f"Expected ({algorithm}): {expected}\n"
        f"Actual ({algorithm}):   {actual}\n"
        "The archive may be corrupted or tampered with; it has been deleted. Download it again."
    )


def invalid_installation(tool_home: Path) -> str:
    return (
        f"DITA-OT extraction produced an invalid installation at {tool_home} "
        f"(expected {tool_home / 'build.xml'} and a bin/ directory).\n"
        "Check that the archive is a DITA-OT release and that the destination is writable."
    )


__all__ = [
    "TOOL_HOME_MISSING",
    "checksum_mismatch",
    "coded_errors",
    "download_http_error",
    "filter_not_found",
    "host_command_missing",
    "input_not_found",
    "input_not_readable",
    "invalid_installation",
    "script_not_found",
    "tool_home_not_directory",
    "tool_home_not_found",
    "transform_failure",
    "validation_exit_without_codes",
]
