"""Platform detection and DITA-OT launcher naming."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple


@dataclass(frozen=True)
class Platform:
    """Operating-system facts that influence how DITA-OT is launched."""

    is_windows: bool

    @classmethod
    def current(cls) -> "Platform":
        return cls(is_windows=sys.platform.startswith("win") or os.name == "nt")

    @property
    def script_name(self) -> str:
        return "dita.bat" if self.is_windows else "dita"

    @property
    def path_separator(self) -> str:
        return ";" if self.is_windows else ":"

    def script_candidates(self, tool_home: Path) -> Tuple[Path, Path]:
        """Return the ``bin/`` location followed by the root location."""
        return (tool_home / "bin" / self.script_name, tool_home / self.script_name)

    def launcher_prefix(self, script: Path) -> Tuple[str, ...]:
        # Batch files cannot be executed directly by CreateProcess.
        if self.is_windows and script.suffix.lower() in {".bat", ".cmd"}:
            return ("cmd", "/c", str(script))
        return (str(script),)

    def java_executable(self, java_home: str | None = None) -> str:
        home = java_home if java_home is not None else os.environ.get("JAVA_HOME")
        name = "java.exe" if self.is_windows else "java"
        if home:
            candidate = Path(home) / "bin" / name
            if candidate.exists():
                return str(candidate)
        return "java"


__all__ = ["Platform"]
