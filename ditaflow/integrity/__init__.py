"""Reference integrity checks for DITA content."""

from .checker import CheckOptions, IntegrityChecker, resolve_reference
from .probe import ExternalProbe, ProbeResult
from .scanner import LinkScanError, LinkScanner

__all__ = [
    "CheckOptions",
    "ExternalProbe",
    "IntegrityChecker",
    "LinkScanError",
    "LinkScanner",
    "ProbeResult",
    "resolve_reference",
]
