"""DITA-OT message code recognition."""

from __future__ import annotations

import re
from typing import Iterable, Optional, Pattern, Tuple

from ..models import MessageCode, Severity

DEFAULT_PREFIXES: Tuple[str, ...] = ("DOTA", "DOTJ", "DOTX", "INDX", "PDFJ", "PDFX", "XEPJ")

_PREFIX_SHAPE = re.compile(r"^[A-Z][A-Z0-9]{1,9}$")


class MessageCodeRegistry:
    """Registered component prefixes and the code pattern derived from them.

    A code is only recognized in its bracketed form, ``[DOTJ013E]``; the bare
    identifier inside a path or a sentence does not count.
    """

    def __init__(self, prefixes: Iterable[str] = DEFAULT_PREFIXES) -> None:
        self._prefixes: Tuple[str, ...] = ()
        self._pattern: Optional[Pattern[str]] = None
        self.register(*prefixes)

    @property
    def prefixes(self) -> Tuple[str, ...]:
        return self._prefixes

    def register(self, *prefixes: str) -> "MessageCodeRegistry":
        merged = list(self._prefixes)
        for prefix in prefixes:
            normalized = prefix.strip().upper()
            if not _PREFIX_SHAPE.match(normalized):
                raise ValueError(f"Invalid message code prefix: {prefix!r}")
            if normalized not in merged:
                merged.append(normalized)
        self._prefixes = tuple(merged)
        self._pattern = self._compile()
        return self

    def extended(self, *prefixes: str) -> "MessageCodeRegistry":
        """Return a new registry with extra prefixes; this one is unchanged."""
        return MessageCodeRegistry(self._prefixes).register(*prefixes)

    def find(self, text: str) -> Optional[MessageCode]:
        """Return the first registered code in ``text``."""
        if self._pattern is None:
            return None
        match = self._pattern.search(text)
        if match is None:
            return None
        return MessageCode(
            prefix=match.group("prefix"),
            number=match.group("number"),
            severity=Severity(match.group("severity")),
        )

    def _compile(self) -> Optional[Pattern[str]]:
        if not self._prefixes:
            return None
        # Longer prefixes first so overlapping registrations stay unambiguous.
        alternatives = "|".join(
            re.escape(prefix) for prefix in sorted(self._prefixes, key=len, reverse=True)
        )
        return re.compile(
            rf"\[(?P<prefix>{alternatives})(?P<number>\d{{3}})(?P<severity>[IWEF])\]"
        )

    def __contains__(self, prefix: object) -> bool:
        return isinstance(prefix, str) and prefix.upper() in self._prefixes

    def __repr__(self) -> str:
        return f"MessageCodeRegistry({list(self._prefixes)!r})"


__all__ = ["DEFAULT_PREFIXES", "MessageCodeRegistry"]
