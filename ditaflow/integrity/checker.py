"""Reference integrity checking across a DITA map/topic graph."""

from __future__ import annotations

import os
import time
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Deque, List, Optional, Sequence, Set, Tuple
from urllib.parse import unquote, urlsplit
from urllib.request import url2pathname

from ..logging import get_logger
from ..models import (
    CheckResult,
    LinkKind,
    LinkOutcome,
    LinkRecord,
    LinkScope,
    LinkStatus,
)
from .probe import ExternalProbe, is_excluded
from .scanner import LinkScanError, LinkScanner, is_dita_document, is_external_url


@dataclass
class CheckOptions:
    """Knobs for one integrity check."""

    check_external: bool = False
    recursive: bool = True
    follow_xrefs: bool = False
    connect_timeout: float = 5.0
    read_timeout: float = 10.0
    timeout: Optional[float] = None
    workers: int = 8
    exclude_urls: Sequence[str] = field(default_factory=tuple)


class IntegrityChecker:
    """Walks maps and topics from root documents and buckets every reference.

    Fragment identifiers are stripped before the file check; the element ids
    they name are not verified.
    """

    def __init__(
        self,
        *,
        scanner: LinkScanner | None = None,
        probe_factory=None,
    ) -> None:
        self.scanner = scanner or LinkScanner()
        self._probe_factory = probe_factory or _default_probe
        self.logger = get_logger("integrity")

    def check(self, root_documents: Sequence[Path], options: CheckOptions | None = None) -> CheckResult:
        options = options or CheckOptions()
        started = time.monotonic()
        deadline = started + options.timeout if options.timeout is not None else None

        result = CheckResult()
        visited: Set[Path] = set()
        queue: Deque[Path] = deque()
        for root in root_documents:
            root = Path(root)
            if not root.is_file():
                self.logger.warning("File not found: %s", root.absolute())
                result.parse_errors[root] = f"File not found: {root.absolute()}"
                continue
            if not is_dita_document(root):
                self.logger.warning("Skipping %s: not a DITA document", root.absolute())
                result.parse_errors[root] = f"Not a DITA document: {root.absolute()}"
                continue
            self._enqueue(root, visited, queue)

        slots: List[Tuple[LinkRecord, Optional[LinkOutcome]]] = []
        urls_to_probe: List[str] = []

        while queue:
            document = queue.popleft()
            result.scanned_files.append(document)
            try:
                records = self.scanner.scan(document)
            except LinkScanError as exc:
                self.logger.warning("Failed to parse %s: %s", document.name, exc)
                result.parse_errors[document] = str(exc)
                continue

            for record in records:
                outcome, target = self._classify(record, options)
                if outcome is None:
                    urls_to_probe.append(record.target.strip())
                slots.append((record, outcome))
                if target is not None and self._should_follow(record, options):
                    self._enqueue(target, visited, queue)

        probe_results = {}
        if urls_to_probe:
            probe = self._probe_factory(options)
            self.logger.info("Probing %d external URL(s)", len(set(urls_to_probe)))
            probe_results = probe.probe_all(urls_to_probe, deadline=deadline)

        for record, outcome in slots:
            if outcome is None:
                probed = probe_results[record.target.strip()]
                if probed.skipped:
                    outcome = LinkOutcome(record, LinkStatus.SKIPPED_EXTERNAL, probed.reason)
                elif probed.ok:
                    outcome = LinkOutcome(record, LinkStatus.VALID)
                else:
                    outcome = LinkOutcome(record, LinkStatus.BROKEN, probed.reason)
            if outcome.status is LinkStatus.BROKEN:
                self.logger.warning(
                    "Broken %s in %s -> %s (%s)",
                    record.kind.value,
                    record.locator,
                    record.target,
                    outcome.reason,
                )
            result.outcomes.append(outcome)

        self.logger.debug(
            "Checked %d link(s) in %d file(s) in %.2fs",
            result.total,
            len(result.scanned_files),
            time.monotonic() - started,
        )
        return result

    def _classify(
        self, record: LinkRecord, options: CheckOptions
    ) -> Tuple[Optional[LinkOutcome], Optional[Path]]:
        """Return the outcome (``None`` when a probe is needed) and a followable target."""
        if record.kind.needs_key_resolution:
            return LinkOutcome(record, LinkStatus.SKIPPED_KEY, "key resolution requires DITA-OT"), None
        if record.scope is LinkScope.PEER:
            return LinkOutcome(record, LinkStatus.SKIPPED_PEER, "peer scope"), None
        if record.scope is LinkScope.EXTERNAL:
            return self._classify_external(record, options), None

        target = record.target.strip()
        if target.startswith("#"):
            return LinkOutcome(record, LinkStatus.VALID), None
        location, _, _ = target.partition("#")
        if not location:
            return LinkOutcome(record, LinkStatus.VALID), None

        parts = urlsplit(location)
        # Single-letter schemes are Windows drive letters.
        if len(parts.scheme) > 1 and parts.scheme.lower() != "file":
            return (
                LinkOutcome(record, LinkStatus.SKIPPED_EXTERNAL, f"{parts.scheme}: reference"),
                None,
            )
        resolved = resolve_reference(record.source, location)
        if resolved.is_file():
            return LinkOutcome(record, LinkStatus.VALID), resolved
        if resolved.is_dir():
            return LinkOutcome(record, LinkStatus.BROKEN, f"Not a file: {resolved}"), None
        return LinkOutcome(record, LinkStatus.BROKEN, f"File not found: {resolved}"), None

    def _classify_external(self, record: LinkRecord, options: CheckOptions) -> Optional[LinkOutcome]:
        target = record.target.strip()
        if not options.check_external:
            return LinkOutcome(record, LinkStatus.SKIPPED_EXTERNAL, "external checks disabled")
        if not is_external_url(target):
            return LinkOutcome(record, LinkStatus.SKIPPED_EXTERNAL, "external scope without URL")
        if is_excluded(target, options.exclude_urls):
            return LinkOutcome(record, LinkStatus.SKIPPED_EXTERNAL, "excluded by pattern")
        if not target.lower().startswith(("http://", "https://")):
            return LinkOutcome(record, LinkStatus.SKIPPED_EXTERNAL, "only HTTP(S) URLs are probed")
        return None

    @staticmethod
    def _should_follow(record: LinkRecord, options: CheckOptions) -> bool:
        if not options.recursive:
            return False
        if record.kind is LinkKind.MAPREF:
            return True
        return options.follow_xrefs and record.kind is LinkKind.XREF

    def _enqueue(self, path: Path, visited: Set[Path], queue: Deque[Path]) -> None:
        canonical = Path(os.path.realpath(path))
        if canonical in visited:
            return
        if not canonical.is_file() or not is_dita_document(canonical):
            return
        visited.add(canonical)
        queue.append(canonical)


def resolve_reference(source: Path, reference: str) -> Path:
    """Resolve an href-style reference (without fragment) against ``source``."""
    parts = urlsplit(reference)
    if parts.scheme.lower() == "file":
        return Path(url2pathname(unquote(parts.path)))
    decoded = unquote(reference)
    candidate = Path(decoded)
    if candidate.is_absolute():
        return candidate
    return Path(os.path.normpath(source.parent / candidate))


def _default_probe(options: CheckOptions) -> ExternalProbe:
    return ExternalProbe(
        connect_timeout=options.connect_timeout,
        read_timeout=options.read_timeout,
        workers=options.workers,
    )


__all__ = ["CheckOptions", "IntegrityChecker", "resolve_reference"]
