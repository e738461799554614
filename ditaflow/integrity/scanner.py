"""Reference extraction from DITA maps and topics."""

from __future__ import annotations

import re
from pathlib import Path
from typing import List, Optional

from lxml import etree

from ..errors import DitaFlowError
from ..models import LinkKind, LinkRecord, LinkScope
from ..xmlutils import describe_syntax_error, elements, local_name, parse_document

DITA_EXTENSIONS = frozenset({".dita", ".ditamap", ".xml"})

MAP_REFERENCE_ELEMENTS = frozenset(
    {
        "topicref",
        "chapter",
        "appendix",
        "part",
        "mapref",
        "glossref",
        "keydef",
        "anchorref",
        "preface",
        "notices",
        "frontmatter",
        "backmatter",
        "topichead",
        "topicgroup",
    }
)
CROSS_REFERENCE_ELEMENTS = frozenset({"xref", "link"})

_EXTERNAL_URL = re.compile(r"^(https?|ftp)://", re.IGNORECASE)


class LinkScanError(DitaFlowError):
    """Raised when a document cannot be parsed."""


def is_external_url(target: str) -> bool:
    return bool(_EXTERNAL_URL.match(target.strip()))


def is_dita_document(path: Path) -> bool:
    return path.suffix.lower() in DITA_EXTENSIONS


class LinkScanner:
    """Collects every reference in one document together with its line number."""

    def scan(self, path: Path) -> List[LinkRecord]:
        try:
            tree = parse_document(path)
        except etree.XMLSyntaxError as exc:
            raise LinkScanError(describe_syntax_error(path, exc)) from exc
        except OSError as exc:
            raise LinkScanError(f"{path}: {exc}") from exc

        records: List[LinkRecord] = []
        for node in elements(tree):
            element = local_name(node)
            line = node.sourceline or 0
            scope = _scope(node.get("scope"))
            href = (node.get("href") or "").strip()
            if href:
                records.append(_record(path, line, element, _href_kind(element), href, scope))
            for attribute, kind in (
                ("conref", LinkKind.CONREF),
                ("keyref", LinkKind.KEYREF),
                ("conkeyref", LinkKind.CONKEYREF),
            ):
                value = (node.get(attribute) or "").strip()
                if value:
                    records.append(_record(path, line, element, kind, value, LinkScope.LOCAL))
        return records


def _record(
    source: Path, line: int, element: str, kind: LinkKind, target: str, scope: LinkScope
) -> LinkRecord:
    if is_external_url(target):
        scope = LinkScope.EXTERNAL
    return LinkRecord(
        source=source, line=line, element=element, kind=kind, target=target, scope=scope
    )


def _href_kind(element: str) -> LinkKind:
    if element == "image":
        return LinkKind.IMAGE
    if element in CROSS_REFERENCE_ELEMENTS:
        return LinkKind.XREF
    if element in MAP_REFERENCE_ELEMENTS:
        return LinkKind.MAPREF
    return LinkKind.HREF


def _scope(value: Optional[str]) -> LinkScope:
    normalized = (value or "").strip().lower()
    if normalized == "peer":
        return LinkScope.PEER
    if normalized == "external":
        return LinkScope.EXTERNAL
    return LinkScope.LOCAL


__all__ = [
    "CROSS_REFERENCE_ELEMENTS",
    "DITA_EXTENSIONS",
    "LinkScanError",
    "LinkScanner",
    "MAP_REFERENCE_ELEMENTS",
    "is_dita_document",
    "is_external_url",
]
