"""Shared lxml parsing for DITA documents and DITA-OT configuration files."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator

from lxml import etree

XML_BASE = "{http://www.w3.org/XML/1998/namespace}base"


def document_parser() -> etree.XMLParser:
    """A parser that never loads DTDs, resolves entities, or touches the network."""
    return etree.XMLParser(
        load_dtd=False,
        dtd_validation=False,
        resolve_entities=False,
        no_network=True,
        huge_tree=False,
    )


def parse_document(path: Path) -> etree._ElementTree:
    """Parse ``path``; raises ``OSError`` or ``etree.XMLSyntaxError``."""
    with Path(path).open("rb") as handle:
        return etree.parse(handle, document_parser())


def elements(tree: etree._ElementTree) -> Iterator[etree._Element]:
    """Elements in document order, skipping comments, PIs and entity references."""
    return tree.getroot().iter(etree.Element)


def local_name(element: etree._Element) -> str:
    return etree.QName(element).localname


def describe_syntax_error(path: Path, exc: etree.XMLSyntaxError) -> str:
    message = exc.msg or str(exc)
    if exc.lineno:
        return f"{path}: {message} at line {exc.lineno}"
    return f"{path}: {message}"


__all__ = [
    "XML_BASE",
    "describe_syntax_error",
    "document_parser",
    "elements",
    "local_name",
    "parse_document",
]
