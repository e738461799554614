"""Classpath discovery from the DITA-OT plugin registry."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Sequence, Tuple

from lxml import etree

from .errors import ClasspathError
from .logging import get_logger
from .xmlutils import XML_BASE, describe_syntax_error, parse_document

_REGISTRY_LOCATIONS: Sequence[str] = ("config/plugins.xml", "resources/plugins.xml")

_EXCLUDED_JARS = {"lib/ant-launcher.jar", "lib/ant.jar"}


class ClasspathResolver:
    """Resolves the archives needed to run DITA-OT's Java entry point."""

    def __init__(self) -> None:
        self.logger = get_logger("classpath")

    def registry_file(self, tool_home: Path) -> Path:
        candidates = [tool_home / location for location in _REGISTRY_LOCATIONS]
        for candidate in candidates:
            if candidate.is_file():
                return candidate
        locations = " or ".join(str(candidate) for candidate in candidates)
        raise ClasspathError(
            f"Can't find DITA-OT plugin registry at {locations}. "
            "Are you sure you're pointing at a valid DITA-OT directory?"
        )

    def plugin_archives(self, tool_home: Path) -> List[Path]:
        """Return archives declared by installed plugins, in registry order."""
        registry = self.registry_file(tool_home)
        try:
            root = parse_document(registry).getroot()
        except etree.XMLSyntaxError as exc:
            raise ClasspathError(
                f"Failed to parse DITA-OT plugin registry {describe_syntax_error(registry, exc)}"
            ) from exc
        except OSError as exc:
            raise ClasspathError(f"Failed to read DITA-OT plugin registry {registry}: {exc}") from exc

        archives: List[Path] = []
        for plugin in root.iter("plugin"):
            xml_base = plugin.get(XML_BASE)
            if not xml_base:
                continue
            plugin_dir = (registry.parent / xml_base).resolve()
            if not plugin_dir.exists():
                raise ClasspathError(
                    f"Plugin directory does not exist: {plugin_dir} (declared in {registry}). "
                    "Reinstall the plugin or run `dita install` to refresh the registry."
                )
            for feature in plugin.iter("feature"):
                file_attr = feature.get("file")
                if file_attr:
                    archives.append(plugin_dir / file_attr)

        if not archives:
            raise ClasspathError(f"No plugin archives found in {registry}")
        self.logger.debug("Resolved %d plugin archives from %s", len(archives), registry)
        return archives

    def compile_classpath(self, tool_home: Path) -> Tuple[Path, ...]:
        """Return the full classpath: configuration, toolkit jars, plugin archives."""
        entries: List[Path] = []
        for directory in ("config", "resources"):
            candidate = tool_home / directory
            if candidate.is_dir():
                entries.append(candidate)

        lib_dir = tool_home / "lib"
        if lib_dir.is_dir():
            for jar in sorted(lib_dir.rglob("*.jar")):
                relative = jar.relative_to(tool_home).as_posix()
                if relative in _EXCLUDED_JARS:
                    continue
                entries.append(jar)

        entries.extend(self.plugin_archives(tool_home))
        return tuple(_unique(entries))


def _unique(paths: Iterable[Path]) -> List[Path]:
    seen: set[Path] = set()
    ordered: List[Path] = []
    for path in paths:
        if path in seen:
            continue
        seen.add(path)
        ordered.append(path)
    return ordered


__all__ = ["ClasspathResolver"]
