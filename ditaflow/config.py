"""Configuration loading for ditaflow (.ditaflow.yml)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import yaml

from .errors import ConfigError
from .models import StrategyKind
from .output import MessageCodeRegistry, ProgressStyle

CONFIG_FILENAME = ".ditaflow.yml"


@dataclass
class ToolConfig:
    """Where DITA-OT lives and how it is launched."""

    home: Optional[Path] = None
    strategy: StrategyKind = StrategyKind.SCRIPT
    host_command: List[str] = field(default_factory=list)
    java: Optional[str] = None


@dataclass
class TransformConfig:
    transtypes: List[str] = field(default_factory=lambda: ["html5"])
    output: Optional[Path] = None
    temp: Optional[Path] = None
    filter: Optional[Path] = None
    properties: Dict[str, str] = field(default_factory=dict)
    single_output_dir: bool = False
    use_associated_filter: bool = False
    timeout: Optional[float] = None
    retries: int = 0


@dataclass
class ProgressConfig:
    style: str = "detailed"
    show_warnings: bool = False


@dataclass
class MessagesConfig:
    """Extra message-code prefixes registered alongside the defaults."""

    prefixes: List[str] = field(default_factory=list)


@dataclass
class LinkCheckConfig:
    check_external: bool = False
    recursive: bool = True
    follow_xrefs: bool = False
    fail_on_broken: bool = True
    connect_timeout: float = 5.0
    read_timeout: float = 10.0
    timeout: Optional[float] = None
    workers: int = 8
    exclude_urls: List[str] = field(default_factory=list)


@dataclass
class ValidateConfig:
    processing_mode: str = "strict"
    strict: bool = False
    timeout: Optional[float] = None


@dataclass
class DownloadConfig:
    """Which DITA-OT release `ditaflow download` fetches and where it goes."""

    version: str = "4.2.3"
    destination: Optional[Path] = None
    url: Optional[str] = None
    checksum: Optional[str] = None
    retries: int = 3
    timeout: float = 60.0
    cache_dir: Optional[Path] = None


@dataclass
class DitaFlowConfig:
    """Represents the settings defined in .ditaflow.yml."""

    root: Path
    tool: ToolConfig = field(default_factory=ToolConfig)
    transform: TransformConfig = field(default_factory=TransformConfig)
    progress: ProgressConfig = field(default_factory=ProgressConfig)
    messages: MessagesConfig = field(default_factory=MessagesConfig)
    link_check: LinkCheckConfig = field(default_factory=LinkCheckConfig)
    validate: ValidateConfig = field(default_factory=ValidateConfig)
    download: DownloadConfig = field(default_factory=DownloadConfig)


def load_config(config_path: Path, *, environ: Mapping[str, str] | None = None) -> DitaFlowConfig:
    """Load configuration from disk; a missing file yields defaults."""
    environ = os.environ if environ is None else environ
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    data: Dict[str, Any] = {}
    if config_file.exists():
        data = _read_config(config_file)

    tool_data = _as_dict(data.get("tool"))
    home = _as_path(tool_data.get("home"), root)
    if home is None and environ.get("DITA_HOME"):
        home = Path(environ["DITA_HOME"]).expanduser()
    strategy_name = _as_str(tool_data.get("strategy")) or StrategyKind.SCRIPT.value
    try:
        strategy = StrategyKind(strategy_name.lower())
    except ValueError as exc:
        choices = ", ".join(kind.value for kind in StrategyKind)
        raise ConfigError(
            f"Unknown tool.strategy {strategy_name!r} in {config_file.name}; expected one of: {choices}"
        ) from exc
    tool = ToolConfig(
        home=home,
        strategy=strategy,
        host_command=_as_str_list(tool_data.get("host_command")),
        java=_as_str(tool_data.get("java")),
    )

    transform_data = _as_dict(data.get("transform"))
    transform = TransformConfig(
        transtypes=_as_str_list(transform_data.get("transtypes")) or ["html5"],
        output=_as_path(transform_data.get("output"), root),
        temp=_as_path(transform_data.get("temp"), root),
        filter=_as_path(transform_data.get("filter"), root),
        properties={
            str(key): str(value)
            for key, value in _as_dict(transform_data.get("properties")).items()
            if value is not None
        },
        single_output_dir=_as_bool(transform_data.get("single_output_dir")) or False,
        use_associated_filter=_as_bool(transform_data.get("use_associated_filter")) or False,
        timeout=_as_float(transform_data.get("timeout")),
        retries=max(0, _as_int(transform_data.get("retries")) or 0),
    )

    progress_data = _as_dict(data.get("progress"))
    style = _as_str(progress_data.get("style")) or ProgressStyle.DETAILED.value
    try:
        style = ProgressStyle.parse(style).value
    except ValueError as exc:
        choices = ", ".join(item.value for item in ProgressStyle)
        raise ConfigError(
            f"Unknown progress.style {style!r} in {config_file.name}; expected one of: {choices}"
        ) from exc
    progress = ProgressConfig(
        style=style,
        show_warnings=_as_bool(progress_data.get("show_warnings")) or False,
    )

    messages_data = _as_dict(data.get("messages"))
    prefixes = _as_str_list(messages_data.get("prefixes"))
    try:
        MessageCodeRegistry(()).register(*prefixes)
    except ValueError as exc:
        raise ConfigError(
            f"Invalid messages.prefixes entry in {config_file.name}: {exc}; "
            "expected 2-10 letters or digits starting with a letter, such as ACME"
        ) from exc
    messages = MessagesConfig(prefixes=prefixes)

    link_data = _as_dict(data.get("link_check"))
    defaults = LinkCheckConfig()
    link_check = LinkCheckConfig(
        check_external=_bool_or(link_data.get("check_external"), defaults.check_external),
        recursive=_bool_or(link_data.get("recursive"), defaults.recursive),
        follow_xrefs=_bool_or(link_data.get("follow_xrefs"), defaults.follow_xrefs),
        fail_on_broken=_bool_or(link_data.get("fail_on_broken"), defaults.fail_on_broken),
        connect_timeout=_as_float(link_data.get("connect_timeout")) or defaults.connect_timeout,
        read_timeout=_as_float(link_data.get("read_timeout")) or defaults.read_timeout,
        timeout=_as_float(link_data.get("timeout")),
        workers=_as_int(link_data.get("workers")) or defaults.workers,
        exclude_urls=_as_str_list(link_data.get("exclude_urls")),
    )

    validate_data = _as_dict(data.get("validate"))
    validate = ValidateConfig(
        processing_mode=_as_str(validate_data.get("processing_mode")) or "strict",
        strict=_as_bool(validate_data.get("strict")) or False,
        timeout=_as_float(validate_data.get("timeout")),
    )

    download_data = _as_dict(data.get("download"))
    download_defaults = DownloadConfig()
    download_retries = _as_int(download_data.get("retries"))
    download = DownloadConfig(
        version=_as_str(download_data.get("version")) or download_defaults.version,
        destination=_as_path(download_data.get("destination"), root),
        url=_as_str(download_data.get("url")),
        checksum=_as_str(download_data.get("checksum")),
        retries=download_defaults.retries if download_retries is None else max(0, download_retries),
        timeout=_as_float(download_data.get("timeout")) or download_defaults.timeout,
        cache_dir=_as_path(download_data.get("cache_dir"), root),
    )

    return DitaFlowConfig(
        root=root,
        tool=tool,
        transform=transform,
        progress=progress,
        messages=messages,
        link_check=link_check,
        validate=validate,
        download=download,
    )


def _resolve_config_path(config_path: Path) -> Path:
    config_path = Path(config_path).expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to read {path}: {exc}") from exc
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"{path.name} must contain a mapping at the root")
    return loaded


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float, bool)) else None


def _as_path(value: Any, root: Path) -> Optional[Path]:
    text = _as_str(value)
    if not text:
        return None
    path = Path(text).expanduser()
    return path if path.is_absolute() else root / path


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _bool_or(value: Any, default: bool) -> bool:
    parsed = _as_bool(value)
    return default if parsed is None else parsed


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float, bool))]
    return []


__all__ = [
    "CONFIG_FILENAME",
    "DitaFlowConfig",
    "DownloadConfig",
    "LinkCheckConfig",
    "MessagesConfig",
    "ProgressConfig",
    "ToolConfig",
    "TransformConfig",
    "ValidateConfig",
    "load_config",
]
