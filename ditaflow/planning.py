"""Expand a transformation request into individual DITA-OT invocations."""

from __future__ import annotations

import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .models import InvocationSpec, StrategyKind


@dataclass
class TransformRequest:
    """Everything needed to transform one or more inputs into one or more formats."""

    tool_home: Path
    inputs: Sequence[Path]
    output_dir: Path
    transtypes: Sequence[str] = ("html5",)
    temp_dir: Optional[Path] = None
    filter_file: Optional[Path] = None
    properties: Mapping[str, str] = field(default_factory=dict)
    single_output_dir: bool = False
    use_associated_filter: bool = False
    strategy: StrategyKind = StrategyKind.SCRIPT
    host_command: Sequence[str] = ()
    java: Optional[str] = None
    timeout: Optional[float] = None
    extra_args: Sequence[str] = ()
    env: Mapping[str, str] = field(default_factory=dict)


def associated_file(input_path: Path, extension: str) -> Path:
    """Return the sibling of ``input_path`` sharing its basename, e.g. ``root.ditaval``."""
    return input_path.with_name(f"{input_path.stem}{extension}")


def output_directory(request: TransformRequest, input_path: Path, transtype: str) -> Path:
    """Base output for one input, or ``<output>/<basename>`` when several inputs share it."""
    base = Path(request.output_dir)
    if not request.single_output_dir and len(request.inputs) > 1:
        base = base / input_path.stem
    if transtype and len(request.transtypes) > 1:
        base = base / transtype
    return base


def default_temp_dir() -> Path:
    return Path(tempfile.gettempdir()) / "ditaflow" / "temp"


def plan_invocations(request: TransformRequest) -> List[InvocationSpec]:
    """One spec per (input, transtype), inputs in order then transtypes in order."""
    if not request.transtypes:
        raise ValueError("At least one transtype is required")
    specs: List[InvocationSpec] = []
    temp_root = Path(request.temp_dir) if request.temp_dir is not None else default_temp_dir()
    for input_path in (Path(path) for path in request.inputs):
        filter_file = _filter_for(request, input_path)
        property_file = associated_file(input_path, ".properties")
        for transtype in request.transtypes:
            output = output_directory(request, input_path, transtype)
            specs.append(
                InvocationSpec(
                    tool_home=Path(request.tool_home),
                    inputs=(input_path,),
                    output_dir=output,
                    temp_dir=temp_root / f"{input_path.stem}-{transtype}",
                    transtype=transtype,
                    filter_file=filter_file,
                    properties=dict(request.properties),
                    strategy=request.strategy,
                    property_file=property_file if property_file.is_file() else None,
                    extra_args=tuple(request.extra_args),
                    env=dict(request.env),
                    timeout=request.timeout,
                    host_command=tuple(request.host_command),
                    java=request.java,
                )
            )
    return specs


def _filter_for(request: TransformRequest, input_path: Path) -> Optional[Path]:
    if request.filter_file is not None:
        return Path(request.filter_file)
    if request.use_associated_filter:
        candidate = associated_file(input_path, ".ditaval")
        if candidate.is_file():
            return candidate
    return None


def output_dirs(specs: Sequence[InvocationSpec]) -> Tuple[Path, ...]:
    seen: Dict[Path, None] = {}
    for spec in specs:
        seen.setdefault(Path(spec.output_dir), None)
    return tuple(seen)


__all__ = [
    "TransformRequest",
    "associated_file",
    "default_temp_dir",
    "output_directory",
    "output_dirs",
    "plan_invocations",
]
