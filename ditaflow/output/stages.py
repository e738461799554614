"""Ordered stage table for DITA-OT pipeline phases."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from ..models import Stage, StageEvent

# key, label
_STAGE_DEFINITIONS: Sequence[Tuple[str, str]] = (
    ("init", "Initializing"),
    ("preprocess", "Preprocessing"),
    ("debug-filter", "Filtering debug attributes"),
    ("mapref", "Resolving map references"),
    ("branch-filter", "Applying branch filters"),
    ("keyref", "Resolving key references"),
    ("copy-files", "Copying files"),
    ("conref", "Resolving content references"),
    ("coderef", "Resolving code references"),
    ("map-link", "Building map links"),
    ("chunk", "Chunking topics"),
    ("move-meta", "Moving metadata"),
    ("map-pull", "Processing map pull"),
    ("transform", "Transforming"),
    ("generate-outer", "Generating outer content"),
    ("generate-inner", "Generating content"),
    ("copy-resources", "Copying resources"),
    ("copy-css", "Copying CSS"),
    ("finalize", "Finalizing"),
    ("complete", "Complete"),
)

STAGES: Tuple[Stage, ...] = tuple(
    Stage(key=key, label=label, index=index)
    for index, (key, label) in enumerate(_STAGE_DEFINITIONS)
)
STAGES_BY_KEY: Dict[str, Stage] = {stage.key: stage for stage in STAGES}
INITIAL_STAGE = STAGES[0]
COMPLETE_STAGE = STAGES[-1]

Matcher = Callable[[str], bool]


def _any(*markers: str) -> Matcher:
    return lambda text: any(marker in text for marker in markers)


def _all(*markers: str) -> Matcher:
    return lambda text: all(marker in text for marker in markers)


@dataclass(frozen=True)
class StageRule:
    stage_key: str
    matches: Matcher


# Order matters: specific markers are tested before the general ones that
# would also match them (conkeyref/keyref, coderef/conref, xslt/transform).
DEFAULT_RULES: Tuple[StageRule, ...] = (
    StageRule("complete", _any("build successful", "build finished")),
    StageRule("debug-filter", _any("debug-filter")),
    StageRule("mapref", _any("mapref")),
    StageRule("branch-filter", _any("branch-filter")),
    StageRule("keyref", _any("conkeyref", "keyref")),
    StageRule("copy-files", _any("copy-files", "copying files")),
    StageRule("coderef", _any("coderef")),
    StageRule("conref", _any("conref")),
    StageRule("map-link", _any("maplink", "map-link")),
    StageRule("chunk", _any("chunk")),
    StageRule("move-meta", _any("move-meta")),
    StageRule("map-pull", _any("mappull", "map-pull")),
    StageRule("preprocess", _any("preprocess")),
    StageRule("generate-inner", _any("dita.xsl.html5", "dita.xsl.xhtml", "xslt")),
    StageRule("generate-outer", _all("outer", "generat")),
    StageRule("transform", _any("transform")),
    StageRule(
        "copy-css",
        lambda text: "copying css" in text
        or "copy-css" in text
        or (".css" in text and "copy" in text),
    ),
    StageRule("copy-resources", _all("copy", "resource")),
    StageRule("finalize", _any("finaliz")),
    StageRule("init", lambda text: "init" in text and "processing" not in text),
)

_FILE_COUNT_HINT = re.compile(r"\b(\d+)\s+(?:files?|topics?)\b", re.IGNORECASE)


class StageTable:
    """Maps stage-marker substrings in an output line to a pipeline stage."""

    def __init__(
        self,
        stages: Sequence[Stage] = STAGES,
        rules: Iterable[StageRule] = DEFAULT_RULES,
    ) -> None:
        self.stages: Tuple[Stage, ...] = tuple(stages)
        self._by_key = {stage.key: stage for stage in self.stages}
        self.rules: List[StageRule] = []
        for rule in rules:
            if rule.stage_key not in self._by_key:
                raise ValueError(f"Stage rule refers to unknown stage {rule.stage_key!r}")
            self.rules.append(rule)

    @property
    def total(self) -> int:
        return len(self.stages)

    @property
    def initial(self) -> Stage:
        return self.stages[0]

    @property
    def terminal(self) -> Stage:
        return self.stages[-1]

    def stage(self, key: str) -> Stage:
        return self._by_key[key]

    def detect(self, text: str) -> Optional[StageEvent]:
        lowered = text.lower()
        for rule in self.rules:
            if rule.matches(lowered):
                match = _FILE_COUNT_HINT.search(text)
                hint = int(match.group(1)) if match else None
                return StageEvent(stage=self._by_key[rule.stage_key], file_count_hint=hint)
        return None


__all__ = [
    "COMPLETE_STAGE",
    "DEFAULT_RULES",
    "INITIAL_STAGE",
    "STAGES",
    "STAGES_BY_KEY",
    "StageRule",
    "StageTable",
]
