"""Text summaries rendered from Jinja2 templates."""

from __future__ import annotations

from itertools import groupby
from pathlib import Path
from typing import Any, Dict, List, Sequence

from jinja2 import Environment, FileSystemLoader

from .download import DownloadResult, format_size
from .models import CheckResult, LinkOutcome, TransformResult
from .plugins import AlreadyInstalled, InstallFailed, Installed, InstallResult
from .validation import ValidationReport

RULE = "=" * 55
THIN_RULE = "-" * 55


class ReportRenderer:
    """Renders transform, link-check, validation, plugin and download summaries."""

    def __init__(self, templates_dir: Path | None = None) -> None:
        self.env = self._create_env(templates_dir)

    def render_transform(self, results: Sequence[TransformResult]) -> str:
        return self._render(
            "transform.txt.j2",
            results=list(results),
            succeeded=all(result.succeeded for result in results),
            total_duration=sum(result.duration for result in results),
            total_errors=sum(result.errors for result in results),
            total_warnings=sum(result.warnings for result in results),
        )

    def render_link_check(self, result: CheckResult, *, check_external: bool = False) -> str:
        return self._render(
            "link_check.txt.j2",
            result=result,
            counts=result.counts(),
            check_external=check_external,
            broken_by_source=_group_by_source(result.broken),
        )

    def render_validation(self, reports: Sequence[ValidationReport]) -> str:
        reports = list(reports)
        total_errors = sum(len(report.errors) for report in reports)
        total_warnings = sum(len(report.warnings) for report in reports)
        strict = any(report.strict for report in reports)
        if total_errors:
            status = "FAILED"
        elif strict and total_warnings:
            status = "FAILED (strict mode)"
        elif total_warnings:
            status = "PASSED (with warnings)"
        else:
            status = "PASSED"
        return self._render(
            "validation.txt.j2",
            reports=reports,
            total_errors=total_errors,
            total_warnings=total_warnings,
            valid=sum(1 for report in reports if report.passed and not report.warnings),
            with_warnings=sum(1 for report in reports if not report.errors and report.warnings),
            invalid=sum(1 for report in reports if not report.passed),
            status=status,
        )

    def render_plugins(self, results: Sequence[InstallResult]) -> str:
        return self._render(
            "plugins.txt.j2",
            results=list(results),
            installed=[r for r in results if isinstance(r, Installed)],
            present=[r for r in results if isinstance(r, AlreadyInstalled)],
            failed=[r for r in results if isinstance(r, InstallFailed)],
        )

    def render_download(self, result: DownloadResult) -> str:
        return self._render("download.txt.j2", result=result, size=format_size(result.size))

    def _render(self, template_name: str, **context: Any) -> str:
        template = self.env.get_template(template_name)
        return template.render(rule=RULE, thin_rule=THIN_RULE, **context).rstrip() + "\n"

    @staticmethod
    def _create_env(templates_dir: Path | None) -> Environment:
        directories: List[str] = []
        if templates_dir:
            directories.append(str(templates_dir))
        directories.append(str(Path(__file__).with_name("templates")))
        env = Environment(
            loader=FileSystemLoader(directories),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        env.filters["seconds"] = lambda value: f"{value:.2f}s"
        return env


def _group_by_source(outcomes: Sequence[LinkOutcome]) -> Dict[str, List[LinkOutcome]]:
    ordered = sorted(outcomes, key=lambda outcome: str(outcome.record.source))
    return {
        source: list(group)
        for source, group in groupby(ordered, key=lambda outcome: str(outcome.record.source))
    }


__all__ = ["ReportRenderer"]
