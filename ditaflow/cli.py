"""CLI entrypoints for ditaflow commands."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import messages
from .config import DitaFlowConfig, load_config
from .download import DitaOtDownloader, DownloadError, DownloadRequest
from .errors import ConfigError, ConfigurationError
from .integrity import CheckOptions, IntegrityChecker
from .logging import configure_logging
from .models import StrategyKind
from .output import MessageCodeRegistry, OutputClassifier, ProgressReporter, ProgressStyle
from .pipeline import TransformPipeline
from .planning import TransformRequest, plan_invocations
from .plugins import InstallFailed, PluginInstaller
from .process import ProcessOrchestrator
from .report import ReportRenderer
from .retry import RetryPolicy
from .validation import PROCESSING_MODES, ContentValidator


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Show DITA-OT info output and debug logging.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_common_options(parser: argparse.ArgumentParser, *, tool: bool = True) -> None:
    _add_verbose_option(parser, suppress_default=True)
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the result as JSON instead of a text report.",
    )
    if tool:
        parser.add_argument(
            "--dita-home",
            type=Path,
            help="DITA-OT installation directory (overrides tool.home and DITA_HOME).",
        )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ditaflow",
        description="Run DITA-OT transformations and check DITA content.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("."),
        help="Path to .ditaflow.yml or the directory containing it (defaults to current directory).",
    )
    parser.add_argument("--log-file", type=Path, help="Also write logs to this file.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    transform_parser = subparsers.add_parser(
        "transform",
        help="Transform DITA maps or topics with DITA-OT.",
    )
    _add_common_options(transform_parser)
    transform_parser.add_argument("inputs", nargs="+", type=Path, help="DITA maps or topics.")
    transform_parser.add_argument(
        "-f",
        "--format",
        dest="transtypes",
        action="append",
        help="Output transtype; repeat for several (defaults to transform.transtypes or html5).",
    )
    transform_parser.add_argument("-o", "--output", type=Path, help="Output directory.")
    transform_parser.add_argument("--temp", type=Path, help="Temporary directory.")
    transform_parser.add_argument("--filter", type=Path, help="DITAVAL filter file.")
    transform_parser.add_argument(
        "-D",
        dest="properties",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="DITA-OT property; repeat for several.",
    )
    transform_parser.add_argument(
        "--strategy",
        choices=[kind.value for kind in StrategyKind],
        help="How DITA-OT is launched.",
    )
    transform_parser.add_argument(
        "--single-output-dir",
        action="store_true",
        default=None,
        help="Write every input to the same output directory.",
    )
    transform_parser.add_argument(
        "--associated-filter",
        action="store_true",
        default=None,
        help="Use <input>.ditaval next to each input as its filter.",
    )
    transform_parser.add_argument("--timeout", type=float, help="Per-invocation deadline in seconds.")
    transform_parser.add_argument("--retries", type=int, help="Retry failed invocations this many times.")
    transform_parser.add_argument(
        "--workers", type=int, default=1, help="Run this many invocations in parallel."
    )
    transform_parser.add_argument(
        "--progress",
        choices=[style.value for style in ProgressStyle],
        help="Progress display style.",
    )
    transform_parser.add_argument(
        "--show-warnings",
        action="store_true",
        default=None,
        help="Display coded warnings as they occur.",
    )

    links_parser = subparsers.add_parser(
        "check-links",
        help="Check references in DITA maps and topics.",
    )
    _add_common_options(links_parser, tool=False)
    links_parser.add_argument("inputs", nargs="+", type=Path, help="Root maps or topics.")
    links_parser.add_argument(
        "--external",
        action="store_true",
        default=None,
        help="Probe external http(s) URLs.",
    )
    links_parser.add_argument(
        "--no-recursive",
        dest="recursive",
        action="store_false",
        default=None,
        help="Do not follow map references.",
    )
    links_parser.add_argument(
        "--follow-xrefs",
        action="store_true",
        default=None,
        help="Also follow cross-references into other topics.",
    )
    links_parser.add_argument(
        "--no-fail",
        dest="fail_on_broken",
        action="store_false",
        default=None,
        help="Exit successfully even when broken links are found.",
    )
    links_parser.add_argument(
        "--exclude-url",
        dest="exclude_urls",
        action="append",
        default=[],
        help="Skip URLs containing this text (case-insensitive); repeat for several.",
    )
    links_parser.add_argument("--connect-timeout", type=float, help="Connect timeout in seconds.")
    links_parser.add_argument("--read-timeout", type=float, help="Read timeout in seconds.")
    links_parser.add_argument("--timeout", type=float, help="Overall deadline for URL probes.")
    links_parser.add_argument("--workers", type=int, help="Concurrent URL probes.")

    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate DITA content with DITA-OT.",
    )
    _add_common_options(validate_parser)
    validate_parser.add_argument("inputs", nargs="+", type=Path, help="DITA maps or topics.")
    validate_parser.add_argument(
        "--processing-mode",
        choices=PROCESSING_MODES,
        help="DITA-OT processing mode.",
    )
    validate_parser.add_argument(
        "--strict",
        action="store_true",
        default=None,
        help="Fail on warnings as well as errors.",
    )
    validate_parser.add_argument("--filter", type=Path, help="DITAVAL filter file.")
    validate_parser.add_argument("--timeout", type=float, help="Deadline in seconds per input.")

    install_parser = subparsers.add_parser(
        "install-plugin",
        help="Install DITA-OT plugins.",
    )
    _add_common_options(install_parser)
    install_parser.add_argument(
        "plugins", nargs="+", help="Plugin ids, URLs, paths or github.com/owner/repo slugs."
    )
    install_parser.add_argument(
        "--force", action="store_true", help="Reinstall plugins that are already present."
    )
    install_parser.add_argument("--retries", type=int, default=2, help="Retries per plugin.")

    download_parser = subparsers.add_parser(
        "download",
        help="Download and unpack a DITA-OT release.",
    )
    _add_common_options(download_parser, tool=False)
    download_parser.add_argument(
        "--dita-version", dest="version", help="Release to fetch (defaults to download.version)."
    )
    download_parser.add_argument(
        "-d",
        "--destination",
        type=Path,
        help="Directory that receives dita-ot-<version>/ (defaults to build/dita-ot).",
    )
    download_parser.add_argument("--url", help="Download from this URL instead of GitHub releases.")
    download_parser.add_argument("--checksum", help="Expected archive checksum as algorithm:hash.")
    download_parser.add_argument("--retries", type=int, help="Retries after a failed download.")
    download_parser.add_argument("--timeout", type=float, help="Network timeout in seconds.")
    download_parser.add_argument("--cache-dir", type=Path, help="Archive cache (defaults to ~/.dita-ot/cache).")
    download_parser.add_argument(
        "--force", action="store_true", help="Download and unpack again even when installed."
    )

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP service.")
    _add_verbose_option(serve_parser, suppress_default=True)
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for ditaflow commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file)

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        parser.exit(1, f"{exc}\n")

    handlers = {
        "transform": _run_transform,
        "check-links": _run_check_links,
        "validate": _run_validate,
        "install-plugin": _run_install_plugin,
        "download": _run_download,
        "serve": _run_serve,
    }
    handler = handlers.get(args.command)
    if handler is None:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")

    try:
        exit_code = handler(args, config)
    except ConfigurationError as exc:
        parser.exit(1, f"{exc}\n")
    except (FileNotFoundError, DownloadError) as exc:
        parser.exit(1, f"{exc}\n")
    except KeyboardInterrupt:
        # Running DITA-OT processes have already been cancelled on the way out.
        parser.exit(130, "Interrupted\n")
    if exit_code:
        parser.exit(exit_code)


def _run_transform(args: argparse.Namespace, config: DitaFlowConfig) -> int:
    settings = config.transform
    tool_home = _tool_home(args, config)
    output = args.output or settings.output or Path("out")
    request = TransformRequest(
        tool_home=tool_home,
        inputs=list(args.inputs),
        output_dir=output,
        transtypes=args.transtypes or settings.transtypes,
        temp_dir=args.temp or settings.temp,
        filter_file=args.filter or settings.filter,
        properties={**settings.properties, **_parse_properties(args.properties)},
        single_output_dir=_pick(args.single_output_dir, settings.single_output_dir),
        use_associated_filter=_pick(args.associated_filter, settings.use_associated_filter),
        strategy=StrategyKind(args.strategy) if args.strategy else config.tool.strategy,
        host_command=config.tool.host_command,
        java=config.tool.java,
        timeout=args.timeout if args.timeout is not None else settings.timeout,
    )
    retries = args.retries if args.retries is not None else settings.retries
    style = ProgressStyle.parse(args.progress or config.progress.style)
    show_warnings = _pick(args.show_warnings, config.progress.show_warnings)
    if args.json:
        style = ProgressStyle.QUIET

    pipeline = TransformPipeline(
        _orchestrator(),
        classifier=_classifier(config),
        reporter_factory=lambda: ProgressReporter(style, show_warnings=show_warnings),
        retry=RetryPolicy(attempts=retries + 1),
    )
    results = pipeline.transform_all(plan_invocations(request), max_workers=args.workers)

    if args.json:
        _print_json({"results": [result.to_dict() for result in results]})
    else:
        print(ReportRenderer().render_transform(results), end="")
    return 0 if all(result.succeeded for result in results) else 1


def _run_check_links(args: argparse.Namespace, config: DitaFlowConfig) -> int:
    settings = config.link_check
    for path in args.inputs:
        if not path.is_file():
            raise ConfigurationError(messages.input_not_found(path.absolute()))
    options = CheckOptions(
        check_external=_pick(args.external, settings.check_external),
        recursive=_pick(args.recursive, settings.recursive),
        follow_xrefs=_pick(args.follow_xrefs, settings.follow_xrefs),
        connect_timeout=args.connect_timeout or settings.connect_timeout,
        read_timeout=args.read_timeout or settings.read_timeout,
        timeout=args.timeout if args.timeout is not None else settings.timeout,
        workers=args.workers or settings.workers,
        exclude_urls=tuple(settings.exclude_urls) + tuple(args.exclude_urls),
    )
    fail_on_broken = _pick(args.fail_on_broken, settings.fail_on_broken)
    result = IntegrityChecker().check(args.inputs, options)

    if args.json:
        _print_json(result.to_dict())
    else:
        print(ReportRenderer().render_link_check(result, check_external=options.check_external), end="")
    return 1 if result.should_fail(fail_on_broken) else 0


def _run_validate(args: argparse.Namespace, config: DitaFlowConfig) -> int:
    settings = config.validate
    tool_home = _tool_home(args, config)
    validator = ContentValidator(_orchestrator(), classifier=_classifier(config))
    reports = [
        validator.validate(
            tool_home,
            path,
            processing_mode=args.processing_mode or settings.processing_mode,
            strict=_pick(args.strict, settings.strict),
            filter_file=args.filter,
            strategy=config.tool.strategy,
            timeout=args.timeout if args.timeout is not None else settings.timeout,
        )
        for path in args.inputs
    ]
    if args.json:
        _print_json({"reports": [report.to_dict() for report in reports]})
    else:
        print(ReportRenderer().render_validation(reports), end="")
    return 0 if all(report.passed for report in reports) else 1


def _run_install_plugin(args: argparse.Namespace, config: DitaFlowConfig) -> int:
    tool_home = _tool_home(args, config)
    installer = PluginInstaller(_orchestrator())
    policy = RetryPolicy(attempts=max(0, args.retries) + 1)
    results = [
        policy.run(
            lambda attempt, plugin=plugin: installer.install(tool_home, plugin, force=args.force),
            should_retry=lambda outcome: isinstance(outcome, InstallFailed),
        )
        for plugin in args.plugins
    ]
    if args.json:
        _print_json({"results": [_install_result_dict(result) for result in results]})
    else:
        print(ReportRenderer().render_plugins(results), end="")
    return 1 if any(isinstance(result, InstallFailed) for result in results) else 0


def _run_download(args: argparse.Namespace, config: DitaFlowConfig) -> int:
    settings = config.download
    retries = args.retries if args.retries is not None else settings.retries
    request = DownloadRequest(
        version=args.version or settings.version,
        destination=args.destination or settings.destination or Path("build/dita-ot"),
        url=args.url or settings.url,
        checksum=args.checksum or settings.checksum,
        force=args.force,
        timeout=args.timeout if args.timeout is not None else settings.timeout,
    )
    downloader = DitaOtDownloader(
        cache_dir=args.cache_dir or settings.cache_dir,
        retry=RetryPolicy(attempts=max(0, retries) + 1, max_delay=10.0),
    )
    result = downloader.download(request)
    if args.json:
        _print_json(result.to_dict())
    else:
        print(ReportRenderer().render_download(result), end="")
    return 0


def _run_serve(args: argparse.Namespace, config: DitaFlowConfig) -> int:  # pragma: no cover
    from .service import run_service

    run_service(host=args.host, port=args.port, config=config)
    return 0


def _tool_home(args: argparse.Namespace, config: DitaFlowConfig) -> Path:
    tool_home = getattr(args, "dita_home", None) or config.tool.home
    if tool_home is None:
        raise ConfigurationError(messages.TOOL_HOME_MISSING)
    return Path(tool_home)


def _orchestrator() -> ProcessOrchestrator:
    return ProcessOrchestrator()


def _classifier(config: DitaFlowConfig) -> OutputClassifier:
    return OutputClassifier(MessageCodeRegistry().register(*config.messages.prefixes))


def _parse_properties(values: List[str]) -> Dict[str, str]:
    properties: Dict[str, str] = {}
    for value in values:
        name, separator, setting = value.partition("=")
        if not separator or not name.strip():
            raise ConfigurationError(f"Invalid property {value!r}; expected NAME=VALUE.")
        properties[name.strip()] = setting
    return properties


def _pick(flag: Optional[bool], configured: bool) -> bool:
    return configured if flag is None else bool(flag)


def _install_result_dict(result: Any) -> Dict[str, Any]:
    payload = {"type": type(result).__name__, "plugin": result.plugin}
    if isinstance(result, InstallFailed):
        payload["message"] = result.message
    else:
        payload["plugin_id"] = result.plugin_id
    return payload


def _print_json(payload: Dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2))


if __name__ == "__main__":
    main(sys.argv[1:])
