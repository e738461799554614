"""CLI parser behaviour tests."""

from __future__ import annotations

import json
import os
import signal
import subprocess
import sys
from pathlib import Path

import pytest

from ditaflow.cli import _build_parser, _parse_properties, main
from ditaflow.errors import ConfigurationError
from tests._fixtures.dita_builder import (
    DitaContentBuilder,
    DitaOtHomeBuilder,
    process_exited,
    read_launcher_record,
    requires_posix,
)

REPO_ROOT = Path(__file__).resolve().parents[1]


def test_cli_accepts_verbose_before_command() -> None:
    parser = _build_parser()
    args = parser.parse_args(["--verbose", "check-links", "root.ditamap"])
    assert args.verbose is True
    assert args.command == "check-links"


def test_cli_accepts_verbose_after_command() -> None:
    parser = _build_parser()
    args = parser.parse_args(["check-links", "root.ditamap", "--verbose"])
    assert args.verbose is True


def test_cli_transform_options() -> None:
    parser = _build_parser()
    args = parser.parse_args(
        [
            "transform",
            "guide.ditamap",
            "-f",
            "html5",
            "--format",
            "pdf",
            "-o",
            "build",
            "-D",
            "args.copycss=yes",
            "--strategy",
            "classpath",
            "--progress",
            "minimal",
        ]
    )
    assert args.transtypes == ["html5", "pdf"]
    assert args.output == Path("build")
    assert args.properties == ["args.copycss=yes"]
    assert args.strategy == "classpath"
    assert args.progress == "minimal"
    assert args.single_output_dir is None


def test_cli_check_links_defaults_defer_to_config() -> None:
    args = _build_parser().parse_args(["check-links", "root.ditamap"])
    assert args.external is None
    assert args.recursive is None
    assert args.fail_on_broken is None
    assert args.exclude_urls == []


def test_cli_rejects_unknown_processing_mode() -> None:
    with pytest.raises(SystemExit):
        _build_parser().parse_args(["validate", "t.dita", "--processing-mode", "loose"])


def test_cli_install_plugin_defaults() -> None:
    args = _build_parser().parse_args(["install-plugin", "org.lwdita", "--force"])
    assert args.plugins == ["org.lwdita"]
    assert args.force is True
    assert args.retries == 2


def test_parse_properties() -> None:
    assert _parse_properties(["a=b", "c=d=e", "empty="]) == {"a": "b", "c": "d=e", "empty": ""}
    with pytest.raises(ConfigurationError):
        _parse_properties(["no-separator"])


def test_check_links_json_output(
    content: DitaContentBuilder, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    content.topic("ok.dita")
    root = content.map("root.ditamap", ["ok.dita", "missing.dita"])

    with pytest.raises(SystemExit) as excinfo:
        main(["--config", str(tmp_path), "check-links", str(root), "--json"])

    assert excinfo.value.code == 1
    payload = json.loads(capsys.readouterr().out)
    assert payload["passed"] is False
    assert payload["counts"]["internal_broken"] == 1
    assert payload["broken"][0]["target"] == "missing.dita"


def test_check_links_no_fail(content: DitaContentBuilder, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    root = content.map("root.ditamap", ["missing.dita"])

    main(["--config", str(tmp_path), "check-links", str(root), "--no-fail"])

    assert "Status:             FAILED" in capsys.readouterr().out


def test_check_links_missing_input_exits(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main(["--config", str(tmp_path), "check-links", str(tmp_path / "absent.ditamap")])
    assert excinfo.value.code == 1
    assert "Input file does not exist" in capsys.readouterr().err


def test_transform_without_tool_home_exits(
    content: DitaContentBuilder, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.delenv("DITA_HOME", raising=False)
    topic = content.topic("t.dita")
    with pytest.raises(SystemExit) as excinfo:
        main(["--config", str(tmp_path), "transform", str(topic)])
    assert excinfo.value.code == 1
    assert "DITA-OT directory" in capsys.readouterr().err


@requires_posix
def test_transform_json_output(
    dita_home: DitaOtHomeBuilder,
    content: DitaContentBuilder,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    topic = content.topic("t.dita")

    main(
        [
            "--config",
            str(tmp_path),
            "transform",
            str(topic),
            "--dita-home",
            str(dita_home.path()),
            "-o",
            str(tmp_path / "out"),
            "--temp",
            str(tmp_path / "temp"),
            "--json",
        ]
    )

    payload = json.loads(capsys.readouterr().out)
    (result,) = payload["results"]
    assert result["exit_status"]["kind"] == "success"
    assert result["tool_version"] == "4.2.1"
    assert result["outputs"] == [str(tmp_path / "out" / "index.html")]


@pytest.mark.parametrize(
    "config_text",
    ["progress:\n  style: fancy\n", "messages:\n  prefixes: [dot-x]\n"],
)
def test_invalid_config_values_exit_cleanly(
    tmp_path: Path, config_text: str, capsys: pytest.CaptureFixture[str]
) -> None:
    (tmp_path / ".ditaflow.yml").write_text(config_text, encoding="utf-8")
    with pytest.raises(SystemExit) as excinfo:
        main(["--config", str(tmp_path), "check-links", str(tmp_path / "root.ditamap")])
    assert excinfo.value.code == 1
    assert ".ditaflow.yml" in capsys.readouterr().err


@requires_posix
def test_interrupt_cancels_running_transformation(
    dita_home: DitaOtHomeBuilder, content: DitaContentBuilder, tmp_path: Path
) -> None:
    topic = content.topic("t.dita")
    argv_file = tmp_path / "argv.json"
    env = dict(os.environ, FAKE_DITA_SLEEP="60", FAKE_DITA_ARGV_FILE=str(argv_file))
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(REPO_ROOT), env.get("PYTHONPATH")]))
    command = [
        sys.executable,
        "-m",
        "ditaflow.cli",
        "--config",
        str(tmp_path),
        "transform",
        str(topic),
        "--dita-home",
        str(dita_home.path()),
        "-o",
        str(tmp_path / "out"),
        "--temp",
        str(tmp_path / "temp"),
        "--json",
    ]
    cli = subprocess.Popen(command, env=env, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
    try:
        child_pid = read_launcher_record(argv_file)["pid"]
        cli.send_signal(signal.SIGINT)
        _, stderr = cli.communicate(timeout=30)
    finally:
        if cli.poll() is None:
            cli.kill()
            cli.wait()

    assert cli.returncode == 130
    assert "Interrupted" in stderr
    assert process_exited(child_pid)
