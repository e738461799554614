from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import List

import pytest

from ditaflow.errors import ConfigurationError
from ditaflow.models import ExitKind, InvocationSpec
from ditaflow.output import ProgressReporter, ProgressStyle
from ditaflow.pipeline import TransformPipeline
from ditaflow.retry import RetryPolicy
from tests._fixtures.dita_builder import (
    DitaContentBuilder,
    DitaOtHomeBuilder,
    process_exited,
    read_launcher_record,
    requires_posix,
)

TRANSCRIPT = """\
[init] Initializing DITA-OT
[preprocess] Starting preprocessing
Processing file:/work/error-messages.xml to file:/work/out.xml
[DOTJ031I] No rule for 'x' was found in the reference file.
[DOTX023W] Unable to retrieve navtitle from target 'missing.dita'.
[DOTJ013E] Failed to parse the referenced file 'broken.dita'.
[transform] Transforming 3 topics
BUILD SUCCESSFUL
"""


def _spec(home: Path, topic: Path, tmp_path: Path, env: dict, name: str = "out") -> InvocationSpec:
    return InvocationSpec(
        tool_home=home,
        inputs=(topic,),
        output_dir=tmp_path / name,
        temp_dir=tmp_path / "temp" / name,
        env=env,
    )


@pytest.fixture
def transcript(tmp_path: Path) -> Path:
    path = tmp_path / "transcript.txt"
    path.write_text(TRANSCRIPT, encoding="utf-8")
    return path


@requires_posix
def test_transform_summarizes_coded_output(
    dita_home: DitaOtHomeBuilder, content: DitaContentBuilder, tmp_path: Path, transcript: Path
) -> None:
    spec = _spec(dita_home.path(), content.topic("t.dita"), tmp_path, {"FAKE_DITA_TRANSCRIPT": str(transcript)})

    result = TransformPipeline().transform(spec)

    assert result.exit_status.kind is ExitKind.SUCCESS
    assert result.errors == 1
    assert result.warnings == 1
    assert result.info_count == 1
    assert result.files_processed == 1
    assert result.stage == "complete"
    assert result.tool_version == "4.2.1"
    assert result.transtype == "html5"
    assert result.outputs == [tmp_path / "out" / "index.html"]
    assert not result.succeeded
    assert result.message is not None and "1 error(s)" in result.message


@requires_posix
def test_failed_run_explains_itself(
    dita_home: DitaOtHomeBuilder, content: DitaContentBuilder, tmp_path: Path
) -> None:
    spec = _spec(dita_home.path(), content.topic("t.dita"), tmp_path, {"FAKE_DITA_EXIT": "1"})

    result = TransformPipeline().transform(spec)

    assert result.exit_status.kind is ExitKind.FAILED
    assert result.message is not None
    assert "failed with exit code 1" in result.message
    assert "DITA-OT 4.2.1" in result.message
    assert str(dita_home.path()) in result.message


@requires_posix
def test_failed_runs_are_retried(
    dita_home: DitaOtHomeBuilder, content: DitaContentBuilder, tmp_path: Path
) -> None:
    sleeps: List[float] = []
    spec = _spec(dita_home.path(), content.topic("t.dita"), tmp_path, {"FAKE_DITA_EXIT": "2"})
    pipeline = TransformPipeline(retry=RetryPolicy(attempts=3), sleep=sleeps.append)

    result = pipeline.transform(spec)

    assert result.exit_status.code == 2
    assert sleeps == [1.0, 2.0]


@requires_posix
def test_transform_all_continues_after_failure(
    dita_home: DitaOtHomeBuilder, content: DitaContentBuilder, tmp_path: Path
) -> None:
    topic = content.topic("t.dita")
    specs = [
        _spec(dita_home.path(), topic, tmp_path, {"FAKE_DITA_EXIT": "1"}, name="first"),
        _spec(dita_home.path(), topic, tmp_path, {}, name="second"),
    ]

    results = TransformPipeline().transform_all(specs, max_workers=2)

    assert [result.succeeded for result in results] == [False, True]
    assert results[1].outputs == [tmp_path / "second" / "index.html"]


def test_transform_all_validates_every_spec_first(
    dita_home: DitaOtHomeBuilder, content: DitaContentBuilder, tmp_path: Path
) -> None:
    specs = [
        _spec(dita_home.path(), content.topic("t.dita"), tmp_path, {}, name="first"),
        _spec(dita_home.path(), tmp_path / "missing.dita", tmp_path, {}, name="second"),
    ]
    with pytest.raises(ConfigurationError):
        TransformPipeline().transform_all(specs)
    assert not (tmp_path / "first").exists()


@requires_posix
def test_reporter_receives_stage_updates(
    dita_home: DitaOtHomeBuilder, content: DitaContentBuilder, tmp_path: Path, transcript: Path
) -> None:
    stream = io.StringIO()
    reporter = ProgressReporter(
        ProgressStyle.SIMPLE, stream=stream, interactive=True, logger=logging.getLogger("tests.pipeline")
    )
    spec = _spec(dita_home.path(), content.topic("t.dita"), tmp_path, {"FAKE_DITA_TRANSCRIPT": str(transcript)})

    TransformPipeline(reporter_factory=lambda: reporter).transform(spec)

    assert "100%" in stream.getvalue()


class _InterruptingReporter(ProgressReporter):
    def on_stage(self, stage, total, files=None) -> None:  # type: ignore[override]
        raise KeyboardInterrupt


@requires_posix
def test_interrupted_consumer_cancels_the_process(
    dita_home: DitaOtHomeBuilder, content: DitaContentBuilder, tmp_path: Path, transcript: Path
) -> None:
    argv_file = tmp_path / "argv.json"
    spec = _spec(
        dita_home.path(),
        content.topic("t.dita"),
        tmp_path,
        {
            "FAKE_DITA_TRANSCRIPT": str(transcript),
            "FAKE_DITA_SLEEP": "60",
            "FAKE_DITA_ARGV_FILE": str(argv_file),
        },
    )
    pipeline = TransformPipeline(
        reporter_factory=lambda: _InterruptingReporter(ProgressStyle.QUIET, stream=io.StringIO())
    )

    with pytest.raises(KeyboardInterrupt):
        pipeline.transform(spec)

    assert process_exited(read_launcher_record(argv_file)["pid"])
