"""Tests for the FastAPI service mode."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

import pytest
from fastapi.testclient import TestClient

from ditaflow.config import DitaFlowConfig, MessagesConfig, ToolConfig
from ditaflow.models import ExitStatus, InvocationSpec, TransformResult
from ditaflow.service import ServiceContext, create_app
from ditaflow.validation import ValidationReport
from tests._fixtures.dita_builder import DitaContentBuilder


class _StubPipeline:
    def __init__(self) -> None:
        self.specs: List[InvocationSpec] = []

    def transform_all(self, specs: List[InvocationSpec]) -> List[TransformResult]:
        self.specs.extend(specs)
        return [
            TransformResult(exit_status=ExitStatus.success(), duration=0.1, transtype=spec.transtype)
            for spec in specs
        ]


class _StubValidator:
    def __init__(self) -> None:
        self.calls: List[Dict[str, Any]] = []

    def validate(self, tool_home: Path, input_path: Path, **options: Any) -> ValidationReport:
        self.calls.append({"tool_home": tool_home, "input": input_path, **options})
        return ValidationReport(input=input_path, exit_status=ExitStatus.success())


@pytest.fixture
def context(tmp_path: Path) -> ServiceContext:
    config = DitaFlowConfig(root=tmp_path, tool=ToolConfig(home=tmp_path / "dita-ot"))
    return ServiceContext(
        pipeline=_StubPipeline(),  # type: ignore[arg-type]
        validator=_StubValidator(),  # type: ignore[arg-type]
        config=config,
    )


@pytest.fixture
def client(context: ServiceContext) -> TestClient:
    return TestClient(create_app(lambda: context))


def test_health_endpoint(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_check_links_endpoint(client: TestClient, content: DitaContentBuilder) -> None:
    content.topic("ok.dita")
    root = content.map("root.ditamap", ["ok.dita", "gone.dita"])

    response = client.post("/check-links", json={"inputs": [str(root)]})

    assert response.status_code == 200
    data = response.json()
    assert data["passed"] is False
    assert data["counts"]["internal_valid"] == 1
    assert data["broken"][0]["target"] == "gone.dita"


def test_check_links_missing_input_is_404(client: TestClient, tmp_path: Path) -> None:
    response = client.post("/check-links", json={"inputs": [str(tmp_path / "absent.ditamap")]})
    assert response.status_code == 404
    assert "Input file does not exist" in response.json()["detail"]


def test_transform_endpoint_plans_each_transtype(
    client: TestClient, context: ServiceContext, tmp_path: Path
) -> None:
    response = client.post(
        "/transform",
        json={
            "inputs": [str(tmp_path / "guide.ditamap")],
            "output_dir": str(tmp_path / "out"),
            "transtypes": ["html5", "pdf"],
        },
    )

    assert response.status_code == 200
    data = response.json()
    assert data["succeeded"] is True
    assert [result["transtype"] for result in data["results"]] == ["html5", "pdf"]
    specs = context.pipeline.specs  # type: ignore[attr-defined]
    assert [spec.output_dir for spec in specs] == [tmp_path / "out" / "html5", tmp_path / "out" / "pdf"]
    assert all(spec.tool_home == tmp_path / "dita-ot" for spec in specs)


def test_validate_endpoint_uses_requested_home(
    client: TestClient, context: ServiceContext, tmp_path: Path
) -> None:
    response = client.post(
        "/validate",
        json={"input": str(tmp_path / "t.dita"), "tool_home": "/opt/dita", "strict": True},
    )

    assert response.status_code == 200
    assert response.json()["status"] == "PASSED"
    (call,) = context.validator.calls  # type: ignore[attr-defined]
    assert call["tool_home"] == Path("/opt/dita")
    assert call["strict"] is True


def test_missing_tool_home_is_400(tmp_path: Path) -> None:
    context = ServiceContext(pipeline=_StubPipeline(), config=None)  # type: ignore[arg-type]
    client = TestClient(create_app(lambda: context))

    response = client.post(
        "/transform",
        json={"inputs": [str(tmp_path / "guide.ditamap")], "output_dir": str(tmp_path / "out")},
    )

    assert response.status_code == 400
    assert "DITA-OT directory" in response.json()["detail"]


def test_default_components_recognize_configured_prefixes(tmp_path: Path) -> None:
    config = DitaFlowConfig(root=tmp_path, messages=MessagesConfig(prefixes=["ACME"]))
    context = ServiceContext(config=config)

    assert context.pipeline is not None and context.validator is not None
    for classifier in (context.pipeline.classifier, context.validator.classifier):
        assert classifier.classify("[ACME001E] custom failure").is_error
        assert classifier.classify("[DOTJ013E] built-in failure").is_error


def test_supplied_components_are_kept(context: ServiceContext) -> None:
    assert isinstance(context.pipeline, _StubPipeline)
    assert isinstance(context.validator, _StubValidator)
