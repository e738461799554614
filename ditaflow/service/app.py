"""FastAPI application entrypoint for ditaflow service mode."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .. import messages
from ..config import DitaFlowConfig
from ..errors import ConfigurationError
from ..integrity import CheckOptions, IntegrityChecker
from ..output import MessageCodeRegistry, OutputClassifier
from ..pipeline import TransformPipeline
from ..planning import TransformRequest, plan_invocations
from ..validation import ContentValidator

T = TypeVar("T")


class CheckLinksRequest(BaseModel):
    inputs: List[str]
    check_external: bool = False
    recursive: bool = True
    follow_xrefs: bool = False
    exclude_urls: List[str] = []
    timeout: Optional[float] = None


class TransformRequestModel(BaseModel):
    inputs: List[str]
    output_dir: str
    tool_home: Optional[str] = None
    transtypes: List[str] = ["html5"]
    temp_dir: Optional[str] = None
    filter_file: Optional[str] = None
    properties: Dict[str, str] = {}
    single_output_dir: bool = False
    timeout: Optional[float] = None


class ValidateRequest(BaseModel):
    input: str
    tool_home: Optional[str] = None
    processing_mode: str = "strict"
    strict: bool = False


class HealthResponse(BaseModel):
    status: str


@dataclass
class ServiceContext:
    """Components a request works with."""

    pipeline: Optional[TransformPipeline] = None
    checker: IntegrityChecker = field(default_factory=IntegrityChecker)
    validator: Optional[ContentValidator] = None
    config: Optional[DitaFlowConfig] = None

    def __post_init__(self) -> None:
        prefixes = self.config.messages.prefixes if self.config is not None else ()
        classifier = OutputClassifier(MessageCodeRegistry().register(*prefixes))
        if self.pipeline is None:
            self.pipeline = TransformPipeline(classifier=classifier)
        if self.validator is None:
            self.validator = ContentValidator(classifier=classifier)

    def tool_home(self, requested: Optional[str]) -> Path:
        if requested:
            return Path(requested)
        if self.config is not None and self.config.tool.home is not None:
            return self.config.tool.home
        raise ConfigurationError(messages.TOOL_HOME_MISSING)


def _default_context() -> ServiceContext:
    return ServiceContext()


async def _in_executor(work: Callable[[], T]) -> T:
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:  # pragma: no cover - fallback path when not in async context
        return work()
    return await loop.run_in_executor(None, work)


def create_app(
    context_factory: Callable[[], ServiceContext] = _default_context,
) -> FastAPI:
    """Create the FastAPI application exposing ditaflow operations."""

    app = FastAPI(title="ditaflow Service", version="1.0.0")

    async def get_context() -> ServiceContext:
        return context_factory()

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.post("/check-links")
    async def check_links(
        payload: CheckLinksRequest,
        context: ServiceContext = Depends(get_context),
    ) -> Dict[str, Any]:
        roots = [Path(path) for path in payload.inputs]
        for root in roots:
            if not root.is_file():
                raise FileNotFoundError(messages.input_not_found(root.absolute()))
        options = CheckOptions(
            check_external=payload.check_external,
            recursive=payload.recursive,
            follow_xrefs=payload.follow_xrefs,
            exclude_urls=tuple(payload.exclude_urls),
            timeout=payload.timeout,
        )
        result = await _in_executor(lambda: context.checker.check(roots, options))
        return result.to_dict()

    @app.post("/transform")
    async def transform(
        payload: TransformRequestModel,
        context: ServiceContext = Depends(get_context),
    ) -> Dict[str, Any]:
        request = TransformRequest(
            tool_home=context.tool_home(payload.tool_home),
            inputs=[Path(path) for path in payload.inputs],
            output_dir=Path(payload.output_dir),
            transtypes=payload.transtypes,
            temp_dir=Path(payload.temp_dir) if payload.temp_dir else None,
            filter_file=Path(payload.filter_file) if payload.filter_file else None,
            properties=payload.properties,
            single_output_dir=payload.single_output_dir,
            timeout=payload.timeout,
        )
        specs = plan_invocations(request)
        results = await _in_executor(lambda: context.pipeline.transform_all(specs))
        return {
            "succeeded": all(result.succeeded for result in results),
            "results": [result.to_dict() for result in results],
        }

    @app.post("/validate")
    async def validate(
        payload: ValidateRequest,
        context: ServiceContext = Depends(get_context),
    ) -> Dict[str, Any]:
        tool_home = context.tool_home(payload.tool_home)
        report = await _in_executor(
            lambda: context.validator.validate(
                tool_home,
                Path(payload.input),
                processing_mode=payload.processing_mode,
                strict=payload.strict,
            )
        )
        return report.to_dict()

    @app.exception_handler(FileNotFoundError)
    async def file_not_found_handler(_: Any, exc: FileNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(_: Any, exc: ConfigurationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    return app


def run_service(
    host: str = "127.0.0.1", port: int = 8000, *, config: DitaFlowConfig | None = None
) -> None:  # pragma: no cover - integration path
    import uvicorn

    app = create_app(lambda: ServiceContext(config=config))
    uvicorn.run(app, host=host, port=port)
