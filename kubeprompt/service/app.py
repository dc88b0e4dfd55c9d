"""FastAPI application entrypoint for kubeprompt service mode."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TypeVar

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from ..config import build_coordinator, load_config
from ..errors import (
    AmbiguousIntentError,
    KubePromptError,
    LLMError,
    NotFoundError,
    RetrievalError,
)
from ..logging import get_logger
from ..models import Action
from ..orchestrator import PipelineCoordinator

T = TypeVar("T")

logger = get_logger("service")


class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class FetchRequest(_Request):
    repo_url: str = Field(alias="repoUrl")
    branch: Optional[str] = None
    filename: Optional[str] = None


class ListRequest(FetchRequest):
    include_all: bool = Field(default=False, alias="includeAll")


class ApplyRequest(FetchRequest):
    namespace: Optional[str] = None
    dry_run: bool = Field(default=False, alias="dryRun")
    action: Action = Action.APPLY


class AnalyzeRequest(_Request):
    repo_url: str = Field(alias="repoUrl")
    branch: Optional[str] = None
    action: Action = Action.SHOW


class GenerateRequest(_Request):
    prompt: str


class GenerateApplyRequest(GenerateRequest):
    namespace: Optional[str] = None
    dry_run: bool = Field(default=False, alias="dryRun")


class InstructionRequest(_Request):
    instruction: str = Field(alias="request")


class QueryRequest(_Request):
    question: str = Field(alias="query")


class HealthResponse(BaseModel):
    status: str


class PurgeResponse(BaseModel):
    removed: bool


def _default_coordinator() -> PipelineCoordinator:
    return build_coordinator()


async def _in_executor(func: Callable[[], T]) -> T:
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:  # pragma: no cover - fallback path when not in async context
        return func()
    return await loop.run_in_executor(None, func)


def create_app(
    coordinator_factory: Callable[[], PipelineCoordinator] = _default_coordinator,
) -> FastAPI:
    """Create the FastAPI application exposing the kubeprompt pipeline."""

    app = FastAPI(title="kubeprompt", version="0.1.0")

    async def get_coordinator() -> PipelineCoordinator:
        # One coordinator per request so state histories never interleave.
        return coordinator_factory()

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.post("/git/yaml")
    async def fetch_manifests(
        payload: ListRequest,
        coordinator: PipelineCoordinator = Depends(get_coordinator),
    ) -> Dict[str, Any]:
        result = await _in_executor(
            lambda: coordinator.fetch(
                payload.repo_url,
                payload.branch,
                payload.filename,
                include_all=payload.include_all,
            )
        )
        return result.to_dict()

    @app.post("/git/analyze")
    async def analyze_manifests(
        payload: AnalyzeRequest,
        coordinator: PipelineCoordinator = Depends(get_coordinator),
    ) -> Dict[str, Any]:
        analysis = await _in_executor(
            lambda: coordinator.analyze(payload.repo_url, payload.branch, payload.action)
        )
        return analysis.to_dict()

    @app.post("/git/apply")
    async def apply_manifests(
        payload: ApplyRequest,
        coordinator: PipelineCoordinator = Depends(get_coordinator),
    ) -> Dict[str, Any]:
        if payload.action is Action.SHOW:
            raise AmbiguousIntentError("Use /git/yaml to list manifests without applying them")
        result = await _in_executor(
            lambda: coordinator.apply(
                payload.repo_url,
                payload.branch,
                payload.filename,
                namespace=payload.namespace,
                dry_run=payload.dry_run,
                action=payload.action,
            )
        )
        return result.to_dict()

    @app.post("/git/ai")
    async def run_instruction(
        payload: InstructionRequest,
        coordinator: PipelineCoordinator = Depends(get_coordinator),
    ) -> Dict[str, Any]:
        result = await _in_executor(lambda: coordinator.run(payload.instruction))
        return result.to_dict()

    @app.post("/ai/query")
    async def ask(
        payload: QueryRequest,
        coordinator: PipelineCoordinator = Depends(get_coordinator),
    ) -> Dict[str, Any]:
        answer = await _in_executor(lambda: coordinator.ask(payload.question))
        return answer.to_dict()

    @app.post("/ai/generate")
    async def generate(
        payload: GenerateRequest,
        coordinator: PipelineCoordinator = Depends(get_coordinator),
    ) -> Dict[str, Any]:
        generated = await _in_executor(lambda: coordinator.generate(payload.prompt))
        return generated.to_dict()

    @app.post("/ai/generate-apply")
    async def generate_and_apply(
        payload: GenerateApplyRequest,
        coordinator: PipelineCoordinator = Depends(get_coordinator),
    ) -> Dict[str, Any]:
        result = await _in_executor(
            lambda: coordinator.generate_and_apply(
                payload.prompt,
                namespace=payload.namespace,
                dry_run=payload.dry_run,
            )
        )
        return result.to_dict()

    @app.get("/ai/health")
    async def backend_health(
        coordinator: PipelineCoordinator = Depends(get_coordinator),
    ) -> Dict[str, Any]:
        health = await _in_executor(coordinator.backend_health)
        return health.to_dict()

    @app.delete("/git/workspaces", response_model=PurgeResponse)
    async def purge(
        coordinator: PipelineCoordinator = Depends(get_coordinator),
    ) -> PurgeResponse:
        removed = await _in_executor(coordinator.purge)
        return PurgeResponse(removed=removed)

    def _error(status_code: int, exc: Exception) -> JSONResponse:
        logger.warning("Request failed (%d): %s", status_code, exc)
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    @app.exception_handler(AmbiguousIntentError)
    async def ambiguous_handler(_: Any, exc: AmbiguousIntentError) -> JSONResponse:
        return _error(400, exc)

    @app.exception_handler(NotFoundError)
    async def not_found_handler(_: Any, exc: NotFoundError) -> JSONResponse:
        return _error(404, exc)

    @app.exception_handler(RetrievalError)
    async def retrieval_handler(_: Any, exc: RetrievalError) -> JSONResponse:
        return _error(502, exc)

    @app.exception_handler(LLMError)
    async def llm_handler(_: Any, exc: LLMError) -> JSONResponse:
        return _error(502, exc)

    @app.exception_handler(KubePromptError)
    async def kubeprompt_handler(_: Any, exc: KubePromptError) -> JSONResponse:
        return _error(400, exc)

    return app


def run_service(
    host: str = "0.0.0.0",
    port: int = 8080,
    config_path: Path | str | None = None,
) -> None:  # pragma: no cover - integration path
    import uvicorn

    config = load_config(config_path)
    app = create_app(lambda: build_coordinator(config))
    uvicorn.run(app, host=host, port=port)


__all__ = ["create_app", "run_service"]
