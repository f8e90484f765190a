"""FastAPI application exposing data loading and the chat agent as a REST API."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from finsight.agent.state import AgentAnswer, ChatTurn
from finsight.config import settings
from finsight.ingestion.coordinator import DB_LOAD_PROCESS, LoadInProgressError
from finsight.ingestion.service import LoadPolicy, LoadStats, LoadTimeoutError
from finsight.serving.guard import sanitize_input, validate_user_input
from finsight.serving.services import Services, build_services, get_services

logger = logging.getLogger(__name__)

NO_STORE_HEADERS = {"Cache-Control": "no-store, no-cache, must-revalidate, max-age=0"}

router = APIRouter()


# ── Request / Response schemas ────────────────────────────────────────
class LoadRequest(BaseModel):
    """``missing_only`` or ``all``; validated in the route to answer 400."""

    policy: str = LoadPolicy.MISSING_ONLY.value


class LoadResponse(BaseModel):
    stats: LoadStats


class FileStatusView(BaseModel):
    """One status row plus its parsed progress."""

    source_id: str
    file_name: str
    target: str
    status: str
    message: str | None = None
    url: str | None = None
    updated_at: str | None = None
    progress_percent: int | None = None


class StatusResponse(BaseModel):
    statuses: list[FileStatusView]


class ChatRequest(BaseModel):
    """Incoming message with the prior conversation."""

    message: str
    conversation_history: list[ChatTurn] = Field(default_factory=list)


async def _load_running(services: Services) -> bool:
    """Local or distributed load in progress (the latter is a row-store read)."""
    return await asyncio.to_thread(lambda: services.loader.coordinator.is_busy)


# ── Lifespan ──────────────────────────────────────────────────────────
@contextlib.asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup: tables, stale ``loading`` rows, server identity, optional auto-load."""
    if app.state.services is None:
        app.state.services = build_services()
    services: Services = app.state.services

    await asyncio.to_thread(services.init_storage)
    if await _load_running(services):
        logger.info("Skipping stale status cleanup: a load is running")
    else:
        reset = await asyncio.to_thread(services.registry.reset_loading)
        if reset:
            logger.warning("Reset %d status row(s) left in 'loading' by a previous run", reset)

    if services.server_instances is not None:
        instance_id = await services.server_instances.start()
        logger.info("Registered server instance %s", instance_id)

    boot_task: asyncio.Task[Any] | None = None
    if app.state.auto_load:
        boot_task = asyncio.create_task(
            services.loader.auto_load_on_boot(settings.boot_load_timeout_seconds)
        )

    try:
        yield
    finally:
        if boot_task is not None and not boot_task.done():
            boot_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await boot_task
        if services.server_instances is not None:
            await services.server_instances.stop()


def create_app(services: Services | None = None, *, auto_load: bool | None = None) -> FastAPI:
    """Build the application.

    Parameters
    ----------
    services:
        Pre-wired collaborators; built from settings at startup when omitted.
    auto_load:
        Run the boot-time load; defaults to ``settings.auto_load_on_boot``.
    """
    app = FastAPI(
        title="Finsight API",
        version="0.1.0",
        description="Data loading and grounded chat over economic outlook documents.",
        lifespan=lifespan,
    )
    app.state.services = services
    app.state.auto_load = settings.auto_load_on_boot if auto_load is None else auto_load
    app.include_router(router)
    return app


# ── Routes ────────────────────────────────────────────────────────────

@router.get("/health")
async def health(services: Services = Depends(get_services)) -> dict[str, Any]:
    """Liveness probe."""
    healthy = await asyncio.to_thread(services.vector_store.health_check)
    return {"status": "ok", "vector_store": healthy}


@router.post("/load", response_model=LoadResponse)
async def load(body: LoadRequest, services: Services = Depends(get_services)) -> Any:
    """Run a load job and block until it finishes."""
    try:
        policy = LoadPolicy(body.policy)
    except ValueError:
        raise HTTPException(status_code=400, detail='Invalid policy. Must be "missing_only" or "all"')

    try:
        stats = await services.loader.load_with_timeout(policy, settings.load_timeout_seconds)
    except LoadInProgressError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except LoadTimeoutError as exc:
        raise HTTPException(status_code=504, detail=str(exc))

    if stats.failed:
        return JSONResponse(
            status_code=500,
            content={"detail": "Some files failed to load", "stats": stats.model_dump()},
        )
    return LoadResponse(stats=stats)


@router.get("/status", response_model=StatusResponse)
async def status(response: Response, services: Services = Depends(get_services)) -> StatusResponse:
    """Every file status row; loading rows carry a progress percentage."""
    response.headers.update(NO_STORE_HEADERS)
    views = []
    for s in await asyncio.to_thread(services.registry.list_statuses):
        progress = s.progress
        views.append(
            FileStatusView(
                source_id=s.source_id,
                file_name=s.file_name,
                target=s.target.value,
                status=s.status.value,
                message=s.message,
                url=s.url,
                updated_at=s.updated_at.isoformat() if s.updated_at else None,
                progress_percent=progress.percent if progress else None,
            )
        )
    return StatusResponse(statuses=views)


@router.get("/process-status")
async def process_status(response: Response, services: Services = Depends(get_services)) -> dict[str, Any]:
    response.headers.update(NO_STORE_HEADERS)
    running = await _load_running(services)
    return {"process_name": DB_LOAD_PROCESS, "db_load_running": running}


@router.get("/vector-status")
async def vector_status(response: Response, services: Services = Depends(get_services)) -> dict[str, Any]:
    response.headers.update(NO_STORE_HEADERS)
    return await asyncio.to_thread(services.loader.knowledge_status)


@router.post("/reset")
async def reset(services: Services = Depends(get_services)) -> dict[str, bool]:
    """Delete all chunks and CPI rows; every file back to ``not_loaded``."""
    try:
        await services.loader.reset_all()
    except LoadInProgressError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return {"ok": True}


@router.post("/reset-loading")
async def reset_loading(services: Services = Depends(get_services)) -> dict[str, Any]:
    """Release rows stuck in ``loading`` after a timed-out or killed load."""
    if await _load_running(services):
        raise HTTPException(status_code=409, detail=str(LoadInProgressError()))
    return {"ok": True, "reset": await asyncio.to_thread(services.registry.reset_loading)}


@router.post("/chat", response_model=AgentAnswer)
async def chat(
    body: ChatRequest,
    request: Request,
    response: Response,
    services: Services = Depends(get_services),
) -> AgentAnswer:
    """Answer one message with citations."""
    limiter = services.rate_limiter
    client_key = request.client.host if request.client else "global"
    verdict = limiter.check(client_key)
    if not verdict.allowed:
        raise HTTPException(
            status_code=429,
            detail="Too many requests. Please try again later.",
            headers={
                "Retry-After": str(limiter.retry_after(verdict)),
                "X-RateLimit-Limit": str(limiter.limit),
                "X-RateLimit-Remaining": "0",
            },
        )
    response.headers["X-RateLimit-Limit"] = str(limiter.limit)
    response.headers["X-RateLimit-Remaining"] = str(verdict.remaining)

    message = sanitize_input(body.message)
    validation = validate_user_input(message)
    if not validation.is_valid:
        raise HTTPException(status_code=400, detail=", ".join(validation.errors))

    try:
        return await services.agent.answer(message, body.conversation_history)
    except Exception:
        logger.exception("Chat request failed")
        raise HTTPException(status_code=500, detail="Failed to process message")


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
