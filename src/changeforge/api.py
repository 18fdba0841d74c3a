"""FastAPI service."""

from __future__ import annotations

import asyncio
import contextlib
import json
from typing import Any, Callable

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import httpx
from pydantic import BaseModel, Field

from changeforge.config import Settings
from changeforge.errors import HostingApiError, ValidationError
from changeforge.events import EventBroadcaster, event_from_webhook
from changeforge.factory import build_orchestrator
from changeforge.models import BatchReport, ExecutionOptions, Task
from changeforge.orchestrator import Orchestrator
from changeforge.util.logging import configure_logging, get_logger

SERVICE_VERSION = "0.1.0"

logger = get_logger("changeforge.api")


class MultiAgentRunRequest(BaseModel):
    objective: str | None = None
    constraints: dict[str, Any] = Field(default_factory=dict)
    execution: ExecutionOptions = Field(default_factory=ExecutionOptions)


class GenerateRepoRequest(BaseModel):
    objective: str | None = None
    tasks: list[Task] = Field(default_factory=list)
    constraints: dict[str, Any] = Field(default_factory=dict)
    execution: ExecutionOptions = Field(
        default_factory=lambda: ExecutionOptions(auto_merge=False, enable_pages=True)
    )


def create_app(
    settings: Settings | None = None,
    *,
    transport: httpx.BaseTransport | None = None,
    broadcaster: EventBroadcaster | None = None,
    orchestrator_factory: Callable[[], Orchestrator] | None = None,
    sleep: Callable[[float], None] | None = None,
) -> FastAPI:
    """Build the service; raises `ConfigError` before serving if credentials are missing."""
    settings = settings or Settings()
    settings.require_credentials()
    configure_logging(settings.log_level)
    events = broadcaster if broadcaster is not None else EventBroadcaster()

    def new_orchestrator() -> Orchestrator:
        if orchestrator_factory is not None:
            return orchestrator_factory()
        return build_orchestrator(settings, transport=transport, broadcaster=events, sleep=sleep)

    app = FastAPI(title="changeforge", version=SERVICE_VERSION)
    app.state.settings = settings
    app.state.broadcaster = events

    @app.exception_handler(ValidationError)
    async def _validation_error(_request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def _request_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": "invalid request", "details": exc.errors()})

    @app.exception_handler(HostingApiError)
    async def _hosting_error(_request: Request, exc: HostingApiError) -> JSONResponse:
        logger.error("api.hosting_error status=%s endpoint=%s", exc.status_code, exc.endpoint)
        return JSONResponse(
            status_code=500, content={"error": str(exc), "status_code": exc.status_code}
        )

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "version": SERVICE_VERSION}

    @app.post("/multi-agent-run", response_model=BatchReport, response_model_exclude_none=True)
    def multi_agent_run(request: MultiAgentRunRequest) -> BatchReport:
        return new_orchestrator().run_agent(
            request.objective or "", request.constraints, request.execution
        )

    @app.post("/generate-repo-with-prs", response_model=BatchReport, response_model_exclude_none=True)
    def generate_repo_with_prs(request: GenerateRepoRequest) -> BatchReport:
        return new_orchestrator().run_tasks(
            request.objective or "", request.tasks, request.execution, request.constraints
        )

    @app.post("/webhook")
    async def webhook(request: Request) -> dict[str, Any]:
        try:
            payload = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ValidationError("webhook body must be a JSON object") from exc
        if not isinstance(payload, dict):
            raise ValidationError("webhook body must be a JSON object")
        event = event_from_webhook(request.headers.get("x-github-event"), payload)
        delivered = events.publish(event) if event is not None else 0
        return {"ok": True, "delivered": delivered}

    @app.websocket("/events")
    async def event_stream(websocket: WebSocket) -> None:
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        subscription = events.subscribe(lambda event: loop.call_soon_threadsafe(queue.put_nowait, event))
        await websocket.accept()

        async def pump() -> None:
            while True:
                await websocket.send_json(await queue.get())

        sender = asyncio.create_task(pump())
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.info("events.disconnected subscription=%s", subscription)
        finally:
            events.unsubscribe(subscription)
            sender.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await sender

    return app
