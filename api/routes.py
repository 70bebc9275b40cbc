"""
HTTP routes for the gateway (mounted under /api/v1).

Endpoints:
    POST /summarize, /translate, /email-reply, /ask-text   text tasks, SSE when config.stream
    POST /project-planner                                  markdown plan
    POST /sentiment, /keywords, /highlighter, /meeting-notes  structured tasks
    POST /describe-image                                   vision (Ollama)
    GET  /services/status, /services/models, /services/health/{service}
    GET  /hello, /health, /metrics                         public
"""
import json
from contextlib import aclosing
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Literal, Optional

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import JSONResponse, StreamingResponse

from ai.adapters.router import ProviderRouter
from ai.schemas import (
    AskTextRequest,
    AskTextResponse,
    DescribeImageRequest,
    DescribeImageResponse,
    EmailReplyRequest,
    EmailReplyResponse,
    ErrorResponse,
    HighlighterRequest,
    HighlighterResponse,
    KeywordsRequest,
    KeywordsResponse,
    MeetingNotesRequest,
    MeetingNotesResponse,
    PlannerRequest,
    PlannerResponse,
    RequestConfig,
    SentimentRequest,
    SentimentResponse,
    ServiceHealth,
    SummarizeRequest,
    SummarizeResponse,
    TranslateRequest,
    TranslateResponse,
)
from core.config import CAPABILITIES, Config, Provider
from core.errors import (
    GatewayError,
    ProviderUnavailableError,
    SchemaValidationError,
    UnsupportedProviderError,
)
from core.logging import logger
from core.monitoring import MonitoringService
from services.task_service import FAILURE_MESSAGES, TaskService

ERROR_RESPONSES: Dict[int, Dict[str, Any]] = {
    400: {"model": ErrorResponse, "description": "Unsupported provider"},
    401: {"model": ErrorResponse, "description": "Unauthorized - Bearer token required"},
    502: {"model": ErrorResponse, "description": "Model output failed schema validation"},
    503: {"model": ErrorResponse, "description": "Provider disabled, unreachable or without models"},
    500: {"model": ErrorResponse, "description": "Backend or internal failure"},
}

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}


def error_status(error: Exception) -> int:
    """HTTP status for a task failure."""
    if isinstance(error, UnsupportedProviderError):
        return 400
    if isinstance(error, ProviderUnavailableError):
        return 503
    if isinstance(error, SchemaValidationError):
        return 502
    return 500


def error_response(task: str, error: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=error_status(error),
        content={"error": f"{FAILURE_MESSAGES.get(task, 'Request failed')}: {error}"},
    )


async def run_task(task: str, call: Callable[[], Awaitable[Dict[str, Any]]]) -> Any:
    """Await a task and turn any failure into the uniform error body."""
    try:
        return await call()
    except GatewayError as e:
        return error_response(task, e)
    except Exception as e:
        logger.exception(f"Unexpected error in {task}")
        return error_response(task, e)


async def sse_stream(events: AsyncIterator[Dict[str, Any]]) -> AsyncIterator[str]:
    """Encode events as SSE ``data:`` frames; closing this closes the upstream stream."""
    async with aclosing(events) as items:
        async for event in items:
            yield f"data: {json.dumps(event)}\n\n"


def build_router(
    config: Config,
    provider_router: ProviderRouter,
    service: TaskService,
    monitoring: MonitoringService,
    auth: Callable[..., Any],
) -> APIRouter:
    """Assemble the versioned API: public liveness routes plus token-protected task routes."""
    api = APIRouter()
    protected = APIRouter(dependencies=[Depends(auth)], responses=ERROR_RESPONSES)

    async def text_task(task: str, task_config: RequestConfig, call: Callable[[], Awaitable[Any]]) -> Any:
        if task_config.stream:
            events = service.stream_events(task, task_config, call)
            return StreamingResponse(sse_stream(events), media_type="text/event-stream", headers=SSE_HEADERS)
        return await run_task(task, call)

    # ── Public ───────────────────────────────────────────

    @api.get("/hello", tags=["Health"])
    async def hello():
        return {"message": "Hello from the LLM gateway", "apiVersion": service.api_version}

    @api.get("/health", tags=["Health"])
    async def health():
        return monitoring.health_check()

    @api.get("/metrics", tags=["Health"], include_in_schema=False)
    async def metrics():
        body, content_type = monitoring.render()
        return Response(content=body, media_type=content_type)

    # ── Text tasks ───────────────────────────────────────

    @protected.post("/summarize", tags=["Text"], responses={200: {"model": SummarizeResponse}})
    async def summarize(request: SummarizeRequest):
        return await text_task("summarize", request.config, lambda: service.summarize(request))

    @protected.post("/translate", tags=["Text"], responses={200: {"model": TranslateResponse}})
    async def translate(request: TranslateRequest):
        return await text_task("translate", request.config, lambda: service.translate(request))

    @protected.post("/email-reply", tags=["Text"], responses={200: {"model": EmailReplyResponse}})
    async def email_reply(request: EmailReplyRequest):
        return await text_task("email_reply", request.config, lambda: service.email_reply(request))

    @protected.post("/ask-text", tags=["Text"], responses={200: {"model": AskTextResponse}})
    async def ask_text(request: AskTextRequest):
        return await text_task("ask_text", request.config, lambda: service.ask_text(request))

    @protected.post(
        "/project-planner", tags=["Text"],
        response_model=PlannerResponse, response_model_exclude_none=True,
    )
    async def project_planner(request: PlannerRequest):
        return await run_task("planner", lambda: service.plan(request))

    # ── Structured tasks ─────────────────────────────────

    @protected.post(
        "/sentiment", tags=["Structured"],
        response_model=SentimentResponse, response_model_exclude_none=True,
    )
    async def sentiment(request: SentimentRequest):
        return await run_task("sentiment", lambda: service.sentiment(request))

    @protected.post(
        "/keywords", tags=["Structured"],
        response_model=KeywordsResponse, response_model_exclude_none=True,
    )
    async def keywords(request: KeywordsRequest):
        return await run_task("keywords", lambda: service.keywords(request))

    @protected.post(
        "/highlighter", tags=["Structured"],
        response_model=HighlighterResponse, response_model_exclude_none=True,
    )
    async def highlighter(request: HighlighterRequest):
        return await run_task("highlighter", lambda: service.highlighter(request))

    @protected.post(
        "/meeting-notes", tags=["Structured"],
        response_model=MeetingNotesResponse, response_model_exclude_none=True,
    )
    async def meeting_notes(request: MeetingNotesRequest):
        return await run_task("meeting_notes", lambda: service.meeting_notes(request))

    @protected.post(
        "/describe-image", tags=["Vision"],
        response_model=DescribeImageResponse, response_model_exclude_none=True,
    )
    async def describe_image(request: DescribeImageRequest):
        return await run_task("describe_image", lambda: service.describe_image(request))

    # ── Services ─────────────────────────────────────────

    @protected.get("/services/status", tags=["Services"])
    async def services_status():
        status = await provider_router.get_service_status()
        for name, entry in status["services"].items():
            monitoring.set_service_health(name, entry["available"])
        return status

    @protected.get("/services/models", tags=["Services"])
    async def services_models(
        service_name: Optional[str] = Query(None, alias="service", description="Provider tag, or auto for all"),
        source: Literal["live", "config"] = Query("live"),
        view: Literal["capability", "provider", "both"] = Query("capability"),
    ):
        if source == "config":
            try:
                catalog = config.load_catalog()
            except GatewayError as e:
                logger.error(f"Failed to load model catalog: {e}")
                return JSONResponse(status_code=500, content={"error": f"Failed to get available models: {e}"})
            body: Dict[str, Any] = {"source": "config"}
            if view in ("capability", "both"):
                body["byCapability"] = {cap: catalog.models_by_capability(cap) for cap in CAPABILITIES}
            if view in ("provider", "both"):
                body["byProvider"] = catalog.by_provider()
            return body

        if not service_name or service_name == "auto":
            result = {}
            for tag in Provider:
                result[tag.value] = {
                    "service": tag.value,
                    "models": await provider_router.get_available_models(tag),
                    "available": await provider_router.check_service_availability(tag),
                }
            return result

        if service_name.lower() not in {p.value for p in Provider}:
            return JSONResponse(status_code=400, content={"error": f"Unsupported service: {service_name}"})
        return {
            "service": service_name,
            "models": await provider_router.get_available_models(service_name),
            "available": await provider_router.check_service_availability(service_name),
        }

    @protected.get("/services/health/{service_name}", tags=["Services"], response_model=ServiceHealth)
    async def service_health(service_name: str):
        if service_name.lower() not in {p.value for p in Provider}:
            valid = ", ".join(p.value for p in Provider)
            return JSONResponse(status_code=400, content={"error": f"Invalid service. Must be one of: {valid}"})
        available = await provider_router.check_service_availability(service_name)
        monitoring.set_service_health(service_name.lower(), available)
        return {
            "service": service_name,
            "available": available,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    api.include_router(protected)
    return api
