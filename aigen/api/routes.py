"""FastAPI routes for the code generation API."""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Optional

from fastapi import APIRouter, Depends, Response
from fastapi.responses import StreamingResponse

from aigen.api.dependencies import get_service_factory
from aigen.components.service_factory import AiCodeGeneratorServiceFactory
from aigen.models import (
    CacheStatsResponse,
    CodeGenChatRequest,
    CodeGenType,
    ToolCallRequest,
    ToolExecutionRequest,
    ToolExecutionResult,
)
from aigen.utils.monitor import monitor_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/apps", tags=["apps"])


@router.post("/{app_id}/chat", status_code=HTTPStatus.OK)
def chat_to_gen_code(
    app_id: int,
    payload: CodeGenChatRequest,
    factory: AiCodeGeneratorServiceFactory = Depends(get_service_factory),
) -> StreamingResponse:
    """Stream generated code for one chat turn of an application."""
    with monitor_context(user_id=payload.user_id, app_id=str(app_id)):
        service = factory.get_handle(app_id, payload.code_gen_type)
        chunks = service.stream_code(payload.message)
    return StreamingResponse(chunks, media_type="text/plain; charset=utf-8")


@router.post("/{app_id}/tools/execute", response_model=ToolExecutionResult)
def execute_tool(
    app_id: int,
    payload: ToolCallRequest,
    factory: AiCodeGeneratorServiceFactory = Depends(get_service_factory),
) -> ToolExecutionResult:
    """Run a tool call through the application's service."""
    service = factory.get_handle(app_id, payload.code_gen_type)
    return service.execute_tool(ToolExecutionRequest(name=payload.name, arguments=payload.arguments))


@router.get("/cache/stats", response_model=CacheStatsResponse)
def cache_stats(factory: AiCodeGeneratorServiceFactory = Depends(get_service_factory)) -> CacheStatsResponse:
    stats = factory.cache_stats()
    return CacheStatsResponse(
        size=factory.cached_count(),
        hits=stats.hits,
        misses=stats.misses,
        loads=stats.loads,
        load_failures=stats.load_failures,
        evictions=stats.evictions,
    )


@router.delete("/{app_id}/cache", status_code=HTTPStatus.NO_CONTENT)
def invalidate_service(
    app_id: int,
    code_gen_type: Optional[CodeGenType] = None,
    factory: AiCodeGeneratorServiceFactory = Depends(get_service_factory),
) -> Response:
    """Drop the cached service so the next request rebuilds it."""
    logger.debug("Invalidating cached service for app %s (%s)", app_id, code_gen_type)
    factory.invalidate(app_id, code_gen_type)
    return Response(status_code=HTTPStatus.NO_CONTENT)
