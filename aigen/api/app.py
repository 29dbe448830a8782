"""FastAPI application exposing the code generation services."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from aigen.api import routes
from aigen.api.dependencies import get_service_factory
from aigen.components.service_factory import bootstrap_default_service
from aigen.utils.exceptions import (
    ChatMemoryStoreError,
    CodeGenerationError,
    DependencyLookupError,
    GuardrailViolationError,
    HistoryLoadError,
    ToolExecutionError,
    UnsupportedVariantError,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    factory_provider = app.dependency_overrides.get(get_service_factory, get_service_factory)
    bootstrap_default_service(factory_provider())
    yield


app = FastAPI(
    title="AI Code Generator API",
    version="0.1.0",
    description=(
        "Per-application code generation services backed by cached model sessions. "
        "Use the Swagger UI at /docs to explore request/response contracts."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)
app.include_router(routes.router)


@app.exception_handler(UnsupportedVariantError)
@app.exception_handler(GuardrailViolationError)
@app.exception_handler(ToolExecutionError)
async def handle_bad_request(request: Request, exc: Exception):
    logger.info("Rejected request on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=HTTPStatus.BAD_REQUEST.value,
        content={"detail": str(exc)},
    )


@app.exception_handler(DependencyLookupError)
@app.exception_handler(HistoryLoadError)
@app.exception_handler(ChatMemoryStoreError)
@app.exception_handler(CodeGenerationError)
async def handle_upstream_failure(request: Request, exc: Exception):
    logger.exception("Upstream failure on %s", request.url.path)
    return JSONResponse(
        status_code=HTTPStatus.BAD_GATEWAY.value,
        content={"detail": str(exc)},
    )
