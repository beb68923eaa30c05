from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings, get_settings
from .routers import chat, orders
from .services.error_handling import (
    AppError,
    build_error_response,
    log_exception,
    map_exception_to_error_code,
    new_trace_id,
)
from .services.langchain_llm import setup_langsmith

logger = logging.getLogger(__name__)


async def _error_response(request: Request, exc: Exception, *, handled: bool) -> JSONResponse:
    trace_id = getattr(request.state, "trace_id", None) or new_trace_id()
    await log_exception(request=request, exc=exc, trace_id=trace_id, handled=handled)
    error_code, reason, status_code = map_exception_to_error_code(exc)
    debug = exc.debug if isinstance(exc, AppError) and exc.debug else None
    return build_error_response(
        error_code=error_code,
        reason=reason,
        status_code=status_code,
        trace_id=trace_id,
        debug_payload=debug,
    )


def _install_error_handlers(app: FastAPI) -> None:
    async def handled_error(request: Request, exc: Exception) -> JSONResponse:
        return await _error_response(request, exc, handled=True)

    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        return await _error_response(request, exc, handled=False)

    for exc_class in (RequestValidationError, HTTPException, AppError):
        app.add_exception_handler(exc_class, handled_error)
    app.add_exception_handler(Exception, unhandled_error)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(
        title="Order Intake Assistant",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def attach_trace_id(request: Request, call_next):
        request.state.trace_id = request.headers.get("x-trace-id") or new_trace_id()
        response = await call_next(request)
        response.headers["X-Trace-Id"] = request.state.trace_id
        return response

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    _install_error_handlers(app)
    app.include_router(chat.router)
    app.include_router(orders.router)

    setup_langsmith(settings)
    logger.info(
        "App initialized env=%s langsmith=%s extractor=%s",
        settings.env,
        bool(settings.langsmith_api_key and settings.langsmith_tracing_v2),
        "langchain" if settings.use_langchain and settings.openai_api_key else "rules",
    )
    return app


app = create_app()
