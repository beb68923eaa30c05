"""
Иерархия ошибок сервиса и их отображение в HTTP-конверт.

Внутри диалога ошибки не пробрасываются наружу (деградация до NoMatch,
unknown-интента или повторного запроса). Сюда попадает только то,
что дошло до FastAPI-обработчиков.
"""

from __future__ import annotations

import logging
import traceback
import uuid
from typing import Any, Tuple, Type

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

SAFE_ERROR_TEXT = (
    "Не получилось обработать сообщение. Попробуйте ещё раз чуть позже."
)


class AppError(Exception):
    """Base error: carries a machine-readable reason and optional HTTP status."""

    def __init__(
        self,
        message: str | None = None,
        *,
        reason: str | None = None,
        http_status: int | None = None,
        debug: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message or reason or "")
        self.reason = reason
        self.http_status = http_status
        self.debug = debug or {}


class BadRequestError(AppError):
    pass


class NotFoundError(BadRequestError):
    """Order or product is unknown."""


class UpstreamError(AppError):
    pass


class CatalogStoreError(UpstreamError):
    """Catalog store query or write failed."""


class NotificationError(UpstreamError):
    """Manager channel did not accept the order card."""


class LLMError(AppError):
    pass


class ExtractionFailure(LLMError):
    """NLU extractor returned nothing usable."""


class CommitFailure(AppError):
    """Order could not be persisted; the caller keeps the pending order for a retry."""


# Most specific classes first: isinstance picks the first row that matches.
_ERROR_TABLE: Tuple[Tuple[Type[AppError], str, str, int], ...] = (
    (NotFoundError, "NOT_FOUND", "not_found", status.HTTP_404_NOT_FOUND),
    (BadRequestError, "BAD_REQUEST", "bad_request", status.HTTP_400_BAD_REQUEST),
    (CatalogStoreError, "UPSTREAM_UNAVAILABLE", "catalog_store_error", status.HTTP_502_BAD_GATEWAY),
    (UpstreamError, "UPSTREAM_UNAVAILABLE", "upstream_error", status.HTTP_502_BAD_GATEWAY),
    (LLMError, "LLM_UNAVAILABLE", "llm_error", status.HTTP_502_BAD_GATEWAY),
    (CommitFailure, "COMMIT_FAILED", "commit_failed", status.HTTP_503_SERVICE_UNAVAILABLE),
)

_UPSTREAM_STATUSES = {
    status.HTTP_502_BAD_GATEWAY,
    status.HTTP_503_SERVICE_UNAVAILABLE,
    status.HTTP_504_GATEWAY_TIMEOUT,
}


def _http_detail_reason(detail: Any) -> str | None:
    if isinstance(detail, dict):
        return detail.get("reason") or detail.get("message")
    if isinstance(detail, list) and detail:
        return str(detail[0])
    return str(detail) if detail else None


def _map_http_exception(exc: HTTPException) -> Tuple[str, str, int]:
    code = exc.status_code or status.HTTP_500_INTERNAL_SERVER_ERROR
    reason = _http_detail_reason(exc.detail)
    if code == status.HTTP_404_NOT_FOUND:
        return "NOT_FOUND", reason or "not_found", code
    if code in _UPSTREAM_STATUSES:
        return "UPSTREAM_UNAVAILABLE", reason or "upstream_error", code
    if 400 <= code < 500:
        return "BAD_REQUEST", reason or "bad_request", code
    return "INTERNAL_ERROR", reason or "internal_error", code


def map_exception_to_error_code(exc: Exception) -> Tuple[str, str, int]:
    """(error_code, reason, http_status) for any exception reaching the API layer."""
    if isinstance(exc, AppError):
        for error_cls, code, default_reason, default_status in _ERROR_TABLE:
            if isinstance(exc, error_cls):
                return code, exc.reason or default_reason, exc.http_status or default_status
    if isinstance(exc, RequestValidationError):
        return "BAD_REQUEST", "request_validation_error", status.HTTP_422_UNPROCESSABLE_ENTITY
    if isinstance(exc, HTTPException):
        return _map_http_exception(exc)
    return (
        "INTERNAL_ERROR",
        getattr(exc, "reason", None) or exc.__class__.__name__,
        getattr(exc, "http_status", None) or status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def build_error_response(
    *,
    error_code: str,
    reason: str,
    status_code: int,
    trace_id: str | None = None,
    debug_payload: dict[str, Any] | None = None,
) -> JSONResponse:
    """Error envelope shaped like a chat reply so widgets can show it as is."""
    meta: dict[str, Any] = {"error": {"code": error_code, "reason": reason}, "trace_id": trace_id}
    if debug_payload:
        meta["debug"] = debug_payload
    return JSONResponse(
        status_code=status_code,
        content={
            "messages": [{"text": SAFE_ERROR_TEXT, "parse_mode": None}],
            "meta": meta,
        },
    )


def new_trace_id() -> str:
    return uuid.uuid4().hex


async def _request_body(request: Request) -> str | None:
    try:
        body = await request.body()
    except RuntimeError:
        # тело уже прочитано и недоступно
        return None
    return body.decode("utf-8", errors="replace") if body else None


async def log_exception(
    *,
    request: Request,
    exc: Exception,
    trace_id: str,
    handled: bool,
) -> None:
    body = await _request_body(request)
    reason = getattr(exc, "reason", None) or exc.__class__.__name__
    if not handled:
        logger.error(
            "Unhandled error trace_id=%s %s %s reason=%s body=%s",
            trace_id,
            request.method,
            request.url.path,
            reason,
            body,
            exc_info=exc,
        )
        return
    logger.warning(
        "Request failed trace_id=%s %s %s reason=%s body=%s",
        trace_id,
        request.method,
        request.url.path,
        reason,
        body,
    )
    logger.debug(
        "Traceback for trace_id=%s\n%s",
        trace_id,
        "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
    )
