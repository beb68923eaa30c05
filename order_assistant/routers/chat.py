from __future__ import annotations

import logging
import time
from dataclasses import asdict
from typing import Any
from uuid import uuid4

from fastapi import APIRouter, Depends, Request, status

from ..models import ChatRequest, ChatResponse
from ..services.dialog_manager import DialogManager, get_dialog_manager
from ..services.error_handling import BadRequestError
from ..services.metrics import MetricsService, get_metrics_service
from ..utils.logging import get_request_logger

router = APIRouter(prefix="/api/chat", tags=["chat"])
logger = logging.getLogger(__name__)


def get_dialog_manager_dependency() -> DialogManager:
    return get_dialog_manager()


@router.post("/message", response_model=ChatResponse)
async def post_message(
    request: ChatRequest,
    http_request: Request,
    manager: DialogManager = Depends(get_dialog_manager_dependency),
) -> ChatResponse:
    start_time = time.perf_counter()

    if not request.message.strip():
        raise BadRequestError(
            "message must not be empty",
            reason="empty_message",
            http_status=status.HTTP_400_BAD_REQUEST,
        )

    trace_id = request.trace_id or getattr(http_request.state, "trace_id", None) or uuid4().hex
    request_logger = get_request_logger(logger, trace_id=trace_id, session_key=request.session_id)
    request_logger.info("Incoming chat message text=%s", request.message)

    turn = await manager.handle_turn(
        request.session_id,
        request.message,
        request.locale,
        trace_id=trace_id,
    )
    response = ChatResponse(session_id=request.session_id, messages=turn.messages, phase=turn.phase)
    request_logger.info(
        "Chat reply messages=%s phase=%s took_ms=%.1f",
        len(turn.messages),
        response.phase,
        (time.perf_counter() - start_time) * 1000,
    )
    return response


def get_metrics_dependency() -> MetricsService:
    return get_metrics_service()


@router.get("/metrics")
async def get_metrics(metrics: MetricsService = Depends(get_metrics_dependency)) -> dict[str, Any]:
    return asdict(metrics.snapshot())
