from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..models.catalog import OrderStatus
from ..services.catalog_store import InMemoryCatalogStore, get_catalog_store
from ..services.error_handling import NotFoundError
from ..services.manager_actions import apply_manager_action

router = APIRouter(prefix="/api/orders", tags=["orders"])
logger = logging.getLogger(__name__)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    manager_id: Optional[str] = None


class ManagerActionRequest(BaseModel):
    callback_data: str = Field(..., min_length=1)
    manager_id: Optional[str] = None


def get_catalog_store_dependency() -> InMemoryCatalogStore:
    return get_catalog_store()


@router.post("/manager-actions")
async def manager_action(
    request: ManagerActionRequest,
    store: InMemoryCatalogStore = Depends(get_catalog_store_dependency),
) -> dict[str, Any]:
    result = await apply_manager_action(store, request.callback_data, request.manager_id)
    return {"action": result.action, "text": result.text, "order": result.order.to_public_dict()}


@router.patch("/{order_id}/status")
async def update_order_status(
    order_id: str,
    request: OrderStatusUpdate,
    store: InMemoryCatalogStore = Depends(get_catalog_store_dependency),
) -> dict[str, Any]:
    order = await store.update_order_status(order_id, request.status, request.manager_id)
    if order is None:
        raise NotFoundError(f"order {order_id} not found", reason="order_not_found")
    return order.to_public_dict()


@router.get("/{number}")
async def get_order(
    number: str,
    store: InMemoryCatalogStore = Depends(get_catalog_store_dependency),
) -> dict[str, Any]:
    order = await store.find_order_by_number(number.upper())
    if order is None:
        raise NotFoundError(f"order {number} not found", reason="order_not_found")
    return order.to_public_dict()


@router.get("")
async def list_orders(store: InMemoryCatalogStore = Depends(get_catalog_store_dependency)) -> list[dict[str, Any]]:
    return [order.to_public_dict() for order in store.list_orders()]
