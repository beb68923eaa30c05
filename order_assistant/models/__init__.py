from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .catalog import (
    Customer,
    CustomerInfo,
    MessageLogEntry,
    Order,
    OrderLine,
    OrderStatus,
    Product,
    StockShortfall,
)
from .extraction import ExtractedCustomer, ExtractedIntent, ExtractedItem, ExtractedProduct
from .session import (
    ContactDetails,
    DialogPhase,
    HistoryMessage,
    OrderItemDraft,
    OrderStep,
    PendingOrder,
    Session,
)


class OutboundMessage(BaseModel):
    """Single text that a transport adapter should deliver to the user."""

    text: str
    parse_mode: Optional[str] = "HTML"


class ChatRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    session_id: str = Field(min_length=1)
    message: str
    locale: Optional[str] = None
    trace_id: Optional[str] = None


class ChatResponse(BaseModel):
    session_id: str
    messages: List[OutboundMessage] = Field(default_factory=list)
    phase: DialogPhase


__all__ = [
    "ChatRequest",
    "ChatResponse",
    "ContactDetails",
    "Customer",
    "CustomerInfo",
    "DialogPhase",
    "ExtractedCustomer",
    "ExtractedIntent",
    "ExtractedItem",
    "ExtractedProduct",
    "HistoryMessage",
    "MessageLogEntry",
    "Order",
    "OrderItemDraft",
    "OrderLine",
    "OrderStatus",
    "OrderStep",
    "OutboundMessage",
    "PendingOrder",
    "Product",
    "Session",
    "StockShortfall",
]
