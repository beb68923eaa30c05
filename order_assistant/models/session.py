from __future__ import annotations

from enum import StrEnum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from ..intents import Locale
from .catalog import Product

SLOT_PHONE = "phone"
SLOT_NAME = "name"

# Порядок проверки обязательных слотов: телефон раньше имени
REQUIRED_SLOTS: tuple[str, ...] = (SLOT_PHONE, SLOT_NAME)


class OrderStep(StrEnum):
    COLLECTING_ITEMS = "collecting_items"
    COLLECTING_INFO = "collecting_info"
    CONFIRMING = "confirming"
    READY = "ready"


class DialogPhase(StrEnum):
    IDLE = "idle"
    COLLECTING_ITEMS = "collecting_items"
    COLLECTING_INFO = "collecting_info"
    CONFIRMING = "confirming"


_PHASE_BY_STEP = {
    OrderStep.COLLECTING_ITEMS: DialogPhase.COLLECTING_ITEMS,
    OrderStep.COLLECTING_INFO: DialogPhase.COLLECTING_INFO,
    OrderStep.CONFIRMING: DialogPhase.CONFIRMING,
    OrderStep.READY: DialogPhase.CONFIRMING,
}


class OrderItemDraft(BaseModel):
    name: str
    sku: str
    qty: int = Field(default=1, ge=1)
    unit_price: float

    @property
    def amount(self) -> float:
        return self.unit_price * self.qty


class ContactDetails(BaseModel):
    """Contact data cached at session level before an order exists."""

    phone: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None


class PendingOrder(BaseModel):
    items: List[OrderItemDraft] = Field(default_factory=list)
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    original_message: str = ""
    step: OrderStep = OrderStep.COLLECTING_ITEMS

    @property
    def total(self) -> float:
        return sum(item.amount for item in self.items)

    def add_item(self, item: OrderItemDraft) -> None:
        """Append an item, merging quantities for an SKU that is already in the order."""

        for existing in self.items:
            if existing.sku == item.sku:
                existing.qty += item.qty
                return
        self.items.append(item)

    def missing_slots(self) -> List[str]:
        missing: List[str] = []
        for slot in REQUIRED_SLOTS:
            if slot == SLOT_PHONE and not self.customer_phone:
                missing.append(slot)
            elif slot == SLOT_NAME and not self.customer_name:
                missing.append(slot)
        return missing

    def backfill(self, contact: ContactDetails) -> None:
        if not self.customer_phone and contact.phone:
            self.customer_phone = contact.phone
        if not self.customer_name and contact.name:
            self.customer_name = contact.name
        if not self.customer_email and contact.email:
            self.customer_email = contact.email

    def mark_ready(self) -> None:
        if not self.items:
            raise ValueError("cannot confirm an order without items")
        if not (self.customer_name and self.customer_phone):
            raise ValueError("cannot confirm an order without customer name and phone")
        self.step = OrderStep.READY


class HistoryMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class Session(BaseModel):
    """Per-user conversational state. Mutated only by the dialog manager."""

    key: str
    locale: Locale = Locale.RU
    message_history: List[HistoryMessage] = Field(default_factory=list)
    last_resolved_products: List[Product] = Field(default_factory=list)
    pending_order: Optional[PendingOrder] = None
    contact: ContactDetails = Field(default_factory=ContactDetails)
    created_at: float = 0.0
    last_seen_at: float = 0.0

    @property
    def phase(self) -> DialogPhase:
        if self.pending_order is None:
            return DialogPhase.IDLE
        return _PHASE_BY_STEP[self.pending_order.step]

    def open_order(self) -> PendingOrder:
        """Return the pending order, creating it (with cached contacts) when absent."""

        if self.pending_order is None:
            self.pending_order = PendingOrder()
            self.pending_order.backfill(self.contact)
        return self.pending_order

    def clear_order(self) -> None:
        self.pending_order = None

    def remember(self, role: Literal["user", "assistant"], content: str, limit: int = 20) -> None:
        self.message_history.append(HistoryMessage(role=role, content=content))
        if limit > 0 and len(self.message_history) > limit:
            del self.message_history[: len(self.message_history) - limit]
