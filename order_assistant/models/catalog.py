from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Product(BaseModel):
    """Read-only catalog view of a sellable SKU."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    sku: str
    name: str
    unit_price: float
    currency: str = "KZT"
    stock_qty: int = 0
    url: Optional[str] = None
    is_active: bool = True


class Customer(BaseModel):
    id: str
    phone: str
    name: Optional[str] = None
    email: Optional[str] = None
    locale: str = "ru"


class CustomerInfo(BaseModel):
    """Contact data collected in the dialog and handed to the store."""

    phone: str
    name: Optional[str] = None
    email: Optional[str] = None
    external_id: Optional[str] = None


class OrderStatus(StrEnum):
    NEW = "NEW"
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PAID = "PAID"
    SHIPPED = "SHIPPED"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class OrderLine(BaseModel):
    product_id: str
    sku: str
    name: str
    qty: int
    unit_price: float

    @property
    def amount(self) -> float:
        return self.unit_price * self.qty


class Order(BaseModel):
    id: str
    number: str
    customer: Customer
    status: OrderStatus = OrderStatus.NEW
    lines: List[OrderLine] = Field(default_factory=list)
    currency: str = "KZT"
    source: str = "chat"
    created_at: datetime
    updated_at: Optional[datetime] = None
    manager_id: Optional[str] = None

    @property
    def total_amount(self) -> float:
        return sum(line.amount for line in self.lines)

    def to_public_dict(self) -> Dict[str, Any]:
        payload = self.model_dump(mode="json")
        payload["total_amount"] = self.total_amount
        for line_payload, line in zip(payload["lines"], self.lines):
            line_payload["amount"] = line.amount
        return payload


class MessageLogEntry(BaseModel):
    customer_id: Optional[str] = None
    order_id: Optional[str] = None
    channel: str
    direction: str = "in"
    body: str
    meta: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class StockShortfall(BaseModel):
    """Requested quantity exceeds stock. Reported to the operator, never blocks the order."""

    sku: str
    name: str
    requested: int
    available: int
