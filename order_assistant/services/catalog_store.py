from __future__ import annotations

import asyncio
import json
import logging
import uuid
from copy import deepcopy
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable
from zoneinfo import ZoneInfo

from ..config import get_settings
from ..models.catalog import Customer, CustomerInfo, MessageLogEntry, Order, OrderLine, OrderStatus, Product
from .error_handling import CatalogStoreError
from .nlu.text_normalizer import TextNormalizer, get_text_normalizer

logger = logging.getLogger(__name__)


@runtime_checkable
class CatalogStore(Protocol):
    """Products, customers and orders. All calls may fail with CatalogStoreError."""

    async def find_by_sku(self, sku: str) -> Optional[Product]: ...

    async def find_by_name_token(self, token: str) -> List[Product]: ...

    async def find_by_code(self, code: str) -> List[Product]: ...

    async def find_all_products(self) -> List[Product]: ...

    async def create_order(
        self,
        customer: CustomerInfo,
        lines: List[OrderLine],
        *,
        source: str,
        original_message: str,
        locale: str,
    ) -> Order: ...

    async def find_order_by_number(self, number: str) -> Optional[Order]: ...

    async def find_order_by_id(self, order_id: str) -> Optional[Order]: ...

    async def update_order_status(
        self, order_id: str, status: OrderStatus, manager_id: Optional[str] = None
    ) -> Optional[Order]: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryCatalogStore:
    """Catalog store backed by the bundled JSON file; customers and orders live in memory."""

    def __init__(
        self,
        products: List[Product] | None = None,
        *,
        catalog_path: Path | None = None,
        order_number_prefix: str | None = None,
        currency: str | None = None,
        timezone_name: str | None = None,
        clock: Callable[[], datetime] = _utcnow,
        normalizer: TextNormalizer | None = None,
    ) -> None:
        settings = get_settings()
        if products is None:
            products = [Product.model_validate(raw) for raw in self._load_json(catalog_path or settings.catalog_path)]
        self._products: List[Product] = list(products)
        self._sku_index: Dict[str, Product] = {product.sku.upper(): product for product in self._products}
        self._customers: Dict[str, Customer] = {}
        self._orders: List[Order] = []
        self._message_log: List[MessageLogEntry] = []
        self._order_number_prefix = order_number_prefix or settings.order_number_prefix
        self._currency = currency or settings.default_currency
        self._timezone = ZoneInfo(timezone_name or settings.display_timezone)
        self._clock = clock
        self._normalizer = normalizer or get_text_normalizer()
        self._normalized_names: Dict[str, str] = {}
        self._write_lock = asyncio.Lock()

    # -------------------------------------------------------------------------
    # Generic helpers
    # -------------------------------------------------------------------------
    @staticmethod
    def _load_json(path: Path) -> List[Dict[str, Any]]:
        if not Path(path).exists():
            logger.warning("Catalog file %s is missing, starting with an empty catalog.", path)
            return []
        try:
            with Path(path).open("r", encoding="utf-8") as fp:
                return json.load(fp)
        except json.JSONDecodeError as exc:
            raise CatalogStoreError(f"catalog file {path} is not valid JSON", reason="catalog_decode_error") from exc

    def _active(self) -> List[Product]:
        return [product for product in self._products if product.is_active]

    def _normalized_name(self, product: Product) -> str:
        cached = self._normalized_names.get(product.id)
        if cached is None:
            cached = self._normalizer.normalize(product.name).normalized
            self._normalized_names[product.id] = cached
        return cached

    def _next_order_number(self, now: datetime) -> str:
        year = now.astimezone(self._timezone).year
        prefix = f"{self._order_number_prefix}-{year}-"
        last_seq = 0
        for order in self._orders:
            if order.number.startswith(prefix):
                last_seq = max(last_seq, int(order.number[len(prefix):]))
        return f"{prefix}{last_seq + 1:06d}"

    def _upsert_customer(self, info: CustomerInfo, locale: str) -> Customer:
        if not info.phone:
            raise CatalogStoreError("customer phone is required", reason="customer_phone_missing")
        customer = self._customers.get(info.phone)
        if customer is None:
            customer = Customer(
                id=f"cus-{uuid.uuid4().hex[:8]}",
                phone=info.phone,
                name=info.name,
                email=info.email,
                locale=locale,
            )
            self._customers[info.phone] = customer
            logger.info("Created customer %s for phone %s", customer.id, info.phone)
            return customer
        # дополняем только пустые поля
        updates: Dict[str, Any] = {"locale": locale}
        if info.name and not customer.name:
            updates["name"] = info.name
        if info.email and not customer.email:
            updates["email"] = info.email
        customer = customer.model_copy(update=updates)
        self._customers[info.phone] = customer
        return customer

    # -------------------------------------------------------------------------
    # Catalog queries
    # -------------------------------------------------------------------------
    async def find_by_sku(self, sku: str) -> Optional[Product]:
        if not sku:
            return None
        product = self._sku_index.get(sku.strip().upper())
        if product is None or not product.is_active:
            return None
        return product

    async def find_by_name_token(self, token: str) -> List[Product]:
        """Products whose name (raw or normalized) contains the token."""
        needle = (token or "").strip().lower()
        if not needle:
            return []
        return [
            product
            for product in self._active()
            if needle in product.name.lower() or needle in self._normalized_name(product)
        ]

    async def find_by_code(self, code: str) -> List[Product]:
        needle = (code or "").strip().upper()
        if not needle:
            return []
        return [
            product
            for product in self._active()
            if product.sku.upper().startswith(needle) or needle in product.name.upper()
        ]

    async def find_all_products(self) -> List[Product]:
        return self._active()

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------
    async def create_order(
        self,
        customer: CustomerInfo,
        lines: List[OrderLine],
        *,
        source: str,
        original_message: str,
        locale: str,
    ) -> Order:
        if not lines:
            raise CatalogStoreError("order must contain at least one line", reason="empty_order")
        async with self._write_lock:
            now = self._clock()
            stored_customer = self._upsert_customer(customer, locale)
            order = Order(
                id=f"ord-{uuid.uuid4().hex[:8]}",
                number=self._next_order_number(now),
                customer=stored_customer,
                status=OrderStatus.NEW,
                lines=deepcopy(lines),
                currency=self._currency,
                source=source,
                created_at=now,
            )
            self._orders.append(order)
            self._message_log.append(
                MessageLogEntry(
                    customer_id=stored_customer.id,
                    order_id=order.id,
                    channel=source,
                    direction="in",
                    body=original_message,
                    meta={"external_id": customer.external_id, "order_number": order.number},
                    created_at=now,
                )
            )
        logger.info("Created order %s with %s lines", order.number, len(order.lines))
        return order

    async def find_order_by_number(self, number: str) -> Optional[Order]:
        needle = (number or "").strip().upper()
        for order in self._orders:
            if order.number.upper() == needle:
                return order
        return None

    async def find_order_by_id(self, order_id: str) -> Optional[Order]:
        for order in self._orders:
            if order.id == order_id:
                return order
        return None

    async def update_order_status(
        self, order_id: str, status: OrderStatus, manager_id: Optional[str] = None
    ) -> Optional[Order]:
        """Set the order status; None when the order is unknown."""
        async with self._write_lock:
            for index, order in enumerate(self._orders):
                if order.id != order_id:
                    continue
                updated = order.model_copy(
                    update={
                        "status": status,
                        "manager_id": manager_id or order.manager_id,
                        "updated_at": self._clock(),
                    }
                )
                self._orders[index] = updated
                break
            else:
                return None
        logger.info("Order %s status %s -> %s by manager %s", updated.number, order.status, status, manager_id or "-")
        return updated

    def list_orders(self) -> List[Order]:
        return list(self._orders)

    def list_customers(self) -> List[Customer]:
        return list(self._customers.values())

    @property
    def message_log(self) -> List[MessageLogEntry]:
        return list(self._message_log)


_catalog_store: InMemoryCatalogStore | None = None


def get_catalog_store() -> InMemoryCatalogStore:
    global _catalog_store
    if _catalog_store is None:
        _catalog_store = InMemoryCatalogStore()
    return _catalog_store
