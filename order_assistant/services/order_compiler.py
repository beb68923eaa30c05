from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..config import Settings, get_settings
from ..models.catalog import CustomerInfo, Order, OrderLine, Product, StockShortfall
from ..models.session import OrderItemDraft, PendingOrder, Session
from .catalog_store import CatalogStore
from .error_handling import CommitFailure, NotificationError
from .logging_utils import log_error, log_warning
from .metrics import MetricsService, get_metrics_service
from .notifier import Notifier

logger = logging.getLogger(__name__)


@dataclass
class CommitResult:
    order: Order
    total: float
    shortfalls: List[StockShortfall] = field(default_factory=list)
    notified: bool = False


class OrderCompiler:
    """
    Turns a confirmed PendingOrder into a persisted Order.

    Prices and stock always come from the store, never from the dialog draft.
    Store failures raise CommitFailure; notification failures are only logged.
    """

    def __init__(
        self,
        store: CatalogStore,
        notifier: Notifier,
        *,
        settings: Settings | None = None,
        metrics: MetricsService | None = None,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._settings = settings or get_settings()
        self._metrics = metrics or get_metrics_service()
        self._timeout = self._settings.catalog_timeout_seconds

    async def _reread(self, item: OrderItemDraft) -> Optional[Product]:
        product = await self._store.find_by_sku(item.sku) if item.sku else None
        if product is not None:
            return product
        wanted = item.name.strip().lower()
        for candidate in await self._store.find_by_name_token(item.name):
            if candidate.name.strip().lower() == wanted:
                return candidate
        return None

    async def _build_lines(self, pending: PendingOrder) -> tuple[List[OrderLine], List[StockShortfall]]:
        lines: List[OrderLine] = []
        shortfalls: List[StockShortfall] = []
        for item in pending.items:
            product = await self._reread(item)
            if product is None:
                logger.warning("Dropping item %s (%s): no longer in catalog", item.name, item.sku)
                continue
            lines.append(
                OrderLine(
                    product_id=product.id,
                    sku=product.sku,
                    name=product.name,
                    qty=item.qty,
                    unit_price=product.unit_price,
                )
            )
            if product.stock_qty < item.qty:
                shortfalls.append(
                    StockShortfall(sku=product.sku, name=product.name, requested=item.qty, available=product.stock_qty)
                )
        return lines, shortfalls

    async def compile(self, pending: PendingOrder, session: Session) -> CommitResult:
        if not pending.customer_phone:
            raise CommitFailure("customer phone is missing", reason="customer_phone_missing")
        try:
            lines, shortfalls = await asyncio.wait_for(self._build_lines(pending), timeout=self._timeout)
            if not lines:
                raise CommitFailure("no valid items left in the order", reason="no_valid_items")
            order = await asyncio.wait_for(
                self._store.create_order(
                    CustomerInfo(
                        phone=pending.customer_phone,
                        name=pending.customer_name,
                        email=pending.customer_email,
                        external_id=session.key,
                    ),
                    lines,
                    source=self._settings.order_source,
                    original_message=pending.original_message,
                    locale=session.locale.value,
                ),
                timeout=self._timeout,
            )
        except CommitFailure:
            self._metrics.record_commit_failure()
            raise
        except asyncio.TimeoutError as exc:
            self._metrics.record_commit_failure()
            log_warning(logger, "Order commit timed out", session_key=session.key, phase=session.phase)
            raise CommitFailure("catalog store timed out", reason="store_timeout") from exc
        except Exception as exc:
            self._metrics.record_commit_failure()
            log_warning(logger, f"Order commit failed: {exc}", session_key=session.key, phase=session.phase)
            raise CommitFailure(str(exc), reason="store_error") from exc

        if shortfalls:
            log_warning(
                logger,
                f"Order {order.number} has stock shortfalls: {[s.sku for s in shortfalls]}",
                session_key=session.key,
            )
        self._metrics.record_order_committed(shortfalls=len(shortfalls))

        notified = False
        try:
            notified = await self._notifier.notify_new_order(order, pending.original_message, shortfalls)
        except NotificationError as exc:
            self._metrics.record_notification_failure()
            log_warning(logger, f"Manager notification failed for {order.number}: {exc}", session_key=session.key)
        except Exception as exc:
            self._metrics.record_notification_failure()
            log_error(
                logger,
                f"Unexpected notifier error for {order.number}: {exc}",
                session_key=session.key,
                exc_info=exc,
            )

        return CommitResult(order=order, total=order.total_amount, shortfalls=shortfalls, notified=notified)
