"""
Кнопки под карточкой заказа в канале менеджеров.

callback_data имеет вид "<action>:<order_id>" (см. notifier.order_keyboard).
Подтверждение и отклонение меняют статус заказа, "Связаться" отдаёт
контакты клиента, "Изменить" только подсказывает, что делать.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from html import escape
from typing import Optional

from ..models.catalog import Order, OrderStatus
from .catalog_store import CatalogStore
from .error_handling import BadRequestError, NotFoundError

logger = logging.getLogger(__name__)

CONFIRM_ORDER = "confirm_order"
REJECT_ORDER = "reject_order"
CONTACT_CUSTOMER = "contact_customer"
EDIT_ORDER = "edit_order"

STATUS_BY_ACTION = {
    CONFIRM_ORDER: OrderStatus.CONFIRMED,
    REJECT_ORDER: OrderStatus.CANCELLED,
}
KNOWN_ACTIONS = {CONFIRM_ORDER, REJECT_ORDER, CONTACT_CUSTOMER, EDIT_ORDER}

EDIT_HINT = "Для изменения заказа обратитесь к админ-панели или свяжитесь с клиентом напрямую"


@dataclass(frozen=True)
class ManagerAction:
    action: str
    order_id: str


@dataclass
class ManagerActionResult:
    action: str
    order: Order
    text: str


def parse_manager_callback(data: str | None) -> Optional[ManagerAction]:
    action, sep, order_id = (data or "").strip().partition(":")
    if not sep or action not in KNOWN_ACTIONS or not order_id:
        return None
    return ManagerAction(action=action, order_id=order_id)


def format_customer_contacts(order: Order) -> str:
    customer = order.customer
    parts = ["📞 <b>Контакты клиента</b>", "", f"📝 Заказ: <code>{order.number}</code>"]
    if customer.name:
        parts.append(f"👤 Имя: {escape(customer.name)}")
    parts.append(f"📞 Телефон: <code>{escape(customer.phone)}</code>")
    if customer.email:
        parts.append(f"📧 Email: {escape(customer.email)}")
    return "\n".join(parts)


async def apply_manager_action(
    store: CatalogStore,
    callback_data: str,
    manager_id: str | None = None,
) -> ManagerActionResult:
    action = parse_manager_callback(callback_data)
    if action is None:
        raise BadRequestError(f"unknown manager action {callback_data!r}", reason="unknown_manager_action")

    status = STATUS_BY_ACTION.get(action.action)
    if status is not None:
        order = await store.update_order_status(action.order_id, status, manager_id)
    else:
        order = await store.find_order_by_id(action.order_id)
    if order is None:
        raise NotFoundError(f"order {action.order_id} not found", reason="order_not_found")

    if action.action == CONFIRM_ORDER:
        text = f"✅ Заказ {order.number} подтверждён"
    elif action.action == REJECT_ORDER:
        text = f"❌ Заказ {order.number} отклонён"
    elif action.action == CONTACT_CUSTOMER:
        text = format_customer_contacts(order)
    else:
        text = EDIT_HINT
    logger.info("Manager %s applied %s to order %s", manager_id or "-", action.action, order.number)
    return ManagerActionResult(action=action.action, order=order, text=text)
