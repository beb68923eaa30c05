from __future__ import annotations

import logging
from datetime import datetime, timezone
from html import escape
from typing import Any, Callable, Dict, Protocol, Sequence, runtime_checkable

import httpx

from ..config import Settings, get_settings
from ..models.catalog import Order, StockShortfall
from .error_handling import NotificationError
from .manager_actions import CONFIRM_ORDER, CONTACT_CUSTOMER, EDIT_ORDER, REJECT_ORDER
from .response_helpers import format_local_time, format_money

logger = logging.getLogger(__name__)


@runtime_checkable
class Notifier(Protocol):
    async def notify_new_order(
        self,
        order: Order,
        original_message: str,
        shortfalls: Sequence[StockShortfall] = (),
    ) -> bool: ...


def format_order_message(
    order: Order,
    original_message: str,
    shortfalls: Sequence[StockShortfall] = (),
    *,
    currency_symbol: str = "₸",
    timezone_name: str = "Asia/Almaty",
    now: datetime | None = None,
) -> str:
    """HTML text for the managers' channel."""
    items = "\n".join(
        f"• <b>{escape(line.name)}</b> x{line.qty} - {format_money(line.amount, currency_symbol)}"
        for line in order.lines
    )
    customer = order.customer
    parts = [
        "🆕 <b>НОВЫЙ ЗАКАЗ</b>",
        f"📝 Номер: <code>{order.number}</code>",
        "",
        "👤 <b>Клиент:</b>",
    ]
    if customer.name:
        parts.append(f"Имя: {escape(customer.name)}")
    parts.append(f"📞 Телефон: <code>{escape(customer.phone)}</code>" if customer.phone else "❌ Телефон не указан")
    if customer.email:
        parts.append(f"Email: {escape(customer.email)}")
    parts += ["", "🛒 <b>Товары:</b>", items, "", f"💰 <b>Сумма:</b> {format_money(order.total_amount, '')} {order.currency}"]
    if shortfalls:
        parts += ["", "⚠️ <b>Не хватает на складе:</b>"]
        parts += [
            f"• {escape(item.name)} ({escape(item.sku)}): запрошено {item.requested}, в наличии {item.available}"
            for item in shortfalls
        ]
    parts += [
        "",
        "💬 <b>Сообщение клиента:</b>",
        f"\"{escape(original_message or '')}\"",
        "",
        f"⏰ Время: {format_local_time(now or datetime.now(timezone.utc), timezone_name)}",
    ]
    return "\n".join(parts).strip()


def order_keyboard(order_id: str) -> Dict[str, Any]:
    """Buttons handled by manager_actions.apply_manager_action."""
    return {
        "inline_keyboard": [
            [
                {"text": "✅ Подтвердить", "callback_data": f"{CONFIRM_ORDER}:{order_id}"},
                {"text": "❌ Отклонить", "callback_data": f"{REJECT_ORDER}:{order_id}"},
            ],
            [
                {"text": "📞 Связаться", "callback_data": f"{CONTACT_CUSTOMER}:{order_id}"},
                {"text": "✏️ Изменить", "callback_data": f"{EDIT_ORDER}:{order_id}"},
            ],
        ]
    }


class TelegramNotifier:
    """Sends new-order messages to the managers' Telegram channel via the Bot API."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._transport = transport
        self._clock = clock
        self._token = self._settings.telegram_bot_token
        self._channel_id = self._settings.telegram_manager_channel_id
        if not self.enabled:
            logger.warning("TELEGRAM_BOT_TOKEN / TELEGRAM_MANAGER_CHANNEL_ID not set - manager notifications disabled")

    @property
    def enabled(self) -> bool:
        return bool(self._token and self._channel_id)

    async def notify_new_order(
        self,
        order: Order,
        original_message: str,
        shortfalls: Sequence[StockShortfall] = (),
    ) -> bool:
        if not self.enabled:
            logger.warning("Manager channel not configured, skipping notification for %s", order.number)
            return False

        text = format_order_message(
            order,
            original_message,
            shortfalls,
            currency_symbol=self._settings.currency_symbol,
            timezone_name=self._settings.display_timezone,
            now=self._clock() if self._clock else None,
        )
        url = f"{self._settings.telegram_api_base_url.rstrip('/')}/bot{self._token}/sendMessage"
        payload = {
            "chat_id": self._channel_id,
            "text": text,
            "parse_mode": "HTML",
            "reply_markup": order_keyboard(order.id),
        }
        timeout = httpx.Timeout(self._settings.http_timeout_seconds)
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            try:
                response = await client.post(url, json=payload)
                response.raise_for_status()
            except httpx.HTTPError as exc:
                logger.error("telegram sendMessage failed order=%s error=%s", order.number, exc)
                raise NotificationError(str(exc), reason="telegram_send_failed") from exc
        logger.info("Order notification sent to managers: %s", order.number)
        return True


_notifier: TelegramNotifier | None = None


def get_notifier() -> TelegramNotifier:
    global _notifier
    if _notifier is None:
        _notifier = TelegramNotifier()
    return _notifier
