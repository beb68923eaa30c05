"""Reply texts and renderers shared by the dialog manager and notifier."""

from __future__ import annotations

import re
from datetime import datetime
from html import escape
from typing import Dict, List, Sequence
from zoneinfo import ZoneInfo

from ..intents import Locale
from ..models import OutboundMessage
from ..models.catalog import Order, OrderStatus, Product
from ..models.session import SLOT_NAME, SLOT_PHONE, PendingOrder

# ============================================================================
# Static texts
# ============================================================================

TEXTS: Dict[str, Dict[Locale, str]] = {
    "welcome": {
        Locale.RU: (
            "👋 Добро пожаловать!\n\n"
            "Я помогу оформить заказ на электронику и компоненты. Просто напишите, что вам нужно.\n\n"
            "Примеры:\n"
            "• \"Мне нужно 2 Arduino Uno\"\n"
            "• \"Покажи цены на Raspberry Pi\"\n"
            "• \"Проверь статус заказа KG-2025-000123\"\n\n"
            "Напишите /help для списка команд."
        ),
        Locale.EN: (
            "👋 Welcome!\n\n"
            "I can help you order electronics and components. Just tell me what you need.\n\n"
            "Examples:\n"
            "• \"I need 2 Arduino Uno\"\n"
            "• \"Show me Raspberry Pi prices\"\n"
            "• \"Check order status KG-2025-000123\"\n\n"
            "Type /help for more commands."
        ),
    },
    "help": {
        Locale.RU: (
            "🤖 <b>Доступные команды:</b>\n\n"
            "/start - Начать диалог\n"
            "/help - Показать эту справку\n"
            "/status - Проверить статус заказа\n"
            "/cancel - Отменить текущую операцию\n"
            "/lang - Сменить язык\n\n"
            "<b>Как оформить заказ:</b>\n"
            "1. Скажите, какие товары нужны\n"
            "2. Укажите контактные данные\n"
            "3. Подтвердите заказ"
        ),
        Locale.EN: (
            "🤖 <b>Available commands:</b>\n\n"
            "/start - Start conversation\n"
            "/help - Show this help\n"
            "/status - Check order status\n"
            "/cancel - Cancel current operation\n"
            "/lang - Change language\n\n"
            "<b>How to order:</b>\n"
            "1. Tell me what products you need\n"
            "2. Provide your contact details\n"
            "3. Confirm the order"
        ),
    },
    "cancelled": {
        Locale.RU: "❌ Операция отменена. Чем могу помочь?",
        Locale.EN: "❌ Operation cancelled. How can I help you?",
    },
    "order_cancelled": {
        Locale.RU: "❌ Заказ отменен. Чем могу помочь?",
        Locale.EN: "❌ Order cancelled. How can I help you?",
    },
    "language_changed": {
        Locale.RU: "🌍 Язык изменен на русский",
        Locale.EN: "🌍 Language changed to English",
    },
    "ask_order_number": {
        Locale.RU: "Пожалуйста, укажите номер заказа (формат: KG-YYYY-XXXXXX):",
        Locale.EN: "Please provide the order number (format: KG-YYYY-XXXXXX):",
    },
    "order_not_found": {
        Locale.RU: "Заказ {number} не найден. Проверьте номер и попробуйте ещё раз.",
        Locale.EN: "Order {number} was not found. Please check the number and try again.",
    },
    "products_not_found": {
        Locale.RU: "К сожалению, не нашёл такие товары. Уточните название или артикул.",
        Locale.EN: "Sorry, I couldn't find those products. Please clarify the name or SKU.",
    },
    "ask_phone": {
        Locale.RU: "Пожалуйста, укажите номер телефона (формат: +7 7xx xxx xx xx):",
        Locale.EN: "Please provide your phone number (format: +7 7xx xxx xx xx):",
    },
    "ask_name": {
        Locale.RU: "Пожалуйста, укажите ваше ФИО:",
        Locale.EN: "Please provide your full name:",
    },
    "confirm_reprompt": {
        Locale.RU: "Пожалуйста, ответьте \"Да\" для подтверждения или \"Нет\" для отмены заказа.",
        Locale.EN: "Please reply \"Yes\" to confirm or \"No\" to cancel the order.",
    },
    "commit_error": {
        Locale.RU: "Извините, произошла ошибка при создании заказа. Ответьте \"Да\", чтобы попробовать ещё раз, или \"Нет\" для отмены.",
        Locale.EN: "Sorry, there was an error creating your order. Reply \"Yes\" to try again or \"No\" to cancel.",
    },
    "generic_error": {
        Locale.RU: "Извините, что-то пошло не так. Попробуйте ещё раз чуть позже.",
        Locale.EN: "Sorry, something went wrong. Please try again a bit later.",
    },
    "contact_saved": {
        Locale.RU: "Спасибо, контактные данные сохранены. Что хотите заказать?",
        Locale.EN: "Thanks, your contact details are saved. What would you like to order?",
    },
    "some_not_found": {
        Locale.RU: "Не нашёл: {names}",
        Locale.EN: "Not found: {names}",
    },
    "choose_from_list": {
        Locale.RU: "Хотите заказать какие-либо из этих товаров? Укажите артикулы и количество (например, \"REV-41-1303 x2\").",
        Locale.EN: "Would you like to order any of these products? Please specify the SKU(s) and quantities (e.g., \"REV-41-1303 x2\").",
    },
}

STATUS_LABELS: Dict[OrderStatus, Dict[Locale, str]] = {
    OrderStatus.NEW: {Locale.RU: "🟡 Новый", Locale.EN: "🟡 New"},
    OrderStatus.PENDING: {Locale.RU: "🟠 В обработке", Locale.EN: "🟠 Pending"},
    OrderStatus.CONFIRMED: {Locale.RU: "🟢 Подтвержден", Locale.EN: "🟢 Confirmed"},
    OrderStatus.PAID: {Locale.RU: "💚 Оплачен", Locale.EN: "💚 Paid"},
    OrderStatus.SHIPPED: {Locale.RU: "🚚 Отправлен", Locale.EN: "🚚 Shipped"},
    OrderStatus.CLOSED: {Locale.RU: "✅ Завершен", Locale.EN: "✅ Closed"},
    OrderStatus.CANCELLED: {Locale.RU: "❌ Отменен", Locale.EN: "❌ Cancelled"},
}

SLOT_PROMPTS = {SLOT_PHONE: "ask_phone", SLOT_NAME: "ask_name"}


def text(key: str, locale: Locale, **kwargs: str) -> str:
    template = TEXTS[key][locale]
    return template.format(**kwargs) if kwargs else template


def plain(key: str, locale: Locale, **kwargs: str) -> OutboundMessage:
    return OutboundMessage(text=text(key, locale, **kwargs), parse_mode=None)


def html(body: str) -> OutboundMessage:
    return OutboundMessage(text=body, parse_mode="HTML")


def format_money(amount: float, symbol: str = "₸") -> str:
    value = float(amount)
    rendered = str(int(value)) if value.is_integer() else f"{value:.2f}"
    return f"{rendered}{symbol}"


def status_label(status: OrderStatus, locale: Locale) -> str:
    return STATUS_LABELS.get(status, {}).get(locale, str(status))


def slot_prompt(slot: str, locale: Locale) -> str:
    return text(SLOT_PROMPTS[slot], locale)


# ============================================================================
# Chunking
# ============================================================================


_TAG = re.compile(r"<[^>]+>")
_PARTIAL_ENTITY = re.compile(r"&[#\w]*$")


def _fit(piece: str, limit: int) -> str:
    """Shorten an oversized piece to limit chars; markup is dropped so no tag or entity is cut."""
    if len(piece) <= limit:
        return piece
    bare = _TAG.sub("", piece)
    if len(bare) <= limit:
        return bare
    return _PARTIAL_ENTITY.sub("", bare[: limit - 1]) + "…"


def chunk_blocks(header: str, blocks: Sequence[str], footer: str, limit: int) -> List[str]:
    """
    Pack header + blocks + footer into messages no longer than limit characters.

    Blocks are never split; a new chunk starts without the header. The footer
    goes into the last chunk if it fits, otherwise into its own message. A piece
    longer than limit on its own is shortened by _fit.
    """
    chunks: List[str] = []
    current = _fit(header, limit)
    footer = _fit(footer, limit)
    for block in (_fit(block, limit) for block in blocks):
        if current and len(current + block) > limit:
            chunks.append(current)
            current = block
        else:
            current += block
    if footer:
        if current and len(current + footer) > limit:
            chunks.append(current)
            current = footer
        else:
            current += footer
    if current:
        chunks.append(current)
    return chunks


# ============================================================================
# Renderers
# ============================================================================


def render_product_listing(
    products: Sequence[Product],
    locale: Locale,
    *,
    limit: int = 15,
    chunk_chars: int = 3500,
    currency_symbol: str = "₸",
) -> List[OutboundMessage]:
    """Product cards capped at limit entries, chunked, followed by the SKU + qty prompt."""
    en = locale == Locale.EN
    header = "📦 <b>Product information:</b>\n\n" if en else "📦 <b>Информация о товарах:</b>\n\n"
    limited = list(products)[:limit]
    blocks = []
    for product in limited:
        block = f"<b>{escape(product.name)}</b>\n"
        block += f"{'SKU' if en else 'Артикул'}: <code>{escape(product.sku)}</code>\n"
        block += f"{'Price' if en else 'Цена'}: {format_money(product.unit_price, currency_symbol)}\n"
        block += f"{'In stock' if en else 'В наличии'}: {product.stock_qty} {'pcs' if en else 'шт'}\n"
        if product.url:
            block += f"{'More info' if en else 'Подробнее'}: {escape(product.url)}\n"
        blocks.append(block + "\n")

    more_note = ""
    if len(products) > len(limited):
        more_note = (
            f"Showing first {len(limited)} results out of {len(products)}.\n"
            if en
            else f"Показаны первые {len(limited)} из {len(products)} результатов.\n"
        )
    footer = more_note + text("choose_from_list", locale)
    return [html(chunk) for chunk in chunk_blocks(header, blocks, footer, chunk_chars)]


def render_items_summary(
    pending: PendingOrder,
    locale: Locale,
    *,
    stock: Dict[str, int] | None = None,
    currency_symbol: str = "₸",
) -> str:
    en = locale == Locale.EN
    message = "🛒 <b>Products found:</b>\n\n" if en else "🛒 <b>Найденные товары:</b>\n\n"
    for item in pending.items:
        message += f"• <b>{escape(item.name)}</b>\n"
        message += f"  {'SKU' if en else 'Артикул'}: <code>{escape(item.sku)}</code>\n"
        message += f"  {'Price' if en else 'Цена'}: {format_money(item.unit_price, currency_symbol)}\n"
        message += f"  {'Quantity' if en else 'Количество'}: {item.qty}\n"
        message += f"  {'Amount' if en else 'Сумма'}: {format_money(item.amount, currency_symbol)}\n"
        available = (stock or {}).get(item.sku)
        if available is not None and available < item.qty:
            message += f"  ⚠️ {'In stock' if en else 'В наличии'}: {available} {'pcs' if en else 'шт.'}\n"
        message += "\n"
    message += f"💰 <b>{'Total' if en else 'Итого'}: {format_money(pending.total, currency_symbol)}</b>\n"
    return message


def render_confirmation(pending: PendingOrder, locale: Locale, *, currency_symbol: str = "₸") -> str:
    en = locale == Locale.EN
    message = "✅ <b>Order confirmation</b>\n\n" if en else "✅ <b>Подтверждение заказа</b>\n\n"
    message += "<b>Items:</b>\n" if en else "<b>Товары:</b>\n"
    for item in pending.items:
        message += f"• {escape(item.name)} x{item.qty} - {format_money(item.amount, currency_symbol)}\n"
    message += f"\n💰 <b>{'Total' if en else 'Итого'}: {format_money(pending.total, currency_symbol)}</b>\n\n"
    message += "<b>Customer info:</b>\n" if en else "<b>Информация о клиенте:</b>\n"
    if pending.customer_name:
        message += f"{'Name' if en else 'Имя'}: {escape(pending.customer_name)}\n"
    if pending.customer_phone:
        message += f"{'Phone' if en else 'Телефон'}: {escape(pending.customer_phone)}\n"
    if pending.customer_email:
        message += f"Email: {escape(pending.customer_email)}\n"
    message += (
        "\nConfirm order? Reply \"Yes\" to proceed or \"No\" to cancel."
        if en
        else "\nПодтвердить заказ? Ответьте \"Да\" для продолжения или \"Нет\" для отмены."
    )
    return message


def render_order_created(order: Order, locale: Locale, *, currency_symbol: str = "₸") -> str:
    total = format_money(order.total_amount, currency_symbol)
    if locale == Locale.EN:
        return (
            "✅ <b>Order created successfully!</b>\n\n"
            f"Order number: <code>{order.number}</code>\n"
            f"Total: {total}\n\n"
            "Our manager will contact you shortly to confirm delivery details and payment.\n\n"
            "Thank you for your order! 🙏"
        )
    return (
        "✅ <b>Заказ успешно создан!</b>\n\n"
        f"Номер заказа: <code>{order.number}</code>\n"
        f"Сумма: {total}\n\n"
        "Наш менеджер свяжется с вами в ближайшее время для уточнения деталей доставки и оплаты.\n\n"
        "Спасибо за заказ! 🙏"
    )


def format_local_time(moment: datetime, timezone_name: str = "Asia/Almaty") -> str:
    return moment.astimezone(ZoneInfo(timezone_name)).strftime("%d.%m.%Y %H:%M")


def render_order_status(
    order: Order,
    locale: Locale,
    *,
    currency_symbol: str = "₸",
    timezone_name: str = "Asia/Almaty",
) -> str:
    en = locale == Locale.EN
    message = f"📋 <b>{'Order status' if en else 'Статус заказа'}</b>\n\n"
    message += f"{'Order' if en else 'Заказ'}: <code>{order.number}</code>\n"
    message += f"{'Status' if en else 'Статус'}: {status_label(order.status, locale)}\n"
    message += f"{'Total' if en else 'Сумма'}: {format_money(order.total_amount, currency_symbol)}\n"
    message += f"{'Created' if en else 'Создан'}: {format_local_time(order.created_at, timezone_name)}\n\n"
    message += f"<b>{'Items' if en else 'Товары'}:</b>\n"
    for line in order.lines:
        message += f"• {escape(line.name)} x{line.qty} - {format_money(line.amount, currency_symbol)}\n"
    return message
