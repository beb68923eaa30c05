"""
Извлечение контактных слотов из сообщений покупателя.

Поддерживает:
- Телефон (+7 / 8 / 7 и десять цифр, разделители пробел или дефис)
- Email
- Имя (ФИО из 2-4 слов, без цифр и кодов товаров)
- Приветствия, да/нет, отмену
- Номер заказа (KG-2024-000123)
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from ..config import get_settings
from .nlu.code_extractor import get_code_extractor
from .nlu.text_normalizer import get_text_normalizer

# ============================================================================
# Телефон и email
# ============================================================================

PHONE_PATTERN = re.compile(
    r"(?<!\d)(\+7|8|7)[\s\-]?(\d{3})[\s\-]?(\d{3})[\s\-]?(\d{2})[\s\-]?(\d{2})(?!\d)"
)

EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")


# ============================================================================
# Ответы на подтверждение и команды
# ============================================================================

AFFIRMATIVE_PATTERN = re.compile(r"^(да|yes|y|д|\+)$", re.IGNORECASE)
NEGATIVE_PATTERN = re.compile(r"^(нет|no|n|н|-)$", re.IGNORECASE)

CANCEL_WORDS = {"/cancel", "отмена", "отменить", "cancel"}

# "меня зовут Иван Петров", "my name is John Smith"
NAME_INTRODUCTION_PATTERNS = [
    re.compile(r"меня\s+зовут\s+(?P<name>[^\d,.;!?\n]+)", re.IGNORECASE),
    re.compile(r"\bmy\s+name\s+is\s+(?P<name>[^\d,.;!?\n]+)", re.IGNORECASE),
]

NAME_FORBIDDEN_PATTERN = re.compile(r"[\d_\-@]")


@dataclass
class ContactSlots:
    """Контактные данные, найденные в одном сообщении."""

    phone: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None
    matched: List[str] = field(default_factory=list)

    @property
    def has_contact_data(self) -> bool:
        return bool(self.phone or self.email)


# ============================================================================
# Функции извлечения
# ============================================================================


def extract_phone(message: str) -> Optional[str]:
    """Телефон в формате +7XXXXXXXXXX или None."""
    match = PHONE_PATTERN.search(message or "")
    if not match:
        return None
    return "+7" + "".join(match.group(i) for i in range(2, 6))


def extract_email(message: str) -> Optional[str]:
    match = EMAIL_PATTERN.search(message or "")
    return match.group(0) if match else None


def strip_contact_spans(message: str) -> str:
    """Убирает телефон и email из текста, чтобы они не мешали разбору товаров."""
    text = PHONE_PATTERN.sub(" ", message or "")
    text = EMAIL_PATTERN.sub(" ", text)
    return re.sub(r"\s+", " ", text).strip()


def is_greeting(message: str, greetings: Iterable[str] | None = None) -> bool:
    if greetings is None:
        greetings = get_text_normalizer().terms.greetings
    text = (message or "").strip().lower().rstrip("!.,")
    return text in {g.lower() for g in greetings}


def is_affirmative(message: str) -> bool:
    return bool(AFFIRMATIVE_PATTERN.match((message or "").strip()))


def is_negative(message: str) -> bool:
    return bool(NEGATIVE_PATTERN.match((message or "").strip()))


def is_cancel_command(message: str) -> bool:
    return (message or "").strip().lower() in CANCEL_WORDS


def looks_like_name(message: str) -> bool:
    """2-4 слова, без цифр и символов, не код товара и не приветствие."""
    raw = (message or "").strip()
    if len(raw) < 2 or NAME_FORBIDDEN_PATTERN.search(raw):
        return False
    words = raw.split()
    if not 2 <= len(words) <= 4:
        return False
    if get_code_extractor().looks_like_product_code(raw):
        return False
    if is_greeting(raw):
        return False
    return any(ch.isalpha() for ch in raw)


def extract_introduced_name(message: str) -> Optional[str]:
    """Имя из явного представления ("меня зовут ...")."""
    for pattern in NAME_INTRODUCTION_PATTERNS:
        match = pattern.search(message or "")
        if match:
            candidate = match.group("name").strip()
            if looks_like_name(candidate) or (len(candidate.split()) == 1 and len(candidate) >= 2):
                return candidate
    return None


def order_number_pattern(prefix: str | None = None) -> re.Pattern[str]:
    prefix = prefix or get_settings().order_number_prefix
    return re.compile(rf"\b{re.escape(prefix)}-\d{{4}}-\d{{6}}\b", re.IGNORECASE)


def extract_order_number(message: str, prefix: str | None = None) -> Optional[str]:
    match = order_number_pattern(prefix).search(message or "")
    return match.group(0).upper() if match else None


def extract_contact_slots(message: str, *, allow_bare_name: bool = False) -> ContactSlots:
    """
    Полное извлечение контактов из сообщения.

    Имя без явного представления берётся только при allow_bare_name=True
    (когда бот сам спросил имя) и только если в сообщении нет телефона/email.
    """
    slots = ContactSlots()
    slots.phone = extract_phone(message)
    if slots.phone:
        slots.matched.append("phone")
    slots.email = extract_email(message)
    if slots.email:
        slots.matched.append("email")

    introduced = extract_introduced_name(message)
    if introduced:
        slots.name = introduced
        slots.matched.append("name_introduction")
    elif allow_bare_name and not slots.has_contact_data and looks_like_name(message):
        slots.name = message.strip()
        slots.matched.append("name")
    return slots
