"""
Извлечение намерения и позиций заказа из текста.

RuleBasedExtractor - детерминированный разбор регулярками, работает без LLM
и используется по умолчанию. LangChain-экстрактор лежит в langchain_llm.py.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from pydantic import ValidationError as PydanticValidationError

from ..config import Settings, get_settings
from ..intents import IntentType
from ..models.extraction import ExtractedIntent
from .nlu.code_extractor import QTY_MULTIPLIER_PATTERN, QTY_UNITS_PATTERN, CodeExtractor, get_code_extractor
from .slot_extraction import extract_order_number, extract_phone, strip_contact_spans

logger = logging.getLogger(__name__)


@runtime_checkable
class Extractor(Protocol):
    async def extract(self, text: str) -> ExtractedIntent: ...


# ============================================================================
# Паттерны
# ============================================================================

SEGMENT_SPLIT_PATTERN = re.compile(r"[,;\n]+|\s+и\s+|\s+and\s+", re.IGNORECASE)

ORDER_VERB_PATTERN = re.compile(
    r"\b(хочу|купить|куплю|закажи|заказать|закажу|оформи|оформить|нужн[оаы]?|надо|беру|возьму|"
    r"order|buy|want|need|take)\b",
    re.IGNORECASE,
)

INQUIRY_PATTERN = re.compile(
    r"\b(цена|цены|стоимость|сколько\s+стоит|стоит|есть\s+ли|в\s+наличии|наличие|покажи|"
    r"price|prices|cost|how\s+much|available|availability|in\s+stock|show)\b",
    re.IGNORECASE,
)

STATUS_PATTERN = re.compile(
    r"(статус\s+заказа|где\s+мой\s+заказ|order\s+status|where\s+is\s+my\s+order)",
    re.IGNORECASE,
)

LEADING_FILLER_PATTERN = re.compile(
    r"^(?:(?:мне|пожалуйста|please|i|я|хочу|купить|куплю|закажи|заказать|закажу|оформи|оформить|"
    r"нужн[оаы]?|надо|беру|возьму|want|need|buy|order|take|to|а|ещё|еще|also|plus|"
    r"цена|цены|стоимость|сколько|стоит|есть|ли|покажи|price|cost|show|how|much|is|are|the|a|an)\s+)+",
    re.IGNORECASE,
)
TRAILING_FILLER_PATTERN = re.compile(
    r"(?:\s+(?:пожалуйста|please|в\s+наличии|available|in\s+stock))+$", re.IGNORECASE
)

LEADING_QTY_PATTERN = re.compile(r"^(\d{1,4})\s+(.+)$")

LETTER_PATTERN = re.compile(r"[^\W\d_]")


def _clean_name(raw: str) -> str:
    name = raw.strip(" \t.!?:-")
    name = LEADING_FILLER_PATTERN.sub("", name)
    name = TRAILING_FILLER_PATTERN.sub("", name)
    return name.strip(" \t.!?:-")


class RuleBasedExtractor:
    """Regex extractor: "<qty> <name>", "<name> x<qty>", "<name> <qty> шт", bare SKU."""

    def __init__(self, code_extractor: CodeExtractor | None = None) -> None:
        self._codes = code_extractor or get_code_extractor()

    def _parse_segment(self, segment: str) -> Optional[Dict[str, Any]]:
        text = segment.strip()
        if not text:
            return None

        qty: Optional[int] = None
        explicit = self._codes.extract_qty(text)
        if explicit is not None:
            qty = explicit
            text = QTY_MULTIPLIER_PATTERN.sub(" ", text, count=1)
            text = QTY_UNITS_PATTERN.sub(" ", text, count=1)
        else:
            cleaned = _clean_name(text)
            match = LEADING_QTY_PATTERN.match(cleaned)
            if match:
                qty = int(match.group(1)) or None
                text = match.group(2)

        sku = self._codes.extract_sku(text)
        name = sku or _clean_name(text)
        if len(name) < 2 or not LETTER_PATTERN.search(name):
            return None
        return {"name": name, "qty": qty, "source_text": segment.strip(), "has_sku": bool(sku)}

    def _parse_segments(self, text: str) -> List[Dict[str, Any]]:
        parsed = []
        for segment in SEGMENT_SPLIT_PATTERN.split(text):
            item = self._parse_segment(segment)
            if item:
                parsed.append(item)
        return parsed

    def _build(self, payload: Dict[str, Any]) -> ExtractedIntent:
        try:
            return ExtractedIntent.model_validate(payload)
        except PydanticValidationError as exc:
            logger.warning("Rule-based extraction produced invalid payload: %s", exc)
            return ExtractedIntent.unknown()

    async def extract(self, text: str) -> ExtractedIntent:
        raw = (text or "").strip()
        if not raw:
            return ExtractedIntent.unknown()

        lowered = raw.lower()
        if lowered.startswith("/status"):
            return self._build(
                {"intent": IntentType.CHECK_STATUS, "order_number": extract_order_number(raw), "confidence": 1.0}
            )
        order_number = extract_order_number(raw)
        if order_number or STATUS_PATTERN.search(raw):
            return self._build({"intent": IntentType.CHECK_STATUS, "order_number": order_number, "confidence": 1.0})

        customer = None
        phone = extract_phone(raw)
        if phone:
            customer = {"phone": phone}

        body = strip_contact_spans(raw)
        segments = self._parse_segments(body) if body else []
        has_order_verb = bool(ORDER_VERB_PATTERN.search(body))
        is_inquiry = bool(INQUIRY_PATTERN.search(body))

        ordered = [item for item in segments if item["qty"] is not None or item["has_sku"]]
        if ordered or (has_order_verb and segments and not is_inquiry):
            items = ordered or segments
            return self._build(
                {
                    "intent": IntentType.PLACE_ORDER,
                    "items": [
                        {"name": item["name"], "qty": item["qty"], "source_text": item["source_text"]}
                        for item in items
                    ],
                    "customer": customer,
                    "confidence": 0.7,
                }
            )

        if is_inquiry:
            return self._build(
                {
                    "intent": IntentType.PRODUCT_INQUIRY,
                    "products": [{"name": item["name"]} for item in segments],
                    "customer": customer,
                    "confidence": 0.6,
                }
            )

        return self._build({"intent": IntentType.UNKNOWN, "customer": customer, "confidence": 0.3})


def get_extractor(settings: Settings | None = None) -> Extractor:
    """LangChain extractor when enabled and configured, otherwise the rule-based one."""
    settings = settings or get_settings()
    if settings.use_langchain and settings.openai_api_key:
        from .langchain_llm import LangchainExtractor

        return LangchainExtractor(settings)
    return RuleBasedExtractor()
