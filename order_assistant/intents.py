from __future__ import annotations

from enum import StrEnum


class IntentType(StrEnum):
    """Intents produced by the natural-language extractor."""

    PLACE_ORDER = "place_order"
    CHECK_STATUS = "check_status"
    PRODUCT_INQUIRY = "product_inquiry"
    UNKNOWN = "unknown"


class Locale(StrEnum):
    """Languages the bot can answer in."""

    RU = "ru"
    EN = "en"


def parse_locale(value: str | None, default: Locale = Locale.RU) -> Locale:
    """Map a transport language code (``en-US``, ``ru``) to a supported locale."""

    if not value:
        return default
    code = value.strip().lower().split("-")[0]
    try:
        return Locale(code)
    except ValueError:
        return default


def intent_descriptions() -> dict[str, str]:
    """Human readable descriptions shipped to the LLM to improve grounding."""

    return {
        IntentType.PLACE_ORDER.value: (
            "The user wants to buy one or more products. Fill items with product name, "
            "english_name (Latin spelling of the product if the user wrote it in Cyrillic) and qty."
        ),
        IntentType.CHECK_STATUS.value: (
            "The user asks about an existing order. Put the order number (KG-YYYY-NNNNNN) into order_number."
        ),
        IntentType.PRODUCT_INQUIRY.value: (
            "The user asks about price, availability or details of products without ordering yet. "
            "Fill products with name and english_name."
        ),
        IntentType.UNKNOWN.value: (
            "Greetings, contact details, small talk or anything else that does not map to the intents above."
        ),
    }
