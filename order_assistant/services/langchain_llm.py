from __future__ import annotations

import json
import logging
import os
import re
from typing import Any, Dict, List, Protocol, Sequence, runtime_checkable

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from langchain_openai import ChatOpenAI
from langsmith import traceable
from pydantic import ValidationError as PydanticValidationError

from ..config import Settings, get_settings
from ..intents import Locale
from ..models.catalog import Product
from ..models.extraction import ExtractedIntent
from ..models.session import HistoryMessage
from ..prompts.extraction_prompt import build_conversation_prompt, build_extraction_prompt
from .error_handling import ExtractionFailure, LLMError

logger = logging.getLogger(__name__)

FALLBACK_REPLY = {
    Locale.RU: "Не совсем понял, уточните, пожалуйста.",
    Locale.EN: "Could you clarify, please?",
}

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)

# Ключи-списки, которые LLM иногда присылает как null
_LIST_KEYS = ("items", "products")


def setup_langsmith(settings: Settings) -> None:
    """Export LangSmith env vars so @traceable and LangChain callbacks pick them up."""

    if not (settings.langsmith_api_key and settings.langsmith_tracing_v2):
        return
    os.environ.setdefault("LANGCHAIN_TRACING_V2", "true")
    os.environ.setdefault("LANGSMITH_API_KEY", settings.langsmith_api_key)
    os.environ.setdefault("LANGSMITH_PROJECT", settings.langsmith_project or "order-intake-assistant")


def build_chat_model(settings: Settings) -> ChatOpenAI:
    if not settings.openai_api_key:
        raise LLMError("OPENAI_API_KEY is required for LangChain mode", reason="missing_api_key")
    setup_langsmith(settings)
    return ChatOpenAI(
        model=settings.openai_model,
        api_key=settings.openai_api_key,
        temperature=settings.openai_temperature,
        timeout=settings.http_timeout_seconds,
        base_url=settings.openai_base_url,
    )


def _extract_message_content(message: Any) -> str:
    content = getattr(message, "content", message)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        # OpenAI can return list[dict]; join textual segments
        return " ".join(
            part.get("text", "")
            for part in content
            if isinstance(part, dict) and part.get("type") == "text"
        )
    return str(content)


def _decode_payload(content: str) -> Dict[str, Any]:
    text = _CODE_FENCE.sub("", (content or "").strip())
    if not text:
        raise ExtractionFailure("empty extractor payload", reason="empty_payload")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ExtractionFailure(f"non-JSON payload: {exc}", reason="invalid_json", debug={"payload": text[:500]}) from exc
    if not isinstance(data, dict):
        raise ExtractionFailure(f"JSON of type {type(data).__name__}", reason="invalid_json")
    for key in _LIST_KEYS:
        if data.get(key) is None:
            data.pop(key, None)
    return data


def parse_extracted_intent(content: str) -> ExtractedIntent:
    """Parse LLM output into ExtractedIntent; anything malformed becomes the unknown intent."""

    try:
        return ExtractedIntent.model_validate(_decode_payload(content))
    except ExtractionFailure as exc:
        if exc.reason != "empty_payload":
            logger.warning("Extractor output rejected reason=%s: %s", exc.reason, exc)
        return ExtractedIntent.unknown()
    except PydanticValidationError as exc:
        logger.warning("Extractor payload failed validation: %s", exc)
        return ExtractedIntent.unknown()


class LangchainExtractor:
    """NLU extractor backed by a chat model. Never raises: failures map to the unknown intent."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        llm: Any | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._llm = llm if llm is not None else build_chat_model(settings)
        schema_hint = json.dumps(ExtractedIntent.model_json_schema(), ensure_ascii=False, indent=2)
        self._prompt = build_extraction_prompt(schema_hint)

    @traceable(run_type="chain", name="extract_intent")
    async def extract(self, text: str) -> ExtractedIntent:
        if not text or not text.strip():
            return ExtractedIntent.unknown()
        try:
            prompt_value = await self._prompt.ainvoke({"message": text})
            message = await self._llm.ainvoke(prompt_value)
        except Exception as exc:
            logger.exception("LangChain extract failed: %s", exc)
            return ExtractedIntent.unknown()
        return parse_extracted_intent(_extract_message_content(message))


@runtime_checkable
class ConversationResponder(Protocol):
    async def reply(
        self,
        history: Sequence[HistoryMessage],
        *,
        locale: Locale,
        products: Sequence[Product] = (),
        draft_summary: str | None = None,
    ) -> str: ...


class StaticResponder:
    """Responder used when no LLM is configured."""

    async def reply(
        self,
        history: Sequence[HistoryMessage],
        *,
        locale: Locale,
        products: Sequence[Product] = (),
        draft_summary: str | None = None,
    ) -> str:
        return FALLBACK_REPLY[locale]


class LangchainResponder:
    def __init__(self, settings: Settings | None = None, *, llm: Any | None = None) -> None:
        settings = settings or get_settings()
        self._llm = llm if llm is not None else build_chat_model(settings)
        self._prompt = build_conversation_prompt()

    @staticmethod
    def _history_messages(history: Sequence[HistoryMessage]) -> List[BaseMessage]:
        result: List[BaseMessage] = []
        for item in history:
            if item.role == "assistant":
                result.append(AIMessage(content=item.content))
            else:
                result.append(HumanMessage(content=item.content))
        return result

    @staticmethod
    def _context(products: Sequence[Product], draft_summary: str | None) -> str:
        lines: List[str] = []
        if draft_summary:
            lines.append(f"Draft: {draft_summary}")
        for product in products:
            line = f"{product.name} - {product.unit_price:g} {product.currency} (SKU: {product.sku}, stock: {product.stock_qty})"
            if product.url:
                line += f" - url: {product.url}"
            lines.append(line)
        return "\n".join(lines) or "-"

    @traceable(run_type="chain", name="conversation_reply")
    async def reply(
        self,
        history: Sequence[HistoryMessage],
        *,
        locale: Locale,
        products: Sequence[Product] = (),
        draft_summary: str | None = None,
    ) -> str:
        payload: Dict[str, Any] = {
            "locale_hint": "\nUser speaks English; respond in English." if locale == Locale.EN else "",
            "context": self._context(products, draft_summary),
            "history": self._history_messages(history),
        }
        try:
            prompt_value = await self._prompt.ainvoke(payload)
            message = await self._llm.ainvoke(prompt_value)
        except Exception as exc:
            logger.exception("LangChain reply failed: %s", exc)
            return FALLBACK_REPLY[locale]
        content = _extract_message_content(message).strip()
        return content or FALLBACK_REPLY[locale]


def get_responder(settings: Settings | None = None) -> ConversationResponder:
    settings = settings or get_settings()
    if settings.use_langchain and settings.openai_api_key:
        return LangchainResponder(settings)
    return StaticResponder()
