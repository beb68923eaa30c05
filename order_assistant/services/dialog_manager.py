"""
DialogManager - конечный автомат приёма заказа.

Фазы сессии: idle → collecting_items → collecting_info → confirming.
Фаза выводится из PendingOrder.step (отсутствие заказа = idle).
Каждое входящее сообщение обрабатывается под замком своей сессии,
разные сессии друг друга не ждут.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from ..config import Settings, get_settings
from ..intents import IntentType, Locale, parse_locale
from ..models import OutboundMessage
from ..models.catalog import Product
from ..models.extraction import ExtractedIntent, ExtractedItem
from ..models.session import DialogPhase, OrderItemDraft, OrderStep, Session
from ..utils.logging import RequestLoggerAdapter, get_request_logger
from .catalog_store import CatalogStore, get_catalog_store
from .error_handling import CommitFailure
from .extraction import Extractor, get_extractor
from .langchain_llm import ConversationResponder, get_responder
from .logging_utils import log_error, log_info
from .metrics import MetricsService, get_metrics_service
from .nlu.code_extractor import CodeExtractor, get_code_extractor
from .order_compiler import OrderCompiler
from .notifier import get_notifier
from .product_resolver import Ambiguous, ProductResolver, SingleMatch, outcome_products
from .response_helpers import (
    html,
    plain,
    render_confirmation,
    render_items_summary,
    render_order_created,
    render_order_status,
    render_product_listing,
    slot_prompt,
    text,
)
from .session_store import SessionStore, get_session_store
from .slot_extraction import (
    ContactSlots,
    extract_contact_slots,
    extract_order_number,
    is_affirmative,
    is_cancel_command,
    is_greeting,
    is_negative,
    strip_contact_spans,
)

logger = logging.getLogger(__name__)

FAST_PATH_INTENTS = {IntentType.UNKNOWN, IntentType.PRODUCT_INQUIRY}


@dataclass
class DialogTurn:
    messages: List[OutboundMessage]
    phase: DialogPhase


class DialogManager:
    def __init__(
        self,
        *,
        sessions: SessionStore,
        store: CatalogStore,
        resolver: ProductResolver,
        extractor: Extractor,
        compiler: OrderCompiler,
        responder: ConversationResponder,
        settings: Settings | None = None,
        metrics: MetricsService | None = None,
        code_extractor: CodeExtractor | None = None,
    ) -> None:
        self._sessions = sessions
        self._store = store
        self._resolver = resolver
        self._extractor = extractor
        self._compiler = compiler
        self._responder = responder
        self._settings = settings or get_settings()
        self._metrics = metrics or get_metrics_service()
        self._codes = code_extractor or get_code_extractor()

    @property
    def sessions(self) -> SessionStore:
        return self._sessions

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------
    async def handle_inbound_text(
        self,
        session_key: str,
        message: str,
        locale: str | Locale | None = None,
        *,
        trace_id: str | None = None,
    ) -> List[OutboundMessage]:
        turn = await self.handle_turn(session_key, message, locale, trace_id=trace_id)
        return turn.messages

    async def handle_turn(
        self,
        session_key: str,
        message: str,
        locale: str | Locale | None = None,
        *,
        trace_id: str | None = None,
    ) -> DialogTurn:
        """Like handle_inbound_text, plus the phase the session reached under its lock."""
        raw = (message or "").strip()
        if not raw:
            existing = self._sessions.get(session_key)
            return DialogTurn(messages=[], phase=existing.phase if existing else DialogPhase.IDLE)
        self._metrics.record_message()
        started = time.perf_counter()
        initial_locale = parse_locale(locale) if locale else None

        async with self._sessions.acquire(session_key, locale=initial_locale) as session:
            req_logger = get_request_logger(logger, trace_id=trace_id, session_key=session_key)
            phase_before = session.phase
            try:
                replies = await self._dispatch(session, raw, req_logger)
            except Exception as exc:
                log_error(
                    logger,
                    f"Unhandled dialog error: {exc}",
                    trace_id=trace_id,
                    session_key=session_key,
                    phase=phase_before,
                    exc_info=exc,
                )
                replies = [plain("generic_error", session.locale)]
            phase_after = session.phase
            if phase_after != phase_before:
                self._metrics.record_transition(phase_before.value, phase_after.value)
                log_info(
                    logger,
                    f"transition {phase_before.value} -> {phase_after.value}",
                    trace_id=trace_id,
                    session_key=session_key,
                    phase=phase_after,
                )

        self._metrics.record_response_latency((time.perf_counter() - started) * 1000)
        return DialogTurn(messages=replies, phase=phase_after)

    async def _dispatch(self, session: Session, raw: str, log: RequestLoggerAdapter) -> List[OutboundMessage]:
        if raw.startswith("/"):
            handled = await self._handle_command(session, raw)
            if handled is not None:
                return handled
        if is_cancel_command(raw):
            return self._cancel(session)

        slots = self._capture_contacts(session, raw)

        pending = session.pending_order
        if pending is not None and pending.step in (OrderStep.READY, OrderStep.CONFIRMING):
            return await self._handle_confirmation(session, raw, log)

        order_number = extract_order_number(raw, self._settings.order_number_prefix)
        if order_number:
            return await self._order_status(session, order_number, log)

        session.remember("user", raw, self._settings.history_limit)

        intent = await self._extract(raw, log)
        body = strip_contact_spans(raw)
        if intent.intent in FAST_PATH_INTENTS and body and self._codes.looks_like_product_code(body):
            log.info("Fast path: code-like text treated as order %r", body)
            intent = ExtractedIntent(
                intent=IntentType.PLACE_ORDER,
                items=[ExtractedItem(name=body, qty=None, source_text=body)],
                confidence=intent.confidence,
            )

        if intent.intent == IntentType.PLACE_ORDER and intent.items:
            return await self._handle_order(session, raw, intent, log)

        in_info_step = session.phase == DialogPhase.COLLECTING_INFO
        if in_info_step and (slots.matched or intent.intent != IntentType.PRODUCT_INQUIRY):
            return self._collect_info(session)

        if intent.intent == IntentType.CHECK_STATUS:
            if intent.order_number:
                return await self._order_status(session, intent.order_number, log)
            return [plain("ask_order_number", session.locale)]

        if intent.intent == IntentType.PRODUCT_INQUIRY:
            return await self._handle_inquiry(session, intent, log)

        if slots.has_contact_data:
            return [plain("contact_saved", session.locale)]

        return await self._general_reply(session)

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------
    async def _handle_command(self, session: Session, raw: str) -> Optional[List[OutboundMessage]]:
        command, _, argument = raw.partition(" ")
        command = command.lower().split("@", 1)[0]
        if command == "/start":
            session.clear_order()
            session.message_history.clear()
            session.last_resolved_products = []
            return [plain("welcome", session.locale)]
        if command == "/help":
            return [html(text("help", session.locale))]
        if command == "/lang":
            session.locale = Locale.EN if session.locale == Locale.RU else Locale.RU
            return [plain("language_changed", session.locale)]
        if command == "/cancel":
            return self._cancel(session)
        if command == "/status":
            number = extract_order_number(argument, self._settings.order_number_prefix)
            if number:
                return await self._order_status(session, number, None)
            return [plain("ask_order_number", session.locale)]
        return None

    def _cancel(self, session: Session) -> List[OutboundMessage]:
        session.clear_order()
        return [plain("cancelled", session.locale)]

    # -------------------------------------------------------------------------
    # Contacts and slot filling
    # -------------------------------------------------------------------------
    def _capture_contacts(self, session: Session, raw: str) -> ContactSlots:
        pending = session.pending_order
        allow_bare_name = (
            pending is not None and pending.step == OrderStep.COLLECTING_INFO and not pending.customer_name
        )
        slots = extract_contact_slots(raw, allow_bare_name=allow_bare_name)
        if slots.phone:
            session.contact.phone = slots.phone
        if slots.email:
            session.contact.email = slots.email
        if slots.name:
            session.contact.name = slots.name
        if pending is not None:
            pending.backfill(session.contact)
        if slots.matched and pending is not None:
            self._metrics.record_slot_success()
        return slots

    def _prompt_missing(self, session: Session) -> Optional[List[OutboundMessage]]:
        pending = session.pending_order
        missing = pending.missing_slots()
        if not missing:
            return None
        pending.step = OrderStep.COLLECTING_INFO
        self._metrics.record_slot_prompt()
        return [plain_text(slot_prompt(missing[0], session.locale))]

    def _collect_info(self, session: Session) -> List[OutboundMessage]:
        prompt = self._prompt_missing(session)
        if prompt is not None:
            return prompt
        return self._show_confirmation(session)

    def _show_confirmation(self, session: Session) -> List[OutboundMessage]:
        pending = session.pending_order
        if pending.customer_name and is_greeting(pending.customer_name):
            pending.customer_name = None
            if session.contact.name and is_greeting(session.contact.name):
                session.contact.name = None
        prompt = self._prompt_missing(session)
        if prompt is not None:
            return prompt
        pending.step = OrderStep.CONFIRMING
        body = render_confirmation(pending, session.locale, currency_symbol=self._settings.currency_symbol)
        pending.mark_ready()
        return [html(body)]

    # -------------------------------------------------------------------------
    # Confirmation
    # -------------------------------------------------------------------------
    async def _handle_confirmation(
        self, session: Session, raw: str, log: RequestLoggerAdapter
    ) -> List[OutboundMessage]:
        if is_affirmative(raw):
            return await self._commit(session, log)
        if is_negative(raw):
            session.clear_order()
            return [plain("order_cancelled", session.locale)]
        return [plain("confirm_reprompt", session.locale)]

    async def _commit(self, session: Session, log: RequestLoggerAdapter) -> List[OutboundMessage]:
        pending = session.pending_order
        try:
            result = await self._compiler.compile(pending, session)
        except CommitFailure as exc:
            log.warning("Order commit failed, keeping pending order: %s", exc.reason or exc)
            pending.step = OrderStep.READY
            return [plain("commit_error", session.locale)]

        log.info("Order %s committed total=%s", result.order.number, result.total)
        session.clear_order()
        session.message_history.clear()
        return [
            html(render_order_created(result.order, session.locale, currency_symbol=self._settings.currency_symbol))
        ]

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------
    async def _resolve_item(
        self, session: Session, item: ExtractedItem, log: RequestLoggerAdapter
    ) -> Tuple[Optional[Product], List[Product]]:
        """Returns (product, ambiguous candidates to surface)."""
        query = item.query.strip()
        recent = _match_recent(session.last_resolved_products, query)
        if recent is not None:
            return recent, []

        outcome = await self._resolver.resolve(query)
        if isinstance(outcome, SingleMatch):
            return outcome.product, []
        if isinstance(outcome, Ambiguous):
            if self._codes.looks_like_product_code(query):
                return None, list(outcome.products)
            best = self._resolver.rank_by_coverage(query, outcome.products)[0]
            log.info("Ambiguous name %r resolved to best hit %s", query, best.sku)
            return best, []
        log.info("No product found for %r", query)
        return None, []

    async def _handle_order(
        self,
        session: Session,
        raw: str,
        intent: ExtractedIntent,
        log: RequestLoggerAdapter,
    ) -> List[OutboundMessage]:
        single_item = len(intent.items) == 1
        found: List[Tuple[Product, int]] = []
        ambiguous: Dict[str, Product] = {}
        not_found: List[str] = []

        for item in intent.items:
            product, candidates = await self._resolve_item(session, item, log)
            if product is not None:
                found.append((product, self._resolve_qty(item, raw if single_item else None)))
            elif candidates:
                for candidate in candidates:
                    ambiguous.setdefault(candidate.sku, candidate)
            else:
                not_found.append(item.name)

        if not found and not ambiguous:
            return [plain("products_not_found", session.locale)]

        pending = session.open_order()
        for product, qty in found:
            pending.add_item(
                OrderItemDraft(name=product.name, sku=product.sku, qty=qty, unit_price=product.unit_price)
            )
        if found:
            pending.original_message = f"{pending.original_message}\n{raw}".strip()

        if ambiguous:
            candidates = list(ambiguous.values())
            session.last_resolved_products = candidates
            self._metrics.record_ambiguity_prompt()
            return render_product_listing(
                candidates,
                session.locale,
                limit=self._settings.ambiguity_list_limit,
                chunk_chars=self._settings.message_chunk_chars,
                currency_symbol=self._settings.currency_symbol,
            )

        products = [product for product, _ in found]
        session.last_resolved_products = products
        summary = render_items_summary(
            pending,
            session.locale,
            stock={product.sku: product.stock_qty for product in products},
            currency_symbol=self._settings.currency_symbol,
        )
        if not_found:
            summary += "\n" + text("some_not_found", session.locale, names=", ".join(not_found))
        return [html(summary)] + self._show_confirmation(session)

    def _resolve_qty(self, item: ExtractedItem, raw: Optional[str]) -> int:
        """Explicit phrase ("x2", "3 шт") beats the extractor's qty, default 1."""
        source = item.source_text or raw or ""
        explicit = self._codes.extract_qty(source)
        if explicit is None and raw and raw != source:
            explicit = self._codes.extract_qty(raw)
        return explicit or item.qty or 1

    # -------------------------------------------------------------------------
    # Inquiry, status, general conversation
    # -------------------------------------------------------------------------
    async def _handle_inquiry(
        self, session: Session, intent: ExtractedIntent, log: RequestLoggerAdapter
    ) -> List[OutboundMessage]:
        if intent.products:
            found: Dict[str, Product] = {}
            for product_ref in intent.products:
                outcome = await self._resolver.resolve(product_ref.query)
                for product in outcome_products(outcome):
                    found.setdefault(product.id, product)
            products = list(found.values())
        else:
            products = list(session.last_resolved_products)

        if not products:
            return [plain("products_not_found", session.locale)]
        session.last_resolved_products = products
        return render_product_listing(
            products,
            session.locale,
            limit=self._settings.ambiguity_list_limit,
            chunk_chars=self._settings.message_chunk_chars,
            currency_symbol=self._settings.currency_symbol,
        )

    async def _order_status(
        self, session: Session, number: str, log: RequestLoggerAdapter | None
    ) -> List[OutboundMessage]:
        try:
            order = await asyncio.wait_for(
                self._store.find_order_by_number(number),
                timeout=self._settings.catalog_timeout_seconds,
            )
        except Exception as exc:
            logger.warning("Order lookup failed number=%s error=%s", number, exc)
            return [plain("generic_error", session.locale)]
        if order is None:
            return [plain("order_not_found", session.locale, number=number)]
        return [
            html(
                render_order_status(
                    order,
                    session.locale,
                    currency_symbol=self._settings.currency_symbol,
                    timezone_name=self._settings.display_timezone,
                )
            )
        ]

    async def _general_reply(self, session: Session) -> List[OutboundMessage]:
        draft = None
        if session.pending_order and session.pending_order.items:
            draft = ", ".join(f"{item.name} x{item.qty}" for item in session.pending_order.items)
        reply = await self._responder.reply(
            session.message_history,
            locale=session.locale,
            products=session.last_resolved_products,
            draft_summary=draft,
        )
        session.remember("assistant", reply, self._settings.history_limit)
        return [plain_text(reply)]

    async def _extract(self, raw: str, log: RequestLoggerAdapter) -> ExtractedIntent:
        fallback = False
        try:
            intent = await asyncio.wait_for(
                self._extractor.extract(raw),
                timeout=self._settings.nlu_timeout_seconds,
            )
        except asyncio.TimeoutError:
            log.warning("NLU extraction timed out after %.1fs", self._settings.nlu_timeout_seconds)
            intent, fallback = ExtractedIntent.unknown(), True
        except Exception as exc:
            log.warning("NLU extraction failed: %s", exc)
            intent, fallback = ExtractedIntent.unknown(), True
        self._metrics.record_extraction(fallback=fallback)
        return intent


def plain_text(body: str) -> OutboundMessage:
    return OutboundMessage(text=body, parse_mode=None)


def _match_recent(products: Sequence[Product], query: str) -> Optional[Product]:
    """A product from the last listing referenced by SKU or by a unique name fragment."""
    if not products or not query:
        return None
    needle = query.lower()
    by_sku = [product for product in products if product.sku.lower() == needle]
    if by_sku:
        return by_sku[0]
    by_name = [product for product in products if needle in product.name.lower()]
    return by_name[0] if len(by_name) == 1 else None


_dialog_manager: DialogManager | None = None


def get_dialog_manager() -> DialogManager:
    """Process-wide manager wired to the default store, extractor and notifier."""
    global _dialog_manager
    if _dialog_manager is None:
        settings = get_settings()
        store = get_catalog_store()
        _dialog_manager = DialogManager(
            sessions=get_session_store(),
            store=store,
            resolver=ProductResolver(store),
            extractor=get_extractor(settings),
            compiler=OrderCompiler(store, get_notifier(), settings=settings),
            responder=get_responder(settings),
            settings=settings,
        )
    return _dialog_manager
