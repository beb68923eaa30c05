"""Shared pytest fixtures for all tests."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Sequence

import pytest

from order_assistant.config import DATA_DIR, Settings
from order_assistant.models.catalog import Order, Product, StockShortfall
from order_assistant.services.catalog_store import InMemoryCatalogStore
from order_assistant.services.dialog_manager import DialogManager
from order_assistant.services.extraction import RuleBasedExtractor
from order_assistant.services.langchain_llm import StaticResponder
from order_assistant.services.metrics import MetricsService
from order_assistant.services.nlu.code_extractor import CodeExtractor
from order_assistant.services.nlu.text_normalizer import NluTerms, TextNormalizer
from order_assistant.services.order_compiler import OrderCompiler
from order_assistant.services.product_resolver import ProductResolver
from order_assistant.services.session_store import SessionStore

FIXED_NOW = datetime(2025, 5, 14, 9, 30, tzinfo=timezone.utc)


class FakeNotifier:
    """Collects notifications instead of calling Telegram."""

    def __init__(self, *, error: Exception | None = None) -> None:
        self.error = error
        self.calls: List[dict[str, Any]] = []

    async def notify_new_order(
        self,
        order: Order,
        original_message: str,
        shortfalls: Sequence[StockShortfall] = (),
    ) -> bool:
        self.calls.append({"order": order, "original_message": original_message, "shortfalls": list(shortfalls)})
        if self.error is not None:
            raise self.error
        return True


def make_product(**overrides: Any) -> Product:
    data = {
        "id": "p-test",
        "sku": "TST-10-0001",
        "name": "Test Widget",
        "unit_price": 1000,
        "stock_qty": 5,
    }
    data.update(overrides)
    return Product(**data)


@pytest.fixture
def settings() -> Settings:
    """Default settings for tests."""
    return Settings(
        openai_api_key="",
        use_langchain=False,
        telegram_bot_token="",
        telegram_manager_channel_id="",
    )


@pytest.fixture
def normalizer() -> TextNormalizer:
    return TextNormalizer(NluTerms.load(DATA_DIR / "nlu_terms.yaml"))


@pytest.fixture
def code_extractor(normalizer: TextNormalizer) -> CodeExtractor:
    return CodeExtractor(prefixes=["rev"], normalizer=normalizer)


@pytest.fixture
def metrics() -> MetricsService:
    return MetricsService()


@pytest.fixture
def store(normalizer: TextNormalizer) -> InMemoryCatalogStore:
    """Bundled demo catalog with a frozen clock."""
    return InMemoryCatalogStore(normalizer=normalizer, clock=lambda: FIXED_NOW)


@pytest.fixture
def resolver(
    store: InMemoryCatalogStore,
    normalizer: TextNormalizer,
    code_extractor: CodeExtractor,
    metrics: MetricsService,
) -> ProductResolver:
    return ProductResolver(store, normalizer=normalizer, code_extractor=code_extractor, metrics=metrics)


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def build_manager(settings, normalizer, code_extractor, metrics, notifier):
    """Factory: DialogManager over the given store (demo catalog by default)."""

    def _build(store: InMemoryCatalogStore | None = None, **overrides: Any) -> DialogManager:
        store = store or InMemoryCatalogStore(normalizer=normalizer, clock=lambda: FIXED_NOW)
        resolver = ProductResolver(store, normalizer=normalizer, code_extractor=code_extractor, metrics=metrics)
        components: dict[str, Any] = {
            "sessions": SessionStore(max_entries=100, idle_ttl_seconds=3600, metrics=metrics),
            "store": store,
            "resolver": resolver,
            "extractor": RuleBasedExtractor(code_extractor),
            "compiler": OrderCompiler(store, notifier, settings=settings, metrics=metrics),
            "responder": StaticResponder(),
            "settings": settings,
            "metrics": metrics,
            "code_extractor": code_extractor,
        }
        components.update(overrides)
        return DialogManager(**components)

    return _build


@pytest.fixture
def manager(build_manager) -> DialogManager:
    return build_manager()
