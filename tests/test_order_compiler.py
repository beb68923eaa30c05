from __future__ import annotations

import pytest

from order_assistant.intents import Locale
from order_assistant.models.session import OrderItemDraft, PendingOrder, Session
from order_assistant.services.catalog_store import InMemoryCatalogStore
from order_assistant.services.error_handling import CatalogStoreError, CommitFailure, NotificationError
from order_assistant.services.order_compiler import OrderCompiler

from conftest import FakeNotifier


class FailingStore(InMemoryCatalogStore):
    async def create_order(self, *args, **kwargs):
        raise CatalogStoreError("write failed", reason="write_failed")


def _pending(*items: OrderItemDraft, phone: str | None = "+77011234567") -> PendingOrder:
    return PendingOrder(
        items=list(items),
        customer_name="Иван Петров",
        customer_phone=phone,
        original_message="REV-41-1303 x2",
    )


def _motor(qty: int = 2, unit_price: float = 1.0) -> OrderItemDraft:
    return OrderItemDraft(name="REV Core Hex Motor", sku="REV-41-1303", qty=qty, unit_price=unit_price)


@pytest.mark.asyncio
async def test_prices_come_from_catalog_not_from_draft(store, notifier, settings, metrics):
    compiler = OrderCompiler(store, notifier, settings=settings, metrics=metrics)

    result = await compiler.compile(_pending(_motor(qty=2, unit_price=1.0)), Session(key="tg:1", locale=Locale.EN))

    assert result.total == 42000
    assert result.order.lines[0].unit_price == 21000
    assert result.order.customer.phone == "+77011234567"
    assert result.order.customer.locale == "en"
    assert result.notified is True
    assert notifier.calls[0]["original_message"] == "REV-41-1303 x2"
    assert metrics.snapshot().orders_committed == 1


@pytest.mark.asyncio
async def test_stock_shortfall_is_reported_but_order_is_created(store, notifier, settings, metrics):
    compiler = OrderCompiler(store, notifier, settings=settings, metrics=metrics)
    item = OrderItemDraft(name="Raspberry Pi 4 8GB", sku="RPI4-8GB", qty=10, unit_price=60000)

    result = await compiler.compile(_pending(item), Session(key="tg:1"))

    assert len(store.list_orders()) == 1
    assert [(s.sku, s.requested, s.available) for s in result.shortfalls] == [("RPI4-8GB", 10, 4)]
    assert notifier.calls[0]["shortfalls"] == result.shortfalls
    assert metrics.snapshot().stock_shortfalls == 1


@pytest.mark.asyncio
async def test_item_found_by_exact_name_when_sku_is_stale(store, notifier, settings):
    compiler = OrderCompiler(store, notifier, settings=settings)
    item = OrderItemDraft(name="Arduino Uno R3", sku="ARD-OLD", qty=1, unit_price=1)

    result = await compiler.compile(_pending(item), Session(key="tg:1"))

    assert result.order.lines[0].sku == "ARD-UNO-R3"


@pytest.mark.asyncio
async def test_items_missing_from_catalog_are_dropped(store, notifier, settings):
    compiler = OrderCompiler(store, notifier, settings=settings)
    gone = OrderItemDraft(name="Discontinued Board", sku="OLD-10-0001", qty=1, unit_price=100)

    result = await compiler.compile(_pending(_motor(qty=1), gone), Session(key="tg:1"))

    assert [line.sku for line in result.order.lines] == ["REV-41-1303"]


@pytest.mark.asyncio
async def test_nothing_left_to_order_is_a_commit_failure(store, notifier, settings, metrics):
    compiler = OrderCompiler(store, notifier, settings=settings, metrics=metrics)
    gone = OrderItemDraft(name="Discontinued Board", sku="OLD-10-0001", qty=1, unit_price=100)

    with pytest.raises(CommitFailure) as exc_info:
        await compiler.compile(_pending(gone), Session(key="tg:1"))

    assert exc_info.value.reason == "no_valid_items"
    assert store.list_orders() == []
    assert metrics.snapshot().commit_failures == 1


@pytest.mark.asyncio
async def test_phone_is_required(store, notifier, settings):
    compiler = OrderCompiler(store, notifier, settings=settings)

    with pytest.raises(CommitFailure):
        await compiler.compile(_pending(_motor(), phone=None), Session(key="tg:1"))
    assert notifier.calls == []


@pytest.mark.asyncio
async def test_store_write_failure_becomes_commit_failure(normalizer, notifier, settings, metrics):
    compiler = OrderCompiler(FailingStore(normalizer=normalizer), notifier, settings=settings, metrics=metrics)

    with pytest.raises(CommitFailure) as exc_info:
        await compiler.compile(_pending(_motor()), Session(key="tg:1"))

    assert exc_info.value.reason == "store_error"
    assert notifier.calls == []


@pytest.mark.asyncio
async def test_notification_failure_does_not_fail_the_order(store, settings, metrics):
    notifier = FakeNotifier(error=NotificationError("telegram down"))
    compiler = OrderCompiler(store, notifier, settings=settings, metrics=metrics)

    result = await compiler.compile(_pending(_motor()), Session(key="tg:1"))

    assert result.notified is False
    assert len(store.list_orders()) == 1
    assert metrics.snapshot().notification_failures == 1


@pytest.mark.asyncio
async def test_degraded_paths_are_logged_with_session_context(normalizer, notifier, settings, caplog):
    compiler = OrderCompiler(FailingStore(normalizer=normalizer), notifier, settings=settings)

    with caplog.at_level("WARNING", logger="order_assistant.services.order_compiler"):
        with pytest.raises(CommitFailure):
            await compiler.compile(_pending(_motor()), Session(key="tg:77"))

    assert any(
        "session=tg:77" in record.getMessage() and "Order commit failed: write failed" in record.getMessage()
        for record in caplog.records
    )
