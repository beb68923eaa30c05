from __future__ import annotations

from datetime import datetime, timezone

import pytest

from order_assistant.models.catalog import CustomerInfo, OrderLine, OrderStatus
from order_assistant.services.catalog_store import InMemoryCatalogStore
from order_assistant.services.error_handling import CatalogStoreError


def _line(qty: int = 1) -> OrderLine:
    return OrderLine(product_id="p-ard-uno", sku="ARD-UNO-R3", name="Arduino Uno R3", qty=qty, unit_price=8500)


async def _create(store: InMemoryCatalogStore, phone: str = "+77011234567", **info) -> str:
    order = await store.create_order(
        CustomerInfo(phone=phone, **info),
        [_line()],
        source="chat",
        original_message="1 Arduino Uno",
        locale="ru",
    )
    return order.number


@pytest.mark.asyncio
async def test_bundled_catalog_is_loaded(store: InMemoryCatalogStore):
    products = await store.find_all_products()

    assert len(products) == 9
    assert (await store.find_by_sku("rev-41-1303")).name == "REV Core Hex Motor"


@pytest.mark.asyncio
async def test_find_by_code_matches_sku_prefix(store: InMemoryCatalogStore):
    found = await store.find_by_code("rev-41")

    assert [p.sku for p in found] == ["REV-41-1303", "REV-41-1304", "REV-41-1305-PK8"]


@pytest.mark.asyncio
async def test_order_numbers_are_sequential_within_year(normalizer):
    store = InMemoryCatalogStore(normalizer=normalizer, clock=lambda: datetime(2025, 3, 1, tzinfo=timezone.utc))

    assert await _create(store) == "KG-2025-000001"
    assert await _create(store) == "KG-2025-000002"


@pytest.mark.asyncio
async def test_order_sequence_restarts_each_year_in_display_timezone(normalizer):
    now = {"value": datetime(2025, 6, 1, tzinfo=timezone.utc)}
    store = InMemoryCatalogStore(normalizer=normalizer, clock=lambda: now["value"])

    assert await _create(store) == "KG-2025-000001"
    # 20:00 UTC 31 декабря - уже 1 января в Алматы
    now["value"] = datetime(2025, 12, 31, 20, 0, tzinfo=timezone.utc)
    assert await _create(store) == "KG-2026-000001"


@pytest.mark.asyncio
async def test_customer_is_upserted_by_phone(store: InMemoryCatalogStore):
    await _create(store)
    await _create(store, name="Иван Петров", email="ivan@example.kz")
    await _create(store, name="Другое Имя")

    customers = store.list_customers()
    assert len(customers) == 1
    assert customers[0].name == "Иван Петров"
    assert customers[0].email == "ivan@example.kz"


@pytest.mark.asyncio
async def test_order_is_stored_with_message_log(store: InMemoryCatalogStore):
    number = await _create(store, external_id="tg:42")

    order = await store.find_order_by_number(number.lower())
    assert order is not None
    assert order.status == OrderStatus.NEW
    assert order.total_amount == 8500
    assert order.currency == "KZT"

    log_entry = store.message_log[0]
    assert log_entry.order_id == order.id
    assert log_entry.body == "1 Arduino Uno"
    assert log_entry.meta["external_id"] == "tg:42"


@pytest.mark.asyncio
async def test_empty_order_is_rejected(store: InMemoryCatalogStore):
    with pytest.raises(CatalogStoreError):
        await store.create_order(
            CustomerInfo(phone="+77011234567"), [], source="chat", original_message="", locale="ru"
        )
    assert store.list_orders() == []


@pytest.mark.asyncio
async def test_unknown_order_number(store: InMemoryCatalogStore):
    assert await store.find_order_by_number("KG-2025-999999") is None


def test_missing_catalog_file_gives_empty_catalog(tmp_path, normalizer):
    store = InMemoryCatalogStore(catalog_path=tmp_path / "none.json", normalizer=normalizer)

    assert store.list_orders() == []


def test_broken_catalog_file_raises(tmp_path, normalizer):
    path = tmp_path / "catalog.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(CatalogStoreError):
        InMemoryCatalogStore(catalog_path=path, normalizer=normalizer)


@pytest.mark.asyncio
async def test_manager_can_change_order_status(store: InMemoryCatalogStore):
    number = await _create(store)
    order = await store.find_order_by_number(number)

    updated = await store.update_order_status(order.id, OrderStatus.CONFIRMED, "mgr-1")

    assert updated.status == OrderStatus.CONFIRMED
    assert updated.manager_id == "mgr-1"
    assert updated.updated_at is not None
    assert (await store.find_order_by_id(order.id)).status == OrderStatus.CONFIRMED

    cancelled = await store.update_order_status(order.id, OrderStatus.CANCELLED)
    assert cancelled.status == OrderStatus.CANCELLED
    assert cancelled.manager_id == "mgr-1"


@pytest.mark.asyncio
async def test_status_of_unknown_order_is_not_changed(store: InMemoryCatalogStore):
    assert await store.update_order_status("missing", OrderStatus.CONFIRMED) is None
    assert await store.find_order_by_id("missing") is None
