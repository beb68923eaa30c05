from __future__ import annotations

import pytest

from order_assistant.intents import Locale
from order_assistant.models.session import ContactDetails, OrderItemDraft, PendingOrder, Session
from order_assistant.services.response_helpers import (
    chunk_blocks,
    format_money,
    render_items_summary,
    render_product_listing,
)

from conftest import make_product


def test_format_money():
    assert format_money(8500) == "8500₸"
    assert format_money(99.5, "$") == "99.50$"


def test_chunk_blocks_never_splits_a_block():
    chunks = chunk_blocks("H\n", ["a" * 40, "b" * 40, "c" * 40], "F", limit=100)

    assert chunks == ["H\n" + "a" * 40 + "b" * 40, "c" * 40 + "F"]
    assert all(len(chunk) <= 100 for chunk in chunks)


def test_oversized_block_is_shortened_to_the_limit():
    chunks = chunk_blocks("H\n", ["<b>" + "W" * 200 + "</b>", "ok"], "", limit=50)

    assert chunks == ["H\n", "W" * 49 + "…", "ok"]
    assert all(len(chunk) <= 50 for chunk in chunks)


def test_shortening_never_cuts_an_html_entity():
    assert chunk_blocks("", ["&amp;" * 20], "", limit=12) == ["&amp;&amp;…"]


def test_listing_is_capped_and_mentions_the_rest():
    products = [make_product(id=f"p{i}", sku=f"TST-10-{i:04d}", name=f"Widget {i}") for i in range(20)]

    messages = render_product_listing(products, Locale.EN, limit=15, chunk_chars=3500)

    text = "".join(message.text for message in messages)
    assert "TST-10-0014" in text
    assert "TST-10-0015" not in text
    assert "Showing first 15 results out of 20." in text
    assert all(message.parse_mode == "HTML" for message in messages)


def test_long_listing_is_split_into_several_messages():
    products = [make_product(id=f"p{i}", sku=f"TST-10-{i:04d}", name="W" * 200) for i in range(10)]

    messages = render_product_listing(products, Locale.RU, limit=15, chunk_chars=1000)

    assert len(messages) > 1
    assert all(len(message.text) <= 1000 for message in messages)


def test_items_summary_warns_about_low_stock():
    pending = PendingOrder(items=[OrderItemDraft(name="Raspberry Pi 4 8GB", sku="RPI4-8GB", qty=5, unit_price=60000)])

    text = render_items_summary(pending, Locale.RU, stock={"RPI4-8GB": 4})

    assert "300000₸" in text
    assert "⚠️ В наличии: 4" in text


# =============================================================================
# Session models
# =============================================================================


def test_missing_slots_phone_before_name():
    pending = PendingOrder()

    assert pending.missing_slots() == ["phone", "name"]
    pending.backfill(ContactDetails(name="Иван Петров"))
    assert pending.missing_slots() == ["phone"]


def test_backfill_never_overwrites():
    pending = PendingOrder(customer_phone="+77010000000")

    pending.backfill(ContactDetails(phone="+77011234567", email="a@b.kz"))

    assert pending.customer_phone == "+77010000000"
    assert pending.customer_email == "a@b.kz"


def test_mark_ready_requires_items_and_contacts():
    pending = PendingOrder(customer_name="Иван", customer_phone="+77011234567")

    with pytest.raises(ValueError):
        pending.mark_ready()
    pending.add_item(OrderItemDraft(name="ESP32 DevKit V1", sku="ESP-32-DEVKIT", qty=1, unit_price=3900))
    pending.mark_ready()


def test_history_is_bounded():
    session = Session(key="tg:1")

    for i in range(25):
        session.remember("user", f"msg {i}", limit=20)

    assert len(session.message_history) == 20
    assert session.message_history[0].content == "msg 5"
