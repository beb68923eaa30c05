from __future__ import annotations

import asyncio

import pytest

from order_assistant.services.catalog_store import InMemoryCatalogStore
from order_assistant.services.error_handling import CatalogStoreError
from order_assistant.services.metrics import MetricsService
from order_assistant.services.product_resolver import (
    Ambiguous,
    NoMatch,
    ProductResolver,
    SingleMatch,
    outcome_from,
    outcome_products,
)

from conftest import make_product


class BrokenStore(InMemoryCatalogStore):
    async def find_by_name_token(self, token):
        raise CatalogStoreError("db is down", reason="store_down")


class SlowStore(InMemoryCatalogStore):
    async def find_all_products(self):
        await asyncio.sleep(1)
        return await super().find_all_products()


def _skus(outcome) -> set[str]:
    return {product.sku for product in outcome_products(outcome)}


@pytest.mark.asyncio
async def test_full_sku_resolves_to_single_product(resolver: ProductResolver):
    outcome = await resolver.resolve("REV-41-1303 x2")

    assert isinstance(outcome, SingleMatch)
    assert outcome.product.name == "REV Core Hex Motor"


@pytest.mark.asyncio
@pytest.mark.parametrize("query", ["REV-41", "рев 41", "rev41"])
async def test_short_code_lists_every_product_of_the_family(resolver: ProductResolver, query: str):
    outcome = await resolver.resolve(query)

    assert isinstance(outcome, Ambiguous)
    assert _skus(outcome) == {"REV-41-1303", "REV-41-1304", "REV-41-1305-PK8"}


@pytest.mark.asyncio
async def test_cyrillic_name_matches_latin_catalog(resolver: ProductResolver):
    outcome = await resolver.resolve("ардуино уно")

    assert isinstance(outcome, Ambiguous)
    assert "ARD-UNO-R3" in _skus(outcome)
    assert resolver.rank_by_coverage("ардуино уно", outcome.products)[0].sku == "ARD-UNO-R3"


@pytest.mark.asyncio
async def test_rank_by_coverage_prefers_most_specific_name(resolver: ProductResolver):
    outcome = await resolver.resolve("Raspberry Pi 4 8GB")

    assert isinstance(outcome, Ambiguous)
    assert resolver.rank_by_coverage("Raspberry Pi 4 8GB", outcome.products)[0].sku == "RPI4-8GB"


@pytest.mark.asyncio
async def test_synonym_finds_product_by_normalized_name(resolver: ProductResolver):
    outcome = await resolver.resolve("аккумулятор")

    assert isinstance(outcome, SingleMatch)
    assert outcome.product.sku == "BAT-18650-3400"


@pytest.mark.asyncio
async def test_misspelled_name_falls_back_to_fuzzy_scan(resolver: ProductResolver):
    outcome = await resolver.resolve("raspbery")

    assert {"RPI4-4GB", "RPI4-8GB"} <= _skus(outcome)


@pytest.mark.asyncio
async def test_unknown_sku_falls_through_to_name_search(resolver: ProductResolver):
    outcome = await resolver.resolve("REV-41-9999")

    assert isinstance(outcome, Ambiguous)
    assert "REV-41-1303" in _skus(outcome)


@pytest.mark.asyncio
async def test_query_of_stop_words_only_is_no_match(resolver: ProductResolver):
    assert isinstance(await resolver.resolve("мне нужно"), NoMatch)
    assert isinstance(await resolver.resolve("   "), NoMatch)


@pytest.mark.asyncio
async def test_store_failure_becomes_no_match(normalizer, code_extractor):
    metrics = MetricsService()
    resolver = ProductResolver(
        BrokenStore(normalizer=normalizer), normalizer=normalizer, code_extractor=code_extractor, metrics=metrics
    )

    outcome = await resolver.resolve("arduino")

    assert isinstance(outcome, NoMatch)
    assert metrics.snapshot().resolution_outcomes == {"no_match": 1}


@pytest.mark.asyncio
async def test_store_timeout_becomes_no_match(normalizer, code_extractor, metrics):
    resolver = ProductResolver(
        SlowStore(normalizer=normalizer),
        normalizer=normalizer,
        code_extractor=code_extractor,
        timeout_seconds=0.05,
        metrics=metrics,
    )

    assert isinstance(await resolver.resolve("arduino"), NoMatch)


@pytest.mark.asyncio
async def test_inactive_products_are_never_returned(normalizer, code_extractor, metrics):
    store = InMemoryCatalogStore(
        [
            make_product(id="p1", sku="TST-10-0001", name="Servo Motor", is_active=False),
            make_product(id="p2", sku="TST-10-0002", name="Servo Horn"),
        ],
        normalizer=normalizer,
    )
    resolver = ProductResolver(store, normalizer=normalizer, code_extractor=code_extractor, metrics=metrics)

    outcome = await resolver.resolve("servo")

    assert isinstance(outcome, SingleMatch)
    assert outcome.product.id == "p2"
    assert await resolver.resolve_by_sku("TST-10-0001") is None


@pytest.mark.asyncio
async def test_resolution_outcomes_are_counted(resolver: ProductResolver, metrics: MetricsService):
    await resolver.resolve("REV-41")
    await resolver.resolve("REV-41-1303")

    assert metrics.snapshot().resolution_outcomes == {"ambiguous": 1, "single_match": 1}


def test_outcome_from_deduplicates_by_id():
    product = make_product()

    assert isinstance(outcome_from([]), NoMatch)
    assert isinstance(outcome_from([product, product]), SingleMatch)
    assert isinstance(outcome_from([product, make_product(id="p-other")]), Ambiguous)


@pytest.mark.asyncio
@pytest.mark.parametrize("query", ["REV-41", "ардуино уно", "raspbery", "мотор", "xyzzy qq", "ESP-32-DEVKIT"])
async def test_resolve_is_idempotent_for_a_fixed_catalog(resolver: ProductResolver, query: str):
    first = await resolver.resolve(query)
    second = await resolver.resolve(query)

    assert type(first) is type(second)
    assert outcome_products(first) == outcome_products(second)
