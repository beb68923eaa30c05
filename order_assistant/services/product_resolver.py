"""
ProductResolver - поиск товара по свободному тексту.

Этапы (первый непустой результат выигрывает):
1. явный артикул (SKU) → точный поиск
2. короткий код товара ("REV-41") → префикс артикула или подстрока названия
3. токены запроса → подстрока названия (OR, без ранжирования)
4. нечёткий перебор каталога: Jaro-Winkler, метрика редактирования, Double Metaphone

Ошибки и таймауты каталога превращаются в NoMatch: поиск не должен ронять диалог.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from ..config import get_settings
from ..models.catalog import Product
from .catalog_store import CatalogStore
from .metrics import MetricsService, get_metrics_service
from .nlu.code_extractor import CodeExtractor, get_code_extractor
from .nlu.similarity import SimilarityThresholds, TokenProfile, profiles_match
from .nlu.text_normalizer import TextNormalizer, get_text_normalizer

logger = logging.getLogger(__name__)

_EDGE_PUNCTUATION = re.compile(r"^[^\w]+|[^\w]+$")


@dataclass(frozen=True)
class NoMatch:
    kind: str = field(default="no_match", init=False)


@dataclass(frozen=True)
class SingleMatch:
    product: Product
    kind: str = field(default="single_match", init=False)


@dataclass(frozen=True)
class Ambiguous:
    products: Tuple[Product, ...]
    kind: str = field(default="ambiguous", init=False)


MatchOutcome = Union[NoMatch, SingleMatch, Ambiguous]


def outcome_from(products: Iterable[Product]) -> MatchOutcome:
    """Cardinality → variant. Duplicates (by id) are dropped, first occurrence wins."""
    unique: Dict[str, Product] = {}
    for product in products:
        unique.setdefault(product.id, product)
    if not unique:
        return NoMatch()
    if len(unique) == 1:
        return SingleMatch(next(iter(unique.values())))
    return Ambiguous(tuple(unique.values()))


def outcome_products(outcome: MatchOutcome) -> List[Product]:
    if isinstance(outcome, SingleMatch):
        return [outcome.product]
    if isinstance(outcome, Ambiguous):
        return list(outcome.products)
    return []


class ProductResolver:
    def __init__(
        self,
        store: CatalogStore,
        *,
        normalizer: TextNormalizer | None = None,
        code_extractor: CodeExtractor | None = None,
        thresholds: SimilarityThresholds | None = None,
        timeout_seconds: float | None = None,
        metrics: MetricsService | None = None,
    ) -> None:
        settings = get_settings()
        self._store = store
        self._normalizer = normalizer or get_text_normalizer()
        self._codes = code_extractor or get_code_extractor()
        self._thresholds = thresholds or SimilarityThresholds(
            jaro_winkler=settings.fuzzy_jaro_winkler_threshold,
            edit=settings.fuzzy_edit_threshold,
        )
        self._timeout = timeout_seconds if timeout_seconds is not None else settings.catalog_timeout_seconds
        self._metrics = metrics or get_metrics_service()
        self._profiles: Dict[str, TokenProfile] = {}

    # -------------------------------------------------------------------------
    # Token helpers
    # -------------------------------------------------------------------------
    def _clean_tokens(self, tokens: Iterable[str]) -> Tuple[str, ...]:
        cleaned = (_EDGE_PUNCTUATION.sub("", token) for token in tokens)
        return tuple(token for token in cleaned if token)

    def search_tokens(self, query: str) -> Tuple[str, ...]:
        """Tokens used for name lookup: normalized, >= 2 chars, no stop-words."""
        tokens = self._clean_tokens(self._normalizer.normalize(query).tokens)
        return tuple(t for t in tokens if len(t) >= 2 and not self._normalizer.is_stop_word(t))

    def product_profile(self, product: Product) -> TokenProfile:
        profile = self._profiles.get(product.name)
        if profile is None:
            tokens = self._clean_tokens(self._normalizer.normalize(product.name).tokens)
            profile = TokenProfile.build(tokens)
            self._profiles[product.name] = profile
        return profile

    def rank_by_coverage(self, query: str, products: Sequence[Product]) -> List[Product]:
        """Products ordered by how many query tokens their name covers; ties keep input order."""
        tokens = self.search_tokens(query)

        def coverage(product: Product) -> int:
            name_tokens = self.product_profile(product).tokens
            return sum(1 for token in tokens if any(token in name_token for name_token in name_tokens))

        return sorted(products, key=coverage, reverse=True)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------
    async def resolve(self, query: str) -> MatchOutcome:
        if not query or not query.strip():
            return NoMatch()
        try:
            outcome = await asyncio.wait_for(self._resolve(query), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning("Product resolution timed out after %.1fs query=%r", self._timeout, query)
            outcome = NoMatch()
        except Exception as exc:
            logger.warning("Product resolution failed query=%r error=%s", query, exc, exc_info=True)
            outcome = NoMatch()
        self._metrics.record_resolution(outcome.kind)
        return outcome

    async def resolve_by_sku(self, sku: str) -> Optional[Product]:
        try:
            return await asyncio.wait_for(self._store.find_by_sku(sku), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning("SKU lookup timed out sku=%s", sku)
        except Exception as exc:
            logger.warning("SKU lookup failed sku=%s error=%s", sku, exc)
        return None

    async def _resolve(self, query: str) -> MatchOutcome:
        sku = self._codes.extract_sku(query)
        if sku:
            product = await self._store.find_by_sku(sku)
            if product is not None:
                return SingleMatch(product)
            logger.info("SKU %s not found in catalog, falling back to name search", sku)

        normalized = self._normalizer.normalize(query)
        code = self._codes.extract_product_code(normalized.normalized)
        if code:
            by_code = await self._store.find_by_code(code)
            if by_code:
                return outcome_from(by_code)

        tokens = self.search_tokens(query)
        hit_ids = set()
        for token in tokens:
            for product in await self._store.find_by_name_token(token):
                hit_ids.add(product.id)

        catalog = await self._store.find_all_products()
        if hit_ids:
            return outcome_from(product for product in catalog if product.id in hit_ids)

        return outcome_from(self._fuzzy_scan(catalog, tokens, code))

    def _fuzzy_scan(self, catalog: Sequence[Product], tokens: Tuple[str, ...], code: Optional[str]) -> List[Product]:
        query_profile = TokenProfile.build(tokens)
        accepted: List[Product] = []
        for product in catalog:
            if code and (product.sku.upper().startswith(code) or code in product.name.upper()):
                accepted.append(product)
                continue
            if tokens and profiles_match(query_profile, self.product_profile(product), self._thresholds):
                accepted.append(product)
        return accepted
