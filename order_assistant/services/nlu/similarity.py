"""
Similarity measures used by the fuzzy product scan.

- Jaro-Winkler similarity (jellyfish)
- нормализованная метрика редактирования 1 - levenshtein / max(len)
- совпадение первичного кода Double Metaphone
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Tuple

import jellyfish
from metaphone import doublemetaphone


def jaro_winkler(a: str, b: str) -> float:
    if not a or not b:
        return 0.0
    return jellyfish.jaro_winkler_similarity(a, b)


def edit_score(a: str, b: str) -> float:
    if not a or not b:
        return 0.0
    longest = max(len(a), len(b))
    return 1.0 - jellyfish.levenshtein_distance(a, b) / longest


@lru_cache(maxsize=8192)
def phonetic_code(token: str) -> str:
    """Primary Double Metaphone code, '' when the token has no pronounceable letters."""
    if not token:
        return ""
    primary, _secondary = doublemetaphone(token)
    return primary or ""


@dataclass(frozen=True)
class TokenProfile:
    tokens: Tuple[str, ...]
    phonetic: Tuple[str, ...]

    @classmethod
    def build(cls, tokens: Tuple[str, ...]) -> "TokenProfile":
        return cls(tokens=tokens, phonetic=tuple(phonetic_code(token) for token in tokens))


@dataclass(frozen=True)
class SimilarityThresholds:
    jaro_winkler: float = 0.70
    edit: float = 0.65


def tokens_similar(
    query_token: str,
    query_code: str,
    product_token: str,
    product_code: str,
    thresholds: SimilarityThresholds,
) -> bool:
    if jaro_winkler(query_token, product_token) > thresholds.jaro_winkler:
        return True
    if edit_score(query_token, product_token) > thresholds.edit:
        return True
    return bool(query_code) and query_code == product_code


def profiles_match(query: TokenProfile, product: TokenProfile, thresholds: SimilarityThresholds) -> bool:
    """True if any (query token x product token) pair passes one of the measures."""
    for q_token, q_code in zip(query.tokens, query.phonetic):
        for p_token, p_code in zip(product.tokens, product.phonetic):
            if tokens_similar(q_token, q_code, p_token, p_code, thresholds):
                return True
    return False
