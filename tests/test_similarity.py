from __future__ import annotations

import pytest

from order_assistant.services.nlu.similarity import (
    SimilarityThresholds,
    TokenProfile,
    edit_score,
    jaro_winkler,
    phonetic_code,
    profiles_match,
    tokens_similar,
)

STRICT = SimilarityThresholds(jaro_winkler=0.99, edit=0.99)


def test_jaro_winkler_bounds():
    assert jaro_winkler("arduino", "arduino") == 1.0
    assert jaro_winkler("", "arduino") == 0.0
    assert jaro_winkler("raspbery", "raspberry") > 0.9


@pytest.mark.parametrize(
    ("a", "b", "expected"),
    [
        ("motor", "motor", 1.0),
        ("motor", "mator", 0.8),
        ("abcd", "wxyz", 0.0),
        ("", "motor", 0.0),
    ],
)
def test_edit_score_is_normalized_by_longest_token(a: str, b: str, expected: float):
    assert edit_score(a, b) == pytest.approx(expected)


def test_typo_passes_numeric_thresholds():
    thresholds = SimilarityThresholds()

    assert tokens_similar("raspbery", phonetic_code("raspbery"), "raspberry", phonetic_code("raspberry"), thresholds)


def test_equal_phonetic_codes_accept_pair_below_numeric_thresholds():
    query, product = "knight", "nite"
    assert jaro_winkler(query, product) <= STRICT.jaro_winkler
    assert edit_score(query, product) <= STRICT.edit
    assert phonetic_code(query) == phonetic_code(product) != ""

    assert tokens_similar(query, phonetic_code(query), product, phonetic_code(product), STRICT)


def test_different_phonetic_codes_below_thresholds_are_rejected():
    assert not tokens_similar("arduino", phonetic_code("arduino"), "motor", phonetic_code("motor"), STRICT)


def test_empty_phonetic_codes_never_match():
    assert not tokens_similar("12", "", "34", "", STRICT)


def test_profiles_match_any_token_pair():
    product = TokenProfile.build(("rev", "core", "hex", "motor"))

    assert profiles_match(TokenProfile.build(("motr",)), product, SimilarityThresholds())
    assert not profiles_match(TokenProfile.build(("xyzzy",)), product, SimilarityThresholds())
