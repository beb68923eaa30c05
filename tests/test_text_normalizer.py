from __future__ import annotations

from pathlib import Path

from order_assistant.services.nlu.text_normalizer import NluTerms, TextNormalizer, fold_digraphs
from order_assistant.services.nlu.transliterator import Transliterator


# =============================================================================
# Transliteration
# =============================================================================


def test_cyrillic_is_transliterated_to_latin():
    assert Transliterator().to_latin("ардуино уно") == "arduino uno"


def test_mixed_script_word_becomes_plain_latin():
    # "о" в конце - кириллическая
    assert Transliterator().to_latin("arduinо") == "arduino"


def test_unmappable_character_becomes_placeholder():
    assert Transliterator().to_latin("a\ue000b") == "a?b"


def test_other_scripts_go_through_unidecode():
    assert Transliterator().to_latin("Ünö") == "uno"


# =============================================================================
# Normalization pipeline
# =============================================================================


def test_normalize_lowercases_and_trims(normalizer: TextNormalizer):
    result = normalizer.normalize("  Arduino UNO  ")

    assert result.normalized == "arduino uno"
    assert result.tokens == ("arduino", "uno")


def test_same_word_in_both_scripts_normalizes_identically(normalizer: TextNormalizer):
    assert normalizer.normalize("ардуино").tokens == normalizer.normalize("arduino").tokens


def test_synonyms_map_to_canonical_word(normalizer: TextNormalizer):
    assert normalizer.normalize("Аккумулятор 18650").tokens == ("battery", "18650")
    assert normalizer.normalize("мотор").tokens == ("motor",)


def test_synonyms_replace_whole_words_only(normalizer: TextNormalizer):
    tokens = normalizer.normalize("моторчик").tokens

    assert "motor" not in tokens


def test_digraphs_are_folded():
    assert fold_digraphs("shaft") == "saft"
    assert fold_digraphs("zhuk") == "juk"


def test_empty_input_gives_empty_result(normalizer: TextNormalizer):
    assert normalizer.normalize("").is_empty
    assert normalizer.normalize("   ").normalized == ""


def test_stop_words_are_canonicalized(normalizer: TextNormalizer):
    assert normalizer.is_stop_word(normalizer.canonicalize("шт"))
    assert normalizer.is_stop_word(normalizer.canonicalize("нужно"))
    assert not normalizer.is_stop_word("arduino")


def test_missing_terms_file_gives_empty_vocabularies(tmp_path: Path):
    terms = NluTerms.load(tmp_path / "missing.yaml")

    assert terms.synonyms == {}
    assert terms.greetings == []
    assert TextNormalizer(terms).normalize("мотор").tokens == ("motor",)


def test_terms_loaded_from_yaml(tmp_path: Path):
    path = tmp_path / "terms.yaml"
    path.write_text("synonyms:\n  board: [плата]\ngreetings: [hi]\n", encoding="utf-8")

    normalizer = TextNormalizer(NluTerms.load(path))

    assert normalizer.normalize("плата").tokens == ("board",)
    assert normalizer.terms.greetings == ["hi"]
