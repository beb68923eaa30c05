"""
TextNormalizer - каноническая форма пользовательского текста и названий товаров.

Пайплайн (порядок шагов важен):
1. lowercase + trim
2. транслитерация в латиницу
3. свёртка диграфов (zh→j, sh→s, ...), простая замена подстрок
4. синонимы из nlu_terms.yaml, только целое слово
5. токенизация по пробелам

Одна и та же функция применяется и к запросу, и к названию товара,
поэтому сравнение идёт между одинаково искажёнными строками.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Set, Tuple

import yaml

from ...config import get_settings
from .transliterator import Transliterator, get_transliterator

logger = logging.getLogger(__name__)

DIGRAPH_FOLDS: Tuple[Tuple[str, str], ...] = (
    ("zh", "j"),
    ("sh", "s"),
    ("ch", "c"),
    ("ts", "c"),
    ("ya", "ia"),
    ("yu", "iu"),
    ("ye", "e"),
    ("yo", "o"),
)


@dataclass(frozen=True)
class NormalizedText:
    normalized: str
    tokens: Tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.tokens


@dataclass
class NluTerms:
    """Словари из YAML: синонимы, алиасы префиксов, приветствия, стоп-слова."""

    synonyms: Dict[str, List[str]] = field(default_factory=dict)
    code_prefix_aliases: Dict[str, str] = field(default_factory=dict)
    greetings: List[str] = field(default_factory=list)
    stop_words: List[str] = field(default_factory=list)

    @classmethod
    def load(cls, path: Path) -> "NluTerms":
        try:
            with Path(path).open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
        except FileNotFoundError:
            logger.warning("NLU terms file not found at %s, using empty vocabularies", path)
            return cls()
        return cls(
            synonyms={str(k): [str(v) for v in (values or [])] for k, values in (raw.get("synonyms") or {}).items()},
            code_prefix_aliases={str(k): str(v) for k, v in (raw.get("code_prefix_aliases") or {}).items()},
            greetings=[str(item) for item in raw.get("greetings") or []],
            stop_words=[str(item) for item in raw.get("stop_words") or []],
        )


def fold_digraphs(text: str) -> str:
    for source, target in DIGRAPH_FOLDS:
        text = text.replace(source, target)
    return text


class TextNormalizer:
    def __init__(self, terms: NluTerms | None = None, transliterator: Transliterator | None = None):
        self._terms = terms or NluTerms()
        self._transliterator = transliterator or get_transliterator()
        self._synonyms: Dict[str, str] = {}
        for canonical, variants in self._terms.synonyms.items():
            target = self.canonicalize(canonical)
            for variant in variants:
                key = self.canonicalize(variant)
                if key:
                    self._synonyms[key] = target
        self._stop_words: Set[str] = {self.canonicalize(word) for word in self._terms.stop_words}

    @property
    def terms(self) -> NluTerms:
        return self._terms

    @property
    def stop_words(self) -> Set[str]:
        return self._stop_words

    def canonicalize(self, raw: str) -> str:
        """Шаги 1-3 без синонимов и токенизации."""
        text = (raw or "").lower().strip()
        if not text:
            return ""
        text = self._transliterator.to_latin(text)
        return fold_digraphs(text)

    def normalize(self, raw: str) -> NormalizedText:
        text = self.canonicalize(raw)
        if not text:
            return NormalizedText(normalized="")
        tokens = tuple(self._synonyms.get(token, token) for token in text.split())
        return NormalizedText(normalized=" ".join(tokens), tokens=tokens)

    def is_stop_word(self, token: str) -> bool:
        return token in self._stop_words


_text_normalizer: TextNormalizer | None = None


def get_text_normalizer() -> TextNormalizer:
    """Возвращает singleton TextNormalizer со словарями из настроек."""
    global _text_normalizer
    if _text_normalizer is None:
        _text_normalizer = TextNormalizer(NluTerms.load(get_settings().nlu_terms_path))
    return _text_normalizer


def normalize(raw: str) -> NormalizedText:
    return get_text_normalizer().normalize(raw)
