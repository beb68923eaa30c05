"""
NLU helpers - подготовка текста для поиска товаров.

Компоненты:
- Transliterator: любой скрипт → латиница
- TextNormalizer: канонический вид текста (диграфы, синонимы, токены)
- CodeExtractor: артикулы, короткие коды и количество
- similarity: Jaro-Winkler, метрика редактирования, Double Metaphone
"""

from .code_extractor import CodeExtractor, get_code_extractor
from .text_normalizer import NluTerms, NormalizedText, TextNormalizer, get_text_normalizer, normalize
from .transliterator import Transliterator, get_transliterator

__all__ = [
    "CodeExtractor",
    "get_code_extractor",
    "NluTerms",
    "NormalizedText",
    "TextNormalizer",
    "get_text_normalizer",
    "normalize",
    "Transliterator",
    "get_transliterator",
]
