"""
Распознавание артикулов (SKU), коротких кодов товаров ("REV-41") и явного количества.

SKU и количество ищутся в исходном тексте, короткий код - в нормализованном
(после транслитерации "рев 41" превращается в "rev 41").
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional

from ...config import get_settings
from .text_normalizer import TextNormalizer, get_text_normalizer

SKU_PATTERN = re.compile(r"\b[A-Z]{2,6}-\d{2,4}(?:-[A-Z0-9]{2,10})+\b", re.IGNORECASE)

QTY_MULTIPLIER_PATTERN = re.compile(r"(?:^|(?<=[\s,;:(]))[xх]\s?(\d{1,4})(?!\d)", re.IGNORECASE)
QTY_UNITS_PATTERN = re.compile(r"(?<!\d)(\d{1,4})\s?(?:шт|штук|штуки|pcs|pieces)\b", re.IGNORECASE)

CODE_LIKE_PATTERN = re.compile(r"^[A-Za-zА-Яа-яЁё]{2,6}[\s\-]?\d{2,6}([\-A-Za-z0-9]{0,10})?$")


class CodeExtractor:
    def __init__(
        self,
        prefixes: Iterable[str] | None = None,
        aliases: Dict[str, str] | None = None,
        normalizer: TextNormalizer | None = None,
    ):
        self._normalizer = normalizer or get_text_normalizer()
        if prefixes is None:
            prefixes = get_settings().product_code_prefixes
        if aliases is None:
            aliases = self._normalizer.terms.code_prefix_aliases

        # canonical alias/prefix → prefix, как он выглядит в артикуле
        self._prefix_map: Dict[str, str] = {}
        for prefix in prefixes:
            self._prefix_map[self._normalizer.canonicalize(prefix)] = prefix.upper()
        for alias, target in aliases.items():
            self._prefix_map[self._normalizer.canonicalize(alias)] = target.upper()
        self._raw_prefixes: List[str] = [p for p in list(prefixes) + list(aliases) if p]

        alternatives = "|".join(sorted((re.escape(p) for p in self._prefix_map if p), key=len, reverse=True))
        self._code_pattern = (
            re.compile(rf"(?<![a-z0-9])({alternatives})[\s\-]?(\d{{2,4}})(?!\d)") if alternatives else None
        )
        raw_alternatives = "|".join(sorted((re.escape(p) for p in self._raw_prefixes), key=len, reverse=True))
        self._contains_code_pattern = (
            re.compile(rf"\b(?:{raw_alternatives})[\s\-]?\d{{2,4}}", re.IGNORECASE) if raw_alternatives else None
        )

    def extract_sku(self, text: str) -> Optional[str]:
        match = SKU_PATTERN.search(text or "")
        return match.group(0).upper() if match else None

    def extract_product_code(self, normalized_text: str) -> Optional[str]:
        if not normalized_text or self._code_pattern is None:
            return None
        match = self._code_pattern.search(normalized_text)
        if not match:
            return None
        prefix = self._prefix_map.get(match.group(1), match.group(1).upper())
        return f"{prefix}-{match.group(2)}"

    def extract_qty(self, text: str) -> Optional[int]:
        """Явное количество: "x10", "х10", "10 шт", "10 pcs". Первое совпадение в тексте."""
        candidates = []
        for pattern in (QTY_MULTIPLIER_PATTERN, QTY_UNITS_PATTERN):
            match = pattern.search(text or "")
            if match:
                candidates.append((match.start(), int(match.group(1))))
        if not candidates:
            return None
        _, qty = min(candidates)
        return qty if qty > 0 else None

    def looks_like_product_code(self, text: str) -> bool:
        stripped = (text or "").strip()
        if not stripped:
            return False
        if CODE_LIKE_PATTERN.match(stripped):
            return True
        return bool(self._contains_code_pattern and self._contains_code_pattern.search(stripped))


_code_extractor: CodeExtractor | None = None


def get_code_extractor() -> CodeExtractor:
    global _code_extractor
    if _code_extractor is None:
        _code_extractor = CodeExtractor()
    return _code_extractor
