"""
Transliterator - приведение любого скрипта к латинице.

Пользователи пишут названия товаров как придётся:
- "ардуино уно" → "arduino uno"
- "рев-41" → "rev-41"
- смешанный ввод "arduinо" (кириллическая "о") → "arduino"

Кириллица переводится по фонетической таблице, остальные не-ASCII
символы отдаются в unidecode. То, что распознать не удалось, заменяется
плейсхолдером "?" и никогда не выбрасывается.
"""

from __future__ import annotations

from typing import Dict

from unidecode import unidecode

UNKNOWN_PLACEHOLDER = "?"

# Кириллица → Латиница (фонетическая)
CYRILLIC_TO_LATIN: Dict[str, str] = {
    "а": "a",
    "б": "b",
    "в": "v",
    "г": "g",
    "д": "d",
    "е": "e",
    "ё": "yo",
    "ж": "zh",
    "з": "z",
    "и": "i",
    "й": "y",
    "к": "k",
    "л": "l",
    "м": "m",
    "н": "n",
    "о": "o",
    "п": "p",
    "р": "r",
    "с": "s",
    "т": "t",
    "у": "u",
    "ф": "f",
    "х": "kh",
    "ц": "ts",
    "ч": "ch",
    "ш": "sh",
    "щ": "shch",
    "ъ": "",
    "ы": "y",
    "ь": "",
    "э": "e",
    "ю": "yu",
    "я": "ya",
}


class Transliterator:
    """Сервис транслитерации текста в латиницу."""

    def __init__(self, table: Dict[str, str] | None = None, placeholder: str = UNKNOWN_PLACEHOLDER):
        self._table = table or CYRILLIC_TO_LATIN
        self._placeholder = placeholder

    def _char_to_latin(self, char: str) -> str:
        if char.isascii():
            return char
        lowered = char.lower()
        if lowered in self._table:
            return self._table[lowered]
        replaced = unidecode(char, errors="replace", replace_str=self._placeholder)
        # unidecode отдаёт пустую строку для символов без транскрипции
        return replaced.lower() if replaced else self._placeholder

    def to_latin(self, text: str) -> str:
        if not text:
            return ""
        return "".join(self._char_to_latin(char) for char in text)


# Singleton instance
_transliterator: Transliterator | None = None


def get_transliterator() -> Transliterator:
    """Возвращает singleton экземпляр Transliterator."""
    global _transliterator
    if _transliterator is None:
        _transliterator = Transliterator()
    return _transliterator
