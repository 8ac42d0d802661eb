# phonetic.py
"""
Pinyin forms of text, used by the search engine to match Chinese values typed
in latin letters ("dianzi" or "dz" for 电子).
Both forms are matching aids only; they are never stored.
"""

from __future__ import annotations

import logging
from typing import Any

from pypinyin import Style, lazy_pinyin

logger = logging.getLogger(__name__)


def _syllables(text: str, style: Style) -> list[str]:
    # Non-Chinese runs come back unchanged as a single item
    return lazy_pinyin(text, style=style, errors="default", strict=False)


def to_pinyin(text: Any) -> str:
    """
    Full toneless pinyin, lowercase, syllables joined without separators.
    Falls back to the lowercased text if transliteration fails.
    """
    if not text or not isinstance(text, str):
        return ""
    try:
        return "".join(_syllables(text, Style.NORMAL)).lower()
    except Exception as e:
        logger.debug("Pinyin conversion failed for %r: %s", text, e)
        return text.lower()


def to_initials(text: Any) -> str:
    """First letter of each syllable, lowercase ("精密电子天平" -> "jmdztp")."""
    if not text or not isinstance(text, str):
        return ""
    try:
        return "".join(_syllables(text, Style.FIRST_LETTER)).lower()
    except Exception as e:
        logger.debug("Pinyin initials failed for %r: %s", text, e)
        return text.lower()


def phonetic_contains(value: Any, needle: str) -> bool:
    """True if the lowercase needle occurs in value, its pinyin or its initials."""
    if not needle or not isinstance(value, str) or not value:
        return False
    needle = needle.lower()
    return (
        needle in value.lower()
        or needle in to_pinyin(value)
        or needle in to_initials(value)
    )
