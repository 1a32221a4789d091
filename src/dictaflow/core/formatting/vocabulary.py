"""Vocabulary replacement processor."""
import re
from typing import Iterable, Tuple

from ...utils.logger import get_logger

logger = get_logger(__name__)

# Han, Hiragana, Katakana and Hangul. These scripts have no spaces between
# words, so word boundaries are meaningless for them.
_CJK_PATTERN = re.compile(
    "["
    "぀-ゟ"  # Hiragana
    "゠-ヿ"  # Katakana
    "㐀-䶿"  # CJK extension A
    "一-鿿"  # CJK unified ideographs
    "豈-﫿"  # CJK compatibility ideographs
    "ᄀ-ᇿ"  # Hangul jamo
    "가-힯"  # Hangul syllables
    "]"
)

# Letter or digit, excluding underscore
_WORD_CHAR = r"[^\W_]"


def contains_cjk(word: str) -> bool:
    return bool(_CJK_PATTERN.search(word))


def _compile_rule(original: str) -> "re.Pattern[str]":
    escaped = re.escape(original)
    if contains_cjk(original):
        return re.compile(escaped, re.IGNORECASE)
    return re.compile(f"(?<!{_WORD_CHAR}){escaped}(?!{_WORD_CHAR})", re.IGNORECASE)


def apply_vocabulary_replacements(
    text: str, replacements: Iterable[Tuple[str, str]]
) -> str:
    """
    Apply vocabulary replacements to text.

    Rules are applied in order. Alphabetic words match case-insensitively on
    whole-word boundaries ("apple" never touches "pineapple"); words containing
    CJK characters match case-insensitively anywhere.

    Args:
        text: The input transcription text
        replacements: (original, replacement) pairs

    Returns:
        Text with all replacements applied
    """
    if not text:
        return text

    result = text
    for original, replacement in replacements:
        if not original:  # Skip empty originals
            continue
        result = _compile_rule(original).sub(lambda _m: replacement, result)

    if result != text:
        logger.debug(
            f"Applied vocabulary replacements: '{text[:50]}...' -> '{result[:50]}...'"
        )

    return result
