"""Grapheme-safe content chunker.

Splits the final answer into bounded fragments for content frames.
Fragment boundaries only fall between user-perceived characters: a base
character keeps its combining marks, variation selectors, skin-tone
modifiers and zero-width-joined partners, and regional indicators stay
paired as flags.
"""

from __future__ import annotations

import unicodedata
from collections.abc import Iterator

_ZWJ = "\u200d"

# Inclusive codepoint ranges that always attach to the preceding character
_EXTEND_RANGES: tuple[tuple[int, int], ...] = (
    (0x1160, 0x11FF),    # Hangul medial vowels and final consonants
    (0xFE00, 0xFE0F),    # variation selectors
    (0x1F3FB, 0x1F3FF),  # emoji skin-tone modifiers
    (0xE0020, 0xE007F),  # tag characters (subdivision flags)
    (0xE0100, 0xE01EF),  # variation selectors supplement
)

_REGIONAL_INDICATORS = (0x1F1E6, 0x1F1FF)


def split_content(content: str, max_length: int) -> list[str]:
    """Split content into fragments of at most max_length characters.

    Concatenating the fragments reproduces ``content`` exactly. A single
    glyph longer than ``max_length`` is kept whole in its own fragment.

    Args:
        content: The final answer text.
        max_length: Maximum fragment length in codepoints.

    Returns:
        Ordered fragments; empty list for empty content.

    Raises:
        ValueError: If max_length is less than 1.
    """
    if max_length < 1:
        raise ValueError(f"max_length must be >= 1, got {max_length}")
    if not content:
        return []

    fragments: list[str] = []
    current: list[str] = []
    current_len = 0

    for cluster in iter_graphemes(content):
        if current and current_len + len(cluster) > max_length:
            fragments.append("".join(current))
            current = []
            current_len = 0
        current.append(cluster)
        current_len += len(cluster)

    if current:
        fragments.append("".join(current))
    return fragments


def iter_graphemes(text: str) -> Iterator[str]:
    """Yield the user-perceived characters of text, in order."""
    start = 0
    ri_run = 0
    for i in range(1, len(text)):
        prev, char = text[i - 1], text[i]
        if _is_regional_indicator(prev):
            ri_run += 1
        else:
            ri_run = 0
        if _joins(prev, char, ri_run):
            continue
        yield text[start:i]
        start = i
        ri_run = 0
    if text:
        yield text[start:]


def _joins(prev: str, char: str, ri_run: int) -> bool:
    """Whether there is no grapheme boundary between prev and char."""
    if prev == "\r" and char == "\n":
        return True
    if prev == _ZWJ or char == _ZWJ:
        return True
    if unicodedata.category(char) in ("Mn", "Mc", "Me"):
        return True
    code = ord(char)
    if any(low <= code <= high for low, high in _EXTEND_RANGES):
        return True
    # Flags are pairs: the second indicator of a run joins its partner
    return _is_regional_indicator(char) and ri_run % 2 == 1


def _is_regional_indicator(char: str) -> bool:
    low, high = _REGIONAL_INDICATORS
    return low <= ord(char) <= high
