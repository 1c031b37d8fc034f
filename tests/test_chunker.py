"""Tests for veilstream.streaming.chunker: grapheme-safe content splitting."""

from __future__ import annotations

import pytest

from veilstream.streaming.chunker import iter_graphemes, split_content

SCENARIO_A = "Hello! 👋 Nice to meet you, John Smith."

FAMILY = "\U0001F468\u200d\U0001F469\u200d\U0001F467\u200d\U0001F466"  # ZWJ sequence, 7 codepoints
FLAG_PAIR = "\U0001F1EF\U0001F1F5\U0001F1EB\U0001F1F7"  # JP + FR flags
THUMBS = "\U0001F44D\U0001F3FD"  # thumbs up + skin tone modifier
E_ACUTE = "e\u0301"  # e + combining acute accent
HEART = "\u2764\ufe0f"  # heart + emoji variation selector


class TestSplitContent:
    def test_empty_input_yields_no_fragments(self):
        assert split_content("", 8) == []

    def test_short_input_single_fragment(self):
        assert split_content("General Kenobi.", 32) == ["General Kenobi."]

    def test_fragments_respect_bound(self):
        fragments = split_content("abcdefghij", 3)
        assert fragments == ["abc", "def", "ghi", "j"]

    def test_scenario_a_reconstructs(self):
        fragments = split_content(SCENARIO_A, 5)
        assert "".join(fragments) == SCENARIO_A
        assert all(0 < len(f) <= 5 for f in fragments)
        assert any("👋" in f for f in fragments)

    def test_invalid_bound(self):
        with pytest.raises(ValueError, match="max_length"):
            split_content("abc", 0)

    def test_oversized_glyph_kept_whole(self):
        fragments = split_content(f"a{FAMILY}b", 2)
        assert FAMILY in fragments
        assert "".join(fragments) == f"a{FAMILY}b"

    def test_crlf_not_split(self):
        fragments = split_content("ab\r\ncd", 3)
        assert all(not f.endswith("\r") for f in fragments)
        assert "".join(fragments) == "ab\r\ncd"

    @pytest.mark.parametrize("glyph", [FAMILY, THUMBS, E_ACUTE, HEART, "🇯🇵", "中", "👋"])
    @pytest.mark.parametrize("max_length", [1, 2, 3, 5, 8])
    def test_glyph_never_split_at_any_offset(self, glyph, max_length):
        filler = "abcdefghij"
        for offset in range(len(filler) + 1):
            text = filler[:offset] + glyph + filler[offset:]
            fragments = split_content(text, max_length)

            assert "".join(fragments) == text
            # The glyph must sit wholly inside one fragment
            assert sum(glyph in f for f in fragments) == 1
            assert all(len(f) <= max(max_length, len(glyph)) for f in fragments)

    def test_utf8_bytes_round_trip(self):
        text = f"{SCENARIO_A} {FAMILY} {FLAG_PAIR} {THUMBS} {E_ACUTE}"
        fragments = split_content(text, 4)
        assert b"".join(f.encode("utf-8") for f in fragments) == text.encode("utf-8")
        for fragment in fragments:
            fragment.encode("utf-8").decode("utf-8")


class TestIterGraphemes:
    def test_ascii(self):
        assert list(iter_graphemes("abc")) == ["a", "b", "c"]

    def test_empty(self):
        assert list(iter_graphemes("")) == []

    def test_zwj_sequence_is_one_glyph(self):
        assert list(iter_graphemes(FAMILY)) == [FAMILY]

    def test_flags_pair_up(self):
        assert list(iter_graphemes(FLAG_PAIR)) == ["🇯🇵", "🇫🇷"]

    def test_odd_regional_indicator_stands_alone(self):
        assert list(iter_graphemes("🇯🇵🇫")) == ["🇯🇵", "🇫"]

    def test_modifiers_attach(self):
        assert list(iter_graphemes(f"x{THUMBS}{E_ACUTE}{HEART}")) == [
            "x", THUMBS, E_ACUTE, HEART,
        ]
