"""Tests for cut search, break placement and break serialization."""
from __future__ import annotations

import random

import pytest

from cardbreak.cards import split_to_cards
from cardbreak.layout import (
    CONTENT_HEIGHT,
    ImageMeta,
    Typography,
    estimate_height,
    estimate_prefix_height,
)
from cardbreak.pagination import (
    PaginationTuning,
    calculate_optimal_page_breaks,
    collect_candidate_cuts,
    find_best_cut,
    find_max_fitting_cut,
    insert_page_breaks,
    is_safe_cut,
    make_safe_cut,
    recalculate_page_breaks,
    remove_page_breaks,
)


DEFAULT = Typography()


def _paragraph_document(count: int = 10) -> str:
    # 60 chars -> 3 wrapped lines; four of these fill a card
    return "\n\n".join(chr(65 + i) * 60 for i in range(count))


def _latin_run(length: int = 3000) -> str:
    return ("lorem ipsum dolor sit amet " * 200)[:length]


def _squash(text: str) -> str:
    return "".join(text.split())


WORDS = ("card", "page", "margin", "layout", "preview", "image", "break", "line", "font")
IMAGE_META = {
    "pic0": ImageMeta(width=800, height=600),
    "pic1": ImageMeta(width=1760, height=440),
}
TYPOGRAPHIES = (
    DEFAULT,
    Typography(font_size=60, line_height=2.5),
    Typography(font_size=36, line_height=2.0, paragraph_spacing=1.5, letter_spacing=0.1),
)


def _mixed_word(rng: random.Random) -> str:
    word = rng.choice(WORDS)
    style = rng.random()
    if style < 0.05:
        return f"**{word}**"
    if style < 0.10:
        return f"__{word}__"
    if style < 0.15:
        return f"=={word}=="
    if style < 0.20:
        return f"*{word}*"
    if style < 0.23:
        return f"[IMG:pic{rng.randint(0, 3)}]"
    if style < 0.33:
        return word + "."
    return word


def _mixed_document(rng: random.Random) -> str:
    """Headings, block and inline images, span markers and CJK sentences."""
    parts = []
    for _ in range(rng.randint(8, 16)):
        roll = rng.random()
        if roll < 0.2:
            title = " ".join(rng.choice(WORDS) for _ in range(rng.randint(1, 4)))
            parts.append("#" * rng.randint(1, 3) + " " + title)
        elif roll < 0.35:
            parts.append(f"[IMG:pic{rng.randint(0, 3)}]")
        else:
            words = [_mixed_word(rng) for _ in range(rng.randint(4, 40))]
            if rng.random() < 0.2:
                words.append("这是测试句子。" * rng.randint(1, 3))
            parts.append("".join(word + rng.choice(" " * 19 + "\n") for word in words))
    return "".join(part.strip() + rng.choice(("\n", "\n\n")) for part in parts)


class TestSafety:
    def test_paired_markers_are_unsafe(self):
        assert not is_safe_cut("a**b", 2)
        assert not is_safe_cut("a==b", 2)
        assert not is_safe_cut("a__b", 2)
        assert is_safe_cut("a**b", 1)

    def test_inside_image_token_is_unsafe(self):
        text = "x [IMG:pic] y"
        assert not is_safe_cut(text, 5)
        assert is_safe_cut(text, 2)
        assert is_safe_cut(text, 11)

    def test_out_of_range_is_unsafe(self):
        assert not is_safe_cut("abc", 0)
        assert not is_safe_cut("abc", 3)
        assert not is_safe_cut("abc", 10)

    def test_make_safe_moves_back_out_of_image(self):
        assert make_safe_cut("abc [IMG:pic] def", 8) == 4

    def test_make_safe_moves_forward_when_image_opens_buffer(self):
        assert make_safe_cut("[IMG:pic] def", 3) == 9

    def test_make_safe_marker_pairs(self):
        assert make_safe_cut("ab**cd**", 3) == 2
        assert make_safe_cut("**cd", 1) == 2
        assert make_safe_cut("ab***cd", 4) == 2

    def test_make_safe_keeps_safe_offsets(self):
        assert make_safe_cut("hello world", 5) == 5


class TestCandidateCuts:
    def test_cjk_terminators(self):
        assert collect_candidate_cuts("第一句。第二句！第三", 0, 10) == [4, 8]

    def test_latin_terminator_needs_whitespace(self):
        assert collect_candidate_cuts("One. Two.Three", 0, 14) == [4]

    def test_paragraph_and_line_breaks_deduplicated(self):
        assert collect_candidate_cuts("a\n\nb", 0, 4) == [2, 3]

    def test_window_bounds(self):
        assert collect_candidate_cuts("a. b. c. d.", 3, 7) == [5]


class TestFindCut:
    def test_whole_buffer_fits(self):
        assert find_best_cut("short text", DEFAULT) == len("short text")

    def test_max_fitting_cut_is_clamped_to_progress(self):
        assert find_max_fitting_cut("x" * 100, 1, DEFAULT) == 1
        tuning = PaginationTuning(min_progress=5)
        assert find_max_fitting_cut("x" * 100, 1, DEFAULT, tuning=tuning) == 5

    def test_max_fitting_cut_fills_fifteen_lines(self):
        # 15 lines of 22 chars plus paragraph spacing fit in 1200px
        assert find_max_fitting_cut("x" * 1000, CONTENT_HEIGHT, DEFAULT) == 330

    def test_prefers_paragraph_boundary(self):
        assert find_best_cut(_paragraph_document(), DEFAULT) == 248

    def test_falls_back_when_boundary_wastes_space(self):
        buffer = "x" * 22 + "\n\n" + "y" * 400
        wide = PaginationTuning(window_char_cap=400)
        assert find_best_cut(buffer, DEFAULT, tuning=wide) == 310
        lenient = PaginationTuning(window_char_cap=400, fill_tolerance=0.0)
        assert find_best_cut(buffer, DEFAULT, tuning=lenient) == 24

    def test_cjk_sentence_end_preferred(self):
        text = "这是一个测试句子。" * 100
        assert find_best_cut(text, DEFAULT) == 324


class TestCalculateBreaks:
    def test_paragraph_document(self):
        assert calculate_optimal_page_breaks(_paragraph_document(), DEFAULT) == [248, 496]

    def test_cjk_breaks_follow_terminators(self):
        text = "这是一个测试句子。" * 100
        breaks = calculate_optimal_page_breaks(text, DEFAULT)
        assert breaks == [324, 648]
        assert all(text[offset - 1] == "。" for offset in breaks)

    def test_short_document_needs_no_breaks(self):
        assert calculate_optimal_page_breaks("short\n\n---\n\ntext", DEFAULT) == []
        assert calculate_optimal_page_breaks("", DEFAULT) == []
        assert calculate_optimal_page_breaks("   \n\n  ", DEFAULT) == []

    def test_long_latin_paragraph(self):
        text = _latin_run()
        assert estimate_height(text, DEFAULT) > CONTENT_HEIGHT
        breaks = calculate_optimal_page_breaks(text, DEFAULT)
        assert len(breaks) >= 1
        for card in split_to_cards(insert_page_breaks(text, breaks)):
            assert estimate_height(card.text, DEFAULT) <= CONTENT_HEIGHT

    def test_unbroken_run_terminates(self):
        text = "x" * 5000
        breaks = calculate_optimal_page_breaks(text, DEFAULT)
        assert 0 < len(breaks) < len(text)
        assert all(a < b for a, b in zip(breaks, breaks[1:]))
        assert breaks[0] > 0 and breaks[-1] < len(text)

    def test_offsets_are_safe(self):
        paragraph = (
            "Some **bold words** and ==marked text== here, then __more__ "
            "text with *emphasis* follows on [IMG:inline] until the end."
        )
        parts = []
        for index in range(12):
            parts.append(paragraph)
            if index % 3 == 1:
                parts.append(f"[IMG:img{index}]")
        text = "\n\n".join(parts)
        meta = {"img1": ImageMeta(width=800, height=600)}
        breaks = calculate_optimal_page_breaks(text, DEFAULT, meta)
        document = remove_page_breaks(text)
        assert breaks
        assert all(is_safe_cut(document, offset) for offset in breaks)
        assert all(a < b for a, b in zip(breaks, breaks[1:]))

    def test_deterministic(self):
        text = _latin_run() + "\n\n" + "这是一个测试句子。" * 80
        first = calculate_optimal_page_breaks(text, DEFAULT)
        second = calculate_optimal_page_breaks(text, DEFAULT)
        assert first == second

    def test_larger_font_needs_more_breaks(self):
        text = _latin_run()
        small = calculate_optimal_page_breaks(text, Typography(font_size=32))
        large = calculate_optimal_page_breaks(text, Typography(font_size=60))
        assert len(large) > len(small)

    def test_debug_output(self, capsys):
        calculate_optimal_page_breaks(_paragraph_document(), DEFAULT, debug=True)
        out = capsys.readouterr().out
        assert "[DEBUG] Break 1 at offset 248" in out
        assert "[DEBUG] Placed 2 page breaks" in out


class TestSerialization:
    def test_insert_single_break(self):
        assert insert_page_breaks("Hello world", [6]) == "Hello\n\n---\n\nworld"

    def test_insert_ignores_invalid_offsets(self):
        assert insert_page_breaks("Hello world", [0, 99, 6, 6]) == "Hello\n\n---\n\nworld"

    def test_insert_uses_original_coordinates(self):
        result = insert_page_breaks("aa bb cc", [3, 6])
        assert result == "aa\n\n---\n\nbb\n\n---\n\ncc"

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("A\n\n---\n\nB", "A\n\nB"),
            ("A\n  ---\t\nB", "A\nB"),
            ("A\n\n\n\n\nB", "A\n\nB"),
            ("A\n\n\nB", "A\n\nB"),
            ("A\n\nB", "A\n\nB"),
            ("A\n\n---\n\n---\n\nB", "A\n\nB"),
            ("a --- b", "a --- b"),
        ],
    )
    def test_remove(self, text, expected):
        assert remove_page_breaks(text) == expected

    def test_round_trip(self):
        for text in (_paragraph_document(), _latin_run(), "这是一个测试句子。" * 100):
            document = remove_page_breaks(text)
            offsets = calculate_optimal_page_breaks(document, DEFAULT)
            restored = remove_page_breaks(insert_page_breaks(document, offsets))
            assert _squash(restored) == _squash(document)

    def test_coverage(self):
        document = _paragraph_document(14)
        offsets = calculate_optimal_page_breaks(document, DEFAULT)
        cards = split_to_cards(insert_page_breaks(document, offsets))
        assert len(cards) == len(offsets) + 1

    def test_recalculate_is_fixed_point(self):
        for text in (_paragraph_document(), _latin_run()):
            once = recalculate_page_breaks(text, DEFAULT)
            twice = recalculate_page_breaks(once, DEFAULT)
            assert once == twice

    def test_recalculate_reflows_existing_breaks(self):
        text = "A" * 60 + "\n\n---\n\n" + _paragraph_document()
        result = recalculate_page_breaks(text, DEFAULT)
        assert result.startswith("A" * 60 + "\n\n" + "A" * 60)
        assert len(split_to_cards(result)) == 3


class TestMixedDocuments:
    def test_image_page_is_not_pulled_back_to_a_short_line(self):
        text = "Hi\n[IMG:a] [IMG:a] " + "lorem ipsum " * 100
        breaks = calculate_optimal_page_breaks(text, DEFAULT)
        assert breaks[0] == 19
        once = recalculate_page_breaks(text, DEFAULT)
        assert split_to_cards(once)[0].text == "Hi\n[IMG:a] [IMG:a]"
        assert recalculate_page_breaks(once, DEFAULT) == once

    def test_sentence_end_judged_against_reflowed_page(self):
        # the sentence end leaves 12 lines; once broken there, the rest starts
        # a paragraph that fits one more line, so the length cut is kept
        buffer = "# Title\n" + "x" * 263 + ". " + "y" * 100
        assert find_best_cut(buffer, DEFAULT) == 294
        once = recalculate_page_breaks(buffer, DEFAULT)
        assert recalculate_page_breaks(once, DEFAULT) == once

    @pytest.mark.parametrize("seed", range(6))
    def test_prefix_height_never_drops(self, seed):
        rng = random.Random(seed)
        document = _mixed_document(rng)
        typography = rng.choice(TYPOGRAPHIES)
        previous = 0.0
        for end in range(len(document) + 1):
            height = estimate_prefix_height(document, end, typography, IMAGE_META)
            assert height >= previous - 1e-9, repr(document[:end])
            previous = height

    @pytest.mark.parametrize("seed", range(12))
    def test_recalculate_is_fixed_point(self, seed):
        rng = random.Random(1000 + seed)
        text = "\n\n".join(_mixed_document(rng) for _ in range(3))
        typography = TYPOGRAPHIES[seed % len(TYPOGRAPHIES)]
        document = remove_page_breaks(text)
        offsets = calculate_optimal_page_breaks(document, typography, IMAGE_META)
        assert all(is_safe_cut(document, offset) for offset in offsets)

        once = insert_page_breaks(document, offsets)
        assert once == recalculate_page_breaks(text, typography, IMAGE_META)
        cards = split_to_cards(once)
        assert len(cards) == len(offsets) + 1
        for card in cards:
            assert estimate_height(card.text, typography, IMAGE_META) <= CONTENT_HEIGHT
        assert recalculate_page_breaks(once, typography, IMAGE_META) == once
