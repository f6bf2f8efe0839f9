"""
Page-break placement for card documents.

The search works on plain offsets into the document. A break is first placed
as far down the page as the height budget allows, then pulled back to a
paragraph, sentence or line boundary when doing so does not waste too much of
the card.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .layout import CONTENT_HEIGHT, ImageMetaMap, Typography, estimate_height
from .markup import IMAGE_TOKEN_PATTERN, PAIRED_MARKERS


PAGE_BREAK_LINE = "---"
PAGE_BREAK_PATTERN = re.compile(r"^[ \t]*---[ \t]*$", flags=re.MULTILINE)
PAGE_BREAK_LINE_PATTERN = re.compile(r"^[ \t]*---[ \t]*(?:\r?\n|$)", flags=re.MULTILINE)
# two or more blank lines in a row; a single blank line is left alone
EXCESS_BLANK_LINES_PATTERN = re.compile(r"\n(?:[ \t]*\n){2,}")

PARAGRAPH_BOUNDARY_PATTERN = re.compile(r"\n(?:[ \t]*\n)+")
CJK_SENTENCE_END_PATTERN = re.compile(r"[。！？；…]+[”’」』）)]*")
LATIN_SENTENCE_END_PATTERN = re.compile(r"[.!?;]+[\"')\]]*(?=\s|$)")
LINE_BREAK_PATTERN = re.compile(r"\n")


@dataclass(frozen=True)
class PaginationTuning:
    """Empirical knobs for the cut search."""

    fill_tolerance: float = 0.92
    early_stop_ratio: float = 0.985
    window_ratio: float = 0.30
    window_char_cap: int = 200
    min_progress: int = 1
    snap_distance: int = 24


DEFAULT_TUNING = PaginationTuning()


def _fits(
    buffer: str,
    end: int,
    budget: float,
    typography: Typography,
    image_meta: Optional[ImageMetaMap],
) -> bool:
    return estimate_height(buffer[:end], typography, image_meta) <= budget


def is_safe_cut(text: str, offset: int) -> bool:
    """True when ``offset`` splits neither an image token nor a paired marker."""
    if offset <= 0 or offset >= len(text):
        return False
    if text[offset - 1 : offset + 1] in PAIRED_MARKERS:
        return False
    for match in IMAGE_TOKEN_PATTERN.finditer(text):
        if match.start() >= offset:
            break
        if match.start() < offset < match.end():
            return False
    return True


def make_safe_cut(text: str, offset: int) -> int:
    """Move ``offset`` out of an image token or paired marker.

    The cut moves back to the start of the token when that still leaves
    content on the page, otherwise forward past it.
    """
    if offset <= 0 or offset >= len(text):
        return offset
    for match in IMAGE_TOKEN_PATTERN.finditer(text):
        if match.start() >= offset:
            break
        if match.start() < offset < match.end():
            if text[: match.start()].strip():
                offset = match.start()
            else:
                offset = match.end()
            break
    if 0 < offset < len(text) and text[offset - 1 : offset + 1] in PAIRED_MARKERS:
        backward = offset
        while backward > 0 and text[backward - 1 : backward + 1] in PAIRED_MARKERS:
            backward -= 1
        if text[:backward].strip():
            return backward
        while offset < len(text) and text[offset - 1 : offset + 1] in PAIRED_MARKERS:
            offset += 1
    return offset


def find_max_fitting_cut(
    buffer: str,
    budget: float,
    typography: Typography,
    image_meta: Optional[ImageMetaMap] = None,
    tuning: PaginationTuning = DEFAULT_TUNING,
) -> int:
    """Largest prefix length of ``buffer`` whose estimated height fits ``budget``."""
    low, high = 0, len(buffer)
    while low < high:
        middle = (low + high + 1) // 2
        if _fits(buffer, middle, budget, typography, image_meta):
            low = middle
        else:
            high = middle - 1
    return min(len(buffer), max(low, tuning.min_progress))


def collect_candidate_cuts(text: str, start: int, end: int) -> List[int]:
    """Natural break offsets in ``(start, end]``, ascending and deduplicated."""
    patterns = (
        PARAGRAPH_BOUNDARY_PATTERN,
        CJK_SENTENCE_END_PATTERN,
        LATIN_SENTENCE_END_PATTERN,
        LINE_BREAK_PATTERN,
    )
    candidates = set()
    for pattern in patterns:
        for match in pattern.finditer(text, max(0, start - 1)):
            offset = match.end()
            if offset > end:
                break
            if offset > start:
                candidates.add(offset)
    return sorted(candidates)


def _reflow_at(buffer: str, offset: int) -> str:
    """``buffer`` as it reads after a break at ``offset`` is inserted and removed."""
    return f"{buffer[:offset].rstrip()}\n\n{buffer[offset:].lstrip()}"


def find_best_cut(
    buffer: str,
    typography: Typography,
    image_meta: Optional[ImageMetaMap] = None,
    budget: float = CONTENT_HEIGHT,
    tuning: PaginationTuning = DEFAULT_TUNING,
) -> int:
    """Choose where the card that starts at the top of ``buffer`` should end."""
    if estimate_height(buffer.strip(), typography, image_meta) <= budget:
        return len(buffer)

    optimal = find_max_fitting_cut(buffer, budget, typography, image_meta, tuning)
    optimal_height = estimate_height(buffer[:optimal], typography, image_meta)

    window = max(int(optimal * tuning.window_ratio), tuning.window_char_cap)
    window_start = max(0, optimal - window)

    best_offset: Optional[int] = None
    best_height = -1.0
    for candidate in reversed(collect_candidate_cuts(buffer, window_start, optimal)):
        if not is_safe_cut(buffer, candidate):
            continue
        if not buffer[:candidate].strip():
            continue
        height = estimate_height(buffer[:candidate], typography, image_meta)
        if height > budget:
            continue
        if height > best_height:
            best_offset, best_height = candidate, height
        if height >= budget * tuning.early_stop_ratio:
            break

    if best_offset is None:
        return make_safe_cut(buffer, optimal)
    # judge the candidate against the page as it reads once the break is written
    reflowed = _reflow_at(buffer, best_offset)
    reflowed_cut = find_max_fitting_cut(reflowed, budget, typography, image_meta, tuning)
    reflowed_height = estimate_height(reflowed[:reflowed_cut], typography, image_meta)
    if best_height < max(optimal_height, reflowed_height) * tuning.fill_tolerance:
        return make_safe_cut(buffer, optimal)
    return best_offset


def remove_page_breaks(text: str) -> str:
    """Drop break-marker lines and collapse the blank runs they leave behind.

    Three or more consecutive line breaks become one blank line, whether they
    come from a removed marker or were typed that way.
    """
    text = text.replace("\r\n", "\n")
    text = PAGE_BREAK_LINE_PATTERN.sub("", text)
    return EXCESS_BLANK_LINES_PATTERN.sub("\n\n", text)


def _snap_to_line_start(
    text: str,
    cursor: int,
    offset: int,
    typography: Typography,
    image_meta: Optional[ImageMetaMap],
    budget: float,
    tuning: PaginationTuning,
) -> int:
    """Pull ``offset`` back to a nearby line start if the page stays full."""
    newline = text.rfind("\n", max(cursor, offset - tuning.snap_distance), offset)
    if newline == -1:
        return offset
    snapped = newline + 1
    if snapped <= cursor or not text[cursor:snapped].strip():
        return offset
    page_height = estimate_height(text[cursor:snapped], typography, image_meta)
    if page_height < budget * tuning.fill_tolerance:
        return offset
    return snapped


def calculate_optimal_page_breaks(
    text: str,
    typography: Typography,
    image_meta: Optional[ImageMetaMap] = None,
    tuning: PaginationTuning = DEFAULT_TUNING,
    budget: float = CONTENT_HEIGHT,
    debug: bool = False,
) -> List[int]:
    """Return break offsets into ``remove_page_breaks(text)``."""
    document = remove_page_breaks(text)
    breaks: List[int] = []
    cursor = 0

    for _ in range(len(document)):
        while cursor < len(document) and document[cursor].isspace():
            cursor += 1
        if cursor >= len(document):
            break
        remaining = document[cursor:]
        cut = find_best_cut(remaining, typography, image_meta, budget, tuning)
        if cut >= len(remaining):
            break
        offset = _snap_to_line_start(
            document, cursor, cursor + cut, typography, image_meta, budget, tuning
        )
        if debug:
            print(
                f"[DEBUG] Break {len(breaks) + 1} at offset {offset} "
                f"(cut {cursor + cut}, page starts at {cursor})"
            )
        breaks.append(offset)
        cursor = offset

    if debug:
        print(f"[DEBUG] Placed {len(breaks)} page breaks in {len(document)} chars.")
    return breaks


def insert_page_breaks(text: str, offsets: Iterable[int]) -> str:
    """Splice a marker line into ``text`` at every offset."""
    for offset in sorted(set(offsets), reverse=True):
        if offset <= 0 or offset >= len(text):
            continue
        before = text[:offset].rstrip()
        after = text[offset:].lstrip()
        if not before or not after:
            continue
        text = f"{before}\n\n{PAGE_BREAK_LINE}\n\n{after}"
    return text


def recalculate_page_breaks(
    text: str,
    typography: Typography,
    image_meta: Optional[ImageMetaMap] = None,
    tuning: PaginationTuning = DEFAULT_TUNING,
    budget: float = CONTENT_HEIGHT,
    debug: bool = False,
) -> str:
    """Re-flow a document's page breaks for new typography."""
    document = remove_page_breaks(text)
    offsets = calculate_optimal_page_breaks(
        document, typography, image_meta, tuning, budget, debug=debug
    )
    return insert_page_breaks(document, offsets)
