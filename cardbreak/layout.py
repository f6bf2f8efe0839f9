"""
Approximate card layout metrics.

Heights are derived from character counts instead of a real text shaper, so
the numbers track the preview renderer closely for CJK-heavy text and
loosely for proportional Latin text.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .markup import (
    Block,
    Heading,
    Image,
    Paragraph,
    parse_blocks,
    strip_markup,
    trim_open_tail,
)


CARD_CANVAS = (1080, 1440)
CARD_PADDING = (100, 120)
CONTENT_WIDTH = CARD_CANVAS[0] - CARD_PADDING[0] * 2
CONTENT_HEIGHT = CARD_CANVAS[1] - CARD_PADDING[1] * 2
MAX_IMAGE_HEIGHT = 520
IMAGE_MARGIN_EM = 0.8
DEFAULT_IMAGE_RATIO = 9 / 16
BASE_CHAR_EM = 0.85

DEFAULT_FONT_SIZE = 44
DEFAULT_LINE_HEIGHT = 1.7
DEFAULT_PARAGRAPH_SPACING = 1.2
DEFAULT_LETTER_SPACING = 0.05

FONT_SIZE_RANGE = (32, 60)
LINE_HEIGHT_RANGE = (1.2, 2.5)
PARAGRAPH_SPACING_RANGE = (0.5, 3.0)

# level -> (font scale, line height, margin top em, margin bottom em)
HEADING_METRICS: Dict[int, Tuple[float, float, float, float]] = {
    1: (1.5, 1.3, 0.9, 0.5),
    2: (1.25, 1.4, 0.8, 0.45),
    3: (1.1, 1.5, 0.7, 0.4),
}


@dataclass(frozen=True)
class Typography:
    font_size: float = DEFAULT_FONT_SIZE
    line_height: float = DEFAULT_LINE_HEIGHT
    paragraph_spacing: float = DEFAULT_PARAGRAPH_SPACING
    letter_spacing: float = DEFAULT_LETTER_SPACING

    def __post_init__(self) -> None:
        if self.font_size <= 0:
            raise ValueError(f"Font size must be positive, got {self.font_size}")
        if self.line_height <= 0:
            raise ValueError(f"Line height must be positive, got {self.line_height}")
        if self.paragraph_spacing < 0:
            raise ValueError(
                f"Paragraph spacing must not be negative, got {self.paragraph_spacing}"
            )
        if self.letter_spacing < 0:
            raise ValueError(
                f"Letter spacing must not be negative, got {self.letter_spacing}"
            )

    def clamped(self) -> "Typography":
        """Return a copy limited to the ranges offered by the editor controls."""

        def clamp(value: float, bounds: Tuple[float, float]) -> float:
            return min(max(value, bounds[0]), bounds[1])

        return Typography(
            font_size=clamp(self.font_size, FONT_SIZE_RANGE),
            line_height=clamp(self.line_height, LINE_HEIGHT_RANGE),
            paragraph_spacing=clamp(self.paragraph_spacing, PARAGRAPH_SPACING_RANGE),
            letter_spacing=self.letter_spacing,
        )


@dataclass(frozen=True)
class ImageMeta:
    width: int
    height: int


ImageMetaMap = Mapping[str, ImageMeta]


def chars_per_line(font_px: float, letter_spacing_em: float) -> int:
    glyph_width = font_px * (BASE_CHAR_EM + letter_spacing_em)
    return max(1, int(math.floor(CONTENT_WIDTH / glyph_width)))


def _wrapped_line_count(text: str, per_line: int) -> int:
    count = 0
    for line in strip_markup(text).split("\n"):
        if line.strip():
            count += math.ceil(len(line) / per_line)
    return count


def _image_height(image_id: str, image_meta: Optional[ImageMetaMap]) -> float:
    meta = image_meta.get(image_id) if image_meta else None
    if meta is not None and meta.width > 0 and meta.height > 0:
        ratio = meta.height / meta.width
    else:
        ratio = DEFAULT_IMAGE_RATIO
    return min(CONTENT_WIDTH * ratio, MAX_IMAGE_HEIGHT)


def block_metrics(
    block: Block,
    typography: Typography,
    is_first: bool = False,
    image_meta: Optional[ImageMetaMap] = None,
) -> Tuple[float, float, float]:
    """Return ``(margin_top, height, margin_bottom)`` in pixels for one block."""
    font_size = typography.font_size
    if isinstance(block, Paragraph):
        per_line = chars_per_line(font_size, typography.letter_spacing)
        lines = _wrapped_line_count(block.text, per_line)
        height = lines * font_size * typography.line_height
        return 0.0, height, typography.paragraph_spacing * font_size
    if isinstance(block, Heading):
        scale, line_height, top_em, bottom_em = HEADING_METRICS[block.level]
        heading_px = font_size * scale
        per_line = chars_per_line(heading_px, typography.letter_spacing)
        lines = _wrapped_line_count(block.text, per_line)
        height = lines * heading_px * line_height
        margin_top = 0.0 if is_first else top_em * heading_px
        return margin_top, height, bottom_em * heading_px
    if isinstance(block, Image):
        margin = IMAGE_MARGIN_EM * font_size
        return margin, _image_height(block.image_id, image_meta), margin
    raise TypeError(f"Unsupported block type: {type(block).__name__}")


def estimate_blocks_height(
    blocks: Sequence[Block],
    typography: Typography,
    image_meta: Optional[ImageMetaMap] = None,
) -> float:
    """Stack blocks vertically with collapsed margins between neighbours."""
    total = 0.0
    previous_bottom: Optional[float] = None
    for index, block in enumerate(blocks):
        margin_top, height, margin_bottom = block_metrics(
            block, typography, is_first=index == 0, image_meta=image_meta
        )
        if previous_bottom is None:
            total += margin_top
        else:
            total += max(previous_bottom, margin_top)
        total += height
        previous_bottom = margin_bottom
    if previous_bottom is not None:
        total += previous_bottom
    return total


def estimate_height(
    text: str,
    typography: Typography,
    image_meta: Optional[ImageMetaMap] = None,
) -> float:
    blocks = parse_blocks(trim_open_tail(text))
    return estimate_blocks_height(blocks, typography, image_meta)


def estimate_prefix_height(
    text: str,
    end: int,
    typography: Typography,
    image_meta: Optional[ImageMetaMap] = None,
) -> float:
    """Height of ``text[:end]`` as it would render on its own card."""
    end = max(0, min(end, len(text)))
    return estimate_height(text[:end], typography, image_meta)


def describe_blocks(
    text: str,
    typography: Typography,
    image_meta: Optional[ImageMetaMap] = None,
) -> List[Tuple[str, float]]:
    """Per-block ``(label, height)`` pairs, used for debug output."""
    described: List[Tuple[str, float]] = []
    for index, block in enumerate(parse_blocks(text)):
        _, height, _ = block_metrics(
            block, typography, is_first=index == 0, image_meta=image_meta
        )
        if isinstance(block, Heading):
            label = f"h{block.level}"
        elif isinstance(block, Image):
            label = f"img:{block.image_id}"
        else:
            label = "p"
        described.append((label, height))
    return described
