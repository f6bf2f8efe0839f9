"""
Block-level parsing of the card markup.

Only the handful of constructs the card renderer understands are modeled:
headings up to level 3, the ``**`` / ``__`` / ``==`` / ``*`` span markers and
inline ``[IMG:id]`` placeholders.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Union


IMAGE_TOKEN_PATTERN = re.compile(r"\[IMG:([A-Za-z0-9_-]+)\]")
HEADING_PATTERN = re.compile(r"^(#{1,3}) (.+)$")
PAIRED_MARKERS = ("**", "__", "==")
PAIRED_MARKER_PATTERN = re.compile(r"\*\*|__|==")
PARTIAL_IMAGE_TOKEN_PATTERN = re.compile(r"\[(?:I(?:M(?:G(?::[A-Za-z0-9_-]*)?)?)?)?$")
TRAILING_MARKER_RUN_PATTERN = re.compile(r"(=+|_+)$")
OPEN_HEADING_PATTERN = re.compile(r"#{1,3}[ \t\r]*")


@dataclass(frozen=True)
class Paragraph:
    text: str


@dataclass(frozen=True)
class Heading:
    level: int
    text: str


@dataclass(frozen=True)
class Image:
    image_id: str


Block = Union[Paragraph, Heading, Image]


def strip_markup(text: str) -> str:
    """Return ``text`` without span markers and image tokens.

    The result is only meant for measuring visual length. Paired markers are
    removed first so a bold ``**`` is never counted as two italic stars.
    """
    text = IMAGE_TOKEN_PATTERN.sub("", text)
    text = PAIRED_MARKER_PATTERN.sub("", text)
    return text.replace("*", "")


def trim_open_tail(text: str) -> str:
    """Drop a trailing fragment whose meaning depends on the next character.

    A half-typed ``[IMG:`` token, the first half of a ``==`` / ``__`` pair and
    a line holding only ``#`` marks can each turn into something shorter once
    completed, so they are not measured until they are.
    """
    match = PARTIAL_IMAGE_TOKEN_PATTERN.search(text)
    if match:
        text = text[: match.start()]
    run = TRAILING_MARKER_RUN_PATTERN.search(text)
    if run and len(run.group(1)) % 2:
        text = text[:-1]
    line_start = text.rfind("\n") + 1
    for token in IMAGE_TOKEN_PATTERN.finditer(text, line_start):
        line_start = token.end()
    if OPEN_HEADING_PATTERN.fullmatch(text, line_start):
        text = text[:line_start]
    return text


def _split_text_blocks(span: str) -> List[Block]:
    blocks: List[Block] = []
    pending: List[str] = []

    def flush() -> None:
        if pending:
            content = "\n".join(pending).strip()
            if content:
                blocks.append(Paragraph(text=content))
            pending.clear()

    for line in span.split("\n"):
        line = line.rstrip("\r")
        if not line.strip():
            flush()
            continue
        heading_match = HEADING_PATTERN.match(line)
        if heading_match and heading_match.group(2).strip():
            flush()
            blocks.append(
                Heading(
                    level=len(heading_match.group(1)),
                    text=heading_match.group(2).strip(),
                )
            )
            continue
        pending.append(line)
    flush()
    return blocks


def parse_blocks(text: str) -> List[Block]:
    """Segment ``text`` into paragraphs, headings and images in document order."""
    blocks: List[Block] = []
    last_index = 0
    for match in IMAGE_TOKEN_PATTERN.finditer(text):
        if match.start() > last_index:
            blocks.extend(_split_text_blocks(text[last_index : match.start()]))
        blocks.append(Image(image_id=match.group(1)))
        last_index = match.end()
    if last_index < len(text):
        blocks.extend(_split_text_blocks(text[last_index:]))
    return blocks


def collect_image_ids(text: str) -> List[str]:
    """Return the distinct image ids referenced in ``text``, first use first."""
    seen: List[str] = []
    for match in IMAGE_TOKEN_PATTERN.finditer(text):
        if match.group(1) not in seen:
            seen.append(match.group(1))
    return seen
