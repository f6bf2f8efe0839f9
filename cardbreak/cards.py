from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .pagination import PAGE_BREAK_PATTERN


@dataclass(frozen=True)
class Card:
    id: str
    text: str
    start_offset: int  # index into the unsplit document

    def to_dict(self) -> dict:
        return {"id": self.id, "text": self.text, "start_offset": self.start_offset}


def new_card_id() -> str:
    return uuid.uuid4().hex[:8]


def _segments(text: str) -> List[Tuple[int, int]]:
    """``(start, end)`` spans of the text between marker lines."""
    spans: List[Tuple[int, int]] = []
    start = 0
    for match in PAGE_BREAK_PATTERN.finditer(text):
        spans.append((start, match.start()))
        start = match.end()
    spans.append((start, len(text)))
    return spans


def split_to_cards(text: str) -> List[Card]:
    """Split a document into cards on explicit ``---`` lines only.

    Always returns at least one card; an empty document yields a single empty
    card at offset 0.
    """
    cards: List[Card] = []
    for index, (start, end) in enumerate(_segments(text)):
        segment = text[start:end]
        trimmed = segment.strip()
        if not trimmed:
            continue
        offset = 0 if index == 0 else start + len(segment) - len(segment.lstrip())
        cards.append(Card(id=new_card_id(), text=trimmed, start_offset=offset))

    if not cards:
        cards.append(Card(id=new_card_id(), text="", start_offset=0))
    return cards


def card_at_offset(cards: Sequence[Card], offset: int) -> Optional[Card]:
    """Return the card whose source range contains ``offset``."""
    found: Optional[Card] = None
    for card in cards:
        if card.start_offset > offset:
            break
        found = card
    if found is None and cards:
        return cards[0]
    return found


def update_card_text(
    text: str, cards: Sequence[Card], card_id: str, new_text: str
) -> Tuple[str, List[Card]]:
    """Replace one card's content in the source document and re-split.

    Card offsets are only meaningful for the split that produced them, so the
    whole card list is rebuilt from the edited document.
    """
    target = next((card for card in cards if card.id == card_id), None)
    if target is None:
        raise KeyError(f"Unknown card id: {card_id}")

    start = target.start_offset
    position = text.find(target.text, start)
    if position == -1:
        raise ValueError(f"Card {card_id} does not match the document; re-split first.")
    end = position + len(target.text)
    updated = text[:position] + new_text.strip() + text[end:]
    return updated, split_to_cards(updated)
