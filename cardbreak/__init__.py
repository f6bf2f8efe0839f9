"""
Pagination engine for turning a long marked-up document into fixed-size cards.

The command-line entry point is :func:`main`; the engine itself lives in
:mod:`cardbreak.pagination` and :mod:`cardbreak.cards`.
"""

from .cards import Card, split_to_cards
from .cli import main
from .layout import ImageMeta, Typography
from .pagination import (
    calculate_optimal_page_breaks,
    insert_page_breaks,
    recalculate_page_breaks,
    remove_page_breaks,
)

__all__ = [
    "Card",
    "ImageMeta",
    "Typography",
    "calculate_optimal_page_breaks",
    "insert_page_breaks",
    "main",
    "recalculate_page_breaks",
    "remove_page_breaks",
    "split_to_cards",
]
