"""Quantity expansion: unique cards -> flat print sequence."""
from __future__ import annotations

from typing import List, Sequence

from .models import Card, PrintSlot


def expand_cards(cards: Sequence[Card]) -> List[PrintSlot]:
    """
    Repeat every card `quantity` times, keeping list order.

    All copies of one card are contiguous. Quantities below 1 count as 1.

    Args:
        cards: Ordered card list

    Returns:
        One PrintSlot per physical print position
    """
    slots: List[PrintSlot] = []
    for card in cards:
        for _ in range(max(1, int(card.quantity))):
            slots.append(PrintSlot(index=len(slots), card=card))
    return slots


def count_unique(cards: Sequence[Card]) -> int:
    return len(cards)


def count_total(cards: Sequence[Card]) -> int:
    """Total number of prints, using the same clamping as `expand_cards`."""
    return sum(max(1, int(card.quantity)) for card in cards)
