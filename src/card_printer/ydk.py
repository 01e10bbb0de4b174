"""YDK flat text deck interchange.

A YDK file lists one numeric card id per line. Lines starting with ``#``
or ``!`` are comments or section markers (``#main``, ``#extra``,
``!side``); anything else that is not a plain run of digits is ignored.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Sequence

from .errors import DeckError
from .models import Card


YDK_IMAGE_URL = "https://images.ygoprodeck.com/images/cards/{id}.jpg"
YDK_HEADER = "#created by Card Printer Pro"


@dataclass(frozen=True)
class YdkEntry:
    card_id: str
    quantity: int


def parse_ydk_text(text: str) -> List[YdkEntry]:
    """Count card ids, keeping the order in which each id first appears."""
    counts: Dict[str, int] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or line.startswith("!"):
            continue
        if not (line.isascii() and line.isdigit()):
            continue
        counts[line] = counts.get(line, 0) + 1
    return [YdkEntry(card_id=card_id, quantity=qty) for card_id, qty in counts.items()]


def ydk_image_url(card_id: str) -> str:
    return YDK_IMAGE_URL.format(id=card_id)


def cards_from_ydk_text(text: str) -> List[Card]:
    return [
        Card(
            src=ydk_image_url(entry.card_id),
            quantity=entry.quantity,
            name=f"ID {entry.card_id}",
            external=True,
            card_id=entry.card_id,
        )
        for entry in parse_ydk_text(text)
    ]


def read_ydk(path: Path) -> List[Card]:
    return cards_from_ydk_text(path.read_text(encoding="utf-8"))


def dump_ydk_text(cards: Sequence[Card]) -> str:
    """
    Serialize cards to YDK, one line per printed copy.

    Cards without a card id are skipped.

    Raises:
        DeckError: If no card carries a card id
    """
    with_ids = [card for card in cards if card.card_id]
    if not with_ids:
        raise DeckError("No cards with a YDK card id to export.")

    lines = [YDK_HEADER, "#main"]
    for card in with_ids:
        lines.extend([card.card_id] * max(1, card.quantity))
    lines.extend(["#extra", "!side"])
    return "\n".join(lines)


def write_ydk(cards: Sequence[Card], path: Path) -> Path:
    path.write_text(dump_ydk_text(cards), encoding="utf-8")
    return path
