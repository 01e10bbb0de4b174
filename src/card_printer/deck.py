"""Deck documents: loading, saving, merging and undoable editing."""
from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .errors import DeckError
from .geometry import CARD_PRESETS, ORIENTATIONS, PAGE_SIZES
from .models import Card, CropMode, FlipMode, PrintSettings, SideMode


@dataclass
class Deck:
    """The boundary shape exchanged with deck storage."""

    cards: List[Card] = field(default_factory=list)
    back_src: Optional[str] = None
    settings: PrintSettings = field(default_factory=PrintSettings)


def _to_float(value: Any, name: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise DeckError(f"Setting {name!r} must be a number, got {value!r}") from e


def _to_enum(enum_cls, value: Any, name: str):
    try:
        return enum_cls(value)
    except ValueError as e:
        allowed = ", ".join(m.value for m in enum_cls)
        raise DeckError(f"Setting {name!r} must be one of {allowed}, got {value!r}") from e


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("on", "true", "yes", "1")
    return bool(value)


def settings_from_dict(data: Mapping[str, Any], base: Optional[PrintSettings] = None) -> PrintSettings:
    """
    Build settings from a deck ``settings`` block.

    Keys use the deck document spelling (``cardW``, ``pageSize``, ...).
    Missing keys keep the value from `base`; unknown keys are ignored.
    Explicit ``cardW``/``cardH`` win over the preset size.

    Raises:
        DeckError: If a value cannot be interpreted
    """
    if not isinstance(data, Mapping):
        raise DeckError(f"Deck settings must be a JSON object, got {type(data).__name__}.")
    s = base or PrintSettings()
    changes: Dict[str, Any] = {}

    preset = data.get("cardPreset")
    if preset:
        changes["card_preset"] = str(preset)
        if preset in CARD_PRESETS:
            changes["card_width_mm"], changes["card_height_mm"] = CARD_PRESETS[preset]
    if data.get("cardW") not in (None, ""):
        changes["card_width_mm"] = _to_float(data["cardW"], "cardW")
    if data.get("cardH") not in (None, ""):
        changes["card_height_mm"] = _to_float(data["cardH"], "cardH")

    if data.get("pageSize"):
        page_size = str(data["pageSize"]).lower()
        if page_size not in PAGE_SIZES:
            raise DeckError(f"Unknown page size: {data['pageSize']!r}")
        changes["page_size"] = page_size
    if data.get("orientation"):
        if data["orientation"] not in ORIENTATIONS:
            raise DeckError(f"Unknown orientation: {data['orientation']!r}")
        changes["orientation"] = data["orientation"]

    for key, attr in (("margin", "margin_mm"), ("gap", "gap_mm"), ("bleed", "bleed_mm")):
        if data.get(key) not in (None, ""):
            changes[attr] = _to_float(data[key], key)

    if data.get("cropMarks"):
        changes["crop_marks"] = _to_enum(CropMode, data["cropMarks"], "cropMarks")
    if data.get("autoFit") is not None:
        changes["auto_fit"] = _to_bool(data["autoFit"])
    if data.get("frontBackMode"):
        changes["side_mode"] = _to_enum(SideMode, data["frontBackMode"], "frontBackMode")
    if data.get("backFlipMode"):
        changes["flip_mode"] = _to_enum(FlipMode, data["backFlipMode"], "backFlipMode")
    if data.get("fileName"):
        changes["file_name"] = str(data["fileName"])

    return replace(s, **changes)


def settings_to_dict(settings: PrintSettings) -> Dict[str, Any]:
    return {
        "cardPreset": settings.card_preset,
        "cardW": settings.card_width_mm,
        "cardH": settings.card_height_mm,
        "pageSize": settings.page_size,
        "orientation": settings.orientation,
        "margin": settings.margin_mm,
        "gap": settings.gap_mm,
        "bleed": settings.bleed_mm,
        "cropMarks": settings.crop_marks.value,
        "autoFit": "on" if settings.auto_fit else "off",
        "frontBackMode": settings.side_mode.value,
        "backFlipMode": settings.flip_mode.value,
        "fileName": settings.file_name,
    }


def card_from_dict(data: Mapping[str, Any]) -> Card:
    if not isinstance(data, Mapping):
        raise DeckError(f"Card entry must be a JSON object, got {data!r}")
    src = data.get("src")
    if not src:
        raise DeckError(f"Card entry without 'src': {dict(data)!r}")
    try:
        qty = int(data.get("qty", 1) or 1)
    except (TypeError, ValueError) as e:
        raise DeckError(f"Card quantity must be an integer, got {data.get('qty')!r}") from e
    card_id = data.get("cardId")
    return Card(
        src=str(src),
        quantity=max(1, qty),
        name=str(data.get("name") or ""),
        external=bool(data.get("external", False)),
        card_id=str(card_id) if card_id else None,
    )


def card_to_dict(card: Card) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "name": card.name,
        "src": card.src,
        "qty": card.quantity,
        "external": card.external,
    }
    if card.card_id:
        data["cardId"] = card.card_id
    return data


def deck_from_dict(data: Mapping[str, Any]) -> Deck:
    if not isinstance(data, Mapping):
        raise DeckError("Deck document must be a JSON object.")
    entries = data.get("cards") or []
    if not isinstance(entries, list):
        raise DeckError("Deck 'cards' must be a JSON array.")
    cards = [card_from_dict(entry) for entry in entries]
    return Deck(
        cards=cards,
        back_src=data.get("backImage") or None,
        settings=settings_from_dict(data.get("settings") or {}),
    )


def deck_to_dict(deck: Deck) -> Dict[str, Any]:
    return {
        "cards": [card_to_dict(card) for card in deck.cards],
        "backImage": deck.back_src,
        "settings": settings_to_dict(deck.settings),
    }


def load_deck(path: Path) -> Deck:
    """
    Read a deck document from a JSON file.

    Relative local card paths are resolved against the deck file's folder.

    Raises:
        DeckError: If the file is not valid JSON or not a deck document
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise DeckError(f"{path.name} is not valid JSON: {e}") from e
    deck = deck_from_dict(data)
    base = path.resolve().parent
    deck.cards = [replace(card, src=_resolve_local(card.src, base)) for card in deck.cards]
    if deck.back_src:
        deck.back_src = _resolve_local(deck.back_src, base)
    return deck


def save_deck(deck: Deck, path: Path) -> Path:
    """
    Write a deck document as JSON.

    Local card paths inside the deck file's folder are stored relative to
    it, so `load_deck` resolves them again wherever the folder is moved.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    base = path.resolve().parent
    data = deck_to_dict(deck)
    for entry in data["cards"]:
        entry["src"] = _relative_local(entry["src"], base)
    if data["backImage"]:
        data["backImage"] = _relative_local(data["backImage"], base)
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    return path


def merge_decks(target: Deck, source: Deck) -> Tuple[Deck, int]:
    """
    Append the cards of `source` whose ``src`` is not already in `target`.

    The target keeps its own back image and settings when it has them.

    Returns:
        Tuple of (merged deck, number of cards added)
    """
    existing = {card.src for card in target.cards}
    additions = [card for card in source.cards if card.src not in existing]
    merged = Deck(
        cards=list(target.cards) + additions,
        back_src=target.back_src or source.back_src,
        settings=target.settings,
    )
    return merged, len(additions)


def _resolve_local(src: str, base: Path) -> str:
    if src.startswith("data:") or "://" in src:
        return src
    path = Path(src).expanduser()
    if not path.is_absolute():
        path = base / path
    return str(path)


def _relative_local(src: str, base: Path) -> str:
    if src.startswith("data:") or "://" in src:
        return src
    path = Path(src)
    if not path.is_absolute():
        return src
    try:
        return path.relative_to(base).as_posix()
    except ValueError:
        return src


@dataclass
class _Command:
    label: str
    undo: Callable[[], None]


class EditHistory:
    """
    Card list editing with command-pattern undo.

    Each edit records its inverse operation; `undo` replays the inverse of
    the most recent edit.
    """

    def __init__(self, cards: Sequence[Card] = ()) -> None:
        self.cards: List[Card] = list(cards)
        self._commands: List[_Command] = []

    @property
    def can_undo(self) -> bool:
        return bool(self._commands)

    def snapshot(self) -> Tuple[Card, ...]:
        return tuple(self.cards)

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self.cards):
            raise DeckError(f"No card at position {index}.")

    def add(self, card: Card, index: Optional[int] = None) -> None:
        position = len(self.cards) if index is None else max(0, min(index, len(self.cards)))
        self.cards.insert(position, card)
        self._commands.append(_Command("add", lambda: self.cards.pop(position)))

    def remove(self, index: int) -> Card:
        self._check_index(index)
        card = self.cards.pop(index)
        self._commands.append(_Command("remove", lambda: self.cards.insert(index, card)))
        return card

    def set_quantity(self, index: int, quantity: int) -> None:
        self._check_index(index)
        previous = self.cards[index]
        self.cards[index] = replace(previous, quantity=max(1, int(quantity)))

        def restore() -> None:
            self.cards[index] = previous

        self._commands.append(_Command("quantity", restore))

    def increment(self, index: int) -> None:
        self._check_index(index)
        self.set_quantity(index, self.cards[index].quantity + 1)

    def decrement(self, index: int) -> None:
        self._check_index(index)
        self.set_quantity(index, self.cards[index].quantity - 1)

    def move(self, source: int, target: int) -> None:
        self._check_index(source)
        self._check_index(target)
        card = self.cards.pop(source)
        self.cards.insert(target, card)

        def restore() -> None:
            self.cards.insert(source, self.cards.pop(target))

        self._commands.append(_Command("move", restore))

    def undo(self) -> str:
        """
        Revert the most recent edit.

        Returns:
            Label of the reverted edit

        Raises:
            DeckError: If there is nothing to undo
        """
        if not self._commands:
            raise DeckError("Nothing to undo.")
        command = self._commands.pop()
        command.undo()
        return command.label
