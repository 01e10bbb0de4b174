"""Exception types raised by card_printer."""
from __future__ import annotations


class CardPrinterError(Exception):
    """Base class for all card_printer errors."""


class ExportPreconditionError(CardPrinterError, ValueError):
    """The export job cannot start (empty deck, missing back image, ...)."""


class GeometryError(CardPrinterError, ValueError):
    """A card box cannot be placed on the page without leaving it."""


class ImageNormalizationError(CardPrinterError):
    """A single image source could not be fetched, decoded or re-encoded."""

    def __init__(self, key: str, message: str) -> None:
        super().__init__(f"{key}: {message}")
        self.key = key
        self.message = message


class DeckError(CardPrinterError):
    """A deck document or deck edit is invalid."""
