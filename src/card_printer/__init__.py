"""
Package initialization for card_printer.

This package lays card images out on print-ready sheets (front, back or
duplex) with crop marks, bleed and auto-fit, and writes them as PDF or DOCX.

Modules:
    - expander: quantity expansion into a flat print sequence
    - geometry: page sizes, card box and auto-fit scale
    - duplex: back-side ordering for short/long edge flips
    - tiler: page grid placement planning
    - normalizer: image fetching/decoding and JPEG re-encoding
    - pdf_generator / docx_generator: output backends
    - pipeline: export job state machine
    - deck / ydk: deck documents and YDK interchange
    - relay: image relay endpoint
    - layout: high-level API with console reporting
"""

from .deck import Deck, EditHistory, load_deck, merge_decks, save_deck
from .duplex import reorder_for_duplex
from .errors import (
    CardPrinterError,
    DeckError,
    ExportPreconditionError,
    GeometryError,
    ImageNormalizationError,
)
from .expander import expand_cards
from .geometry import resolve_geometry
from .models import (
    Card,
    CropMode,
    ExportJob,
    ExportResult,
    FlipMode,
    ImageStatus,
    JobState,
    NormalizedImage,
    Placement,
    PrintSettings,
    PrintSlot,
    SheetGeometry,
    SheetPlan,
    SideMode,
)
from .normalizer import ImageNormalizer
from .pipeline import ExportPipeline, build_job
from .tiler import plan_placements
from .ydk import dump_ydk_text, parse_ydk_text

__all__ = [
    "Card",
    "CardPrinterError",
    "CropMode",
    "Deck",
    "DeckError",
    "EditHistory",
    "ExportJob",
    "ExportPipeline",
    "ExportPreconditionError",
    "ExportResult",
    "FlipMode",
    "GeometryError",
    "ImageNormalizationError",
    "ImageNormalizer",
    "ImageStatus",
    "JobState",
    "NormalizedImage",
    "Placement",
    "PrintSettings",
    "PrintSlot",
    "SheetGeometry",
    "SheetPlan",
    "SideMode",
    "build_job",
    "dump_ydk_text",
    "expand_cards",
    "load_deck",
    "merge_decks",
    "parse_ydk_text",
    "plan_placements",
    "reorder_for_duplex",
    "resolve_geometry",
    "save_deck",
]
