"""Data classes shared by the layout and export pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


class SideMode(str, Enum):
    FRONT_ONLY = "front-only"
    BACK_ONLY = "back-only"
    FRONT_BACK = "front-back"


class FlipMode(str, Enum):
    """Edge the sheet is flipped over between the front and back pass."""

    NONE = "none"
    SHORT = "short"
    LONG = "long"


class CropMode(str, Enum):
    NONE = "none"
    SHORT = "short"
    FULL = "full"


class ImageStatus(str, Enum):
    OK = "ok"
    FAILED = "failed"


class JobState(str, Enum):
    IDLE = "idle"
    EXPANDING = "expanding"
    RESOLVING_GEOMETRY = "resolving-geometry"
    TILING = "tiling"
    NORMALIZING_IMAGES = "normalizing-images"
    RENDERING = "rendering"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class Card:
    """One entry of the working card list.

    `src` is a local file path, a ``data:`` URI or an http(s) URL.
    """

    src: str
    quantity: int = 1
    name: str = ""
    external: bool = False
    card_id: Optional[str] = None

    @property
    def origin_kind(self) -> str:
        return "remote" if self.external or is_remote_source(self.src) else "local"


@dataclass(frozen=True)
class PrintSlot:
    """One physical print position (one repetition of a card)."""

    index: int
    card: Card

    @property
    def source_key(self) -> str:
        return self.card.src


@dataclass(frozen=True)
class SheetGeometry:
    """Resolved page and card box geometry, all values in millimetres."""

    page_width_mm: float
    page_height_mm: float
    margin_mm: float
    gap_mm: float
    bleed_mm: float
    card_width_mm: float
    card_height_mm: float
    cols: int = 3
    rows: int = 3
    scale: float = 1.0
    fits: bool = True

    @property
    def capacity(self) -> int:
        return self.cols * self.rows

    @property
    def needed_width_mm(self) -> float:
        return self.margin_mm * 2 + self.cols * self.card_width_mm + (self.cols - 1) * self.gap_mm

    @property
    def needed_height_mm(self) -> float:
        return self.margin_mm * 2 + self.rows * self.card_height_mm + (self.rows - 1) * self.gap_mm


@dataclass(frozen=True)
class CropMark:
    x_mm: float
    y_mm: float
    width_mm: float
    height_mm: float
    mode: CropMode


@dataclass(frozen=True)
class Placement:
    """A grid cell on a page. Coordinates are measured from the top-left page corner."""

    page_index: int
    row: int
    col: int
    x_mm: float
    y_mm: float
    width_mm: float
    height_mm: float
    slot: Optional[PrintSlot] = None
    image_key: Optional[str] = None
    crop: Optional[CropMark] = None

    @property
    def is_empty(self) -> bool:
        return self.slot is None


@dataclass
class SheetPlan:
    """Ordered placements for one printed side plus the images they need."""

    side: str
    page_width_mm: float
    page_height_mm: float
    placements: List[Placement] = field(default_factory=list)
    manifest: List[str] = field(default_factory=list)

    @property
    def page_count(self) -> int:
        if not self.placements:
            return 0
        return self.placements[-1].page_index + 1

    def pages(self) -> List[List[Placement]]:
        result: List[List[Placement]] = [[] for _ in range(self.page_count)]
        for placement in self.placements:
            result[placement.page_index].append(placement)
        return result

    def slot_counts(self) -> List[int]:
        return [sum(1 for p in page if not p.is_empty) for page in self.pages()]


@dataclass(frozen=True)
class NormalizedImage:
    key: str
    status: ImageStatus
    data: bytes = b""
    size: Tuple[int, int] = (0, 0)
    error: str = ""
    used_relay: bool = False

    @property
    def ok(self) -> bool:
        return self.status is ImageStatus.OK


@dataclass(frozen=True)
class PrintSettings:
    """User-facing export settings (the ``settings`` block of a deck)."""

    card_preset: str = "63x88"
    card_width_mm: float = 63.0
    card_height_mm: float = 88.0
    page_size: str = "a4"
    orientation: str = "portrait"
    margin_mm: float = 10.0
    gap_mm: float = 0.0
    bleed_mm: float = 0.0
    crop_marks: CropMode = CropMode.SHORT
    auto_fit: bool = True
    side_mode: SideMode = SideMode.FRONT_ONLY
    flip_mode: FlipMode = FlipMode.NONE
    file_name: str = "cards"
    cols: int = 3
    rows: int = 3


@dataclass(frozen=True)
class ExportJob:
    """Immutable unit of work handed through the pipeline stages."""

    cards: Tuple[Card, ...]
    settings: PrintSettings
    back_src: Optional[str] = None

    @property
    def needs_back(self) -> bool:
        return self.settings.side_mode in (SideMode.BACK_ONLY, SideMode.FRONT_BACK)

    @property
    def flip_mode(self) -> FlipMode:
        # Flip has no meaning without a back pass.
        if self.settings.side_mode is SideMode.FRONT_ONLY:
            return FlipMode.NONE
        return self.settings.flip_mode


@dataclass
class ExportResult:
    job: ExportJob
    geometry: SheetGeometry
    front: Optional[SheetPlan]
    back: Optional[SheetPlan]
    images: Dict[str, NormalizedImage] = field(default_factory=dict)
    states: List[JobState] = field(default_factory=list)
    output_path: Optional[str] = None

    @property
    def failed_images(self) -> List[NormalizedImage]:
        return [img for img in self.images.values() if not img.ok]

    @property
    def missing_count(self) -> int:
        return len(self.failed_images)

    @property
    def page_count(self) -> int:
        return sum(plan.page_count for plan in (self.front, self.back) if plan is not None)


def is_remote_source(src: str) -> bool:
    lowered = src.lower()
    return lowered.startswith("http://") or lowered.startswith("https://")
