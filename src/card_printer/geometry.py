"""Page and card geometry resolution."""
from __future__ import annotations

from dataclasses import replace
from typing import Dict, Tuple

from reportlab.lib.pagesizes import A4, letter
from reportlab.lib.units import mm

from .models import SheetGeometry


# Page sizes in millimetres, derived from ReportLab's point-based table
PAGE_SIZES: Dict[str, Tuple[float, float]] = {
    "a4": (round(A4[0] / mm, 4), round(A4[1] / mm, 4)),
    "letter": (round(letter[0] / mm, 4), round(letter[1] / mm, 4)),
}

# Card size presets "<width>x<height>" in millimetres
CARD_PRESETS: Dict[str, Tuple[float, float]] = {
    "63x88": (63.0, 88.0),
    "59x86": (59.0, 86.0),
    "57x87": (57.0, 87.0),
    "44x67": (44.0, 67.0),
    "70x120": (70.0, 120.0),
}

ORIENTATIONS = ("portrait", "landscape")

# Float slack when comparing millimetre sums against page bounds
EPSILON_MM = 1e-6


def mm_to_pt(value: float) -> float:
    return value * mm


def page_dimensions(page_size: str, orientation: str = "portrait") -> Tuple[float, float]:
    """
    Return (width, height) in mm for a page keyword and orientation.

    Raises:
        ValueError: If the page keyword or orientation is unknown
    """
    key = page_size.lower()
    if key not in PAGE_SIZES:
        raise ValueError(f"Unknown page size: {page_size!r}")
    if orientation not in ORIENTATIONS:
        raise ValueError(f"Unknown orientation: {orientation!r}")
    width, height = PAGE_SIZES[key]
    if orientation == "landscape":
        width, height = height, width
    return width, height


def preset_dimensions(preset: str) -> Tuple[float, float] | None:
    """Card size of a preset key, or None for "custom" and unknown keys."""
    return CARD_PRESETS.get(preset)


def resolve_geometry(
    page_size: str,
    orientation: str,
    margin_mm: float,
    gap_mm: float,
    bleed_mm: float,
    card_width_mm: float,
    card_height_mm: float,
    auto_fit: bool = True,
    cols: int = 3,
    rows: int = 3,
) -> SheetGeometry:
    """
    Compute the effective card box, grid capacity and auto-fit scale.

    The effective box is the requested card size plus bleed on every side.
    With `auto_fit` the box is shrunk uniformly until the whole grid fits
    the page; it is never enlarged. Margins and gaps keep their size, so
    the scale is taken over the space left once they are subtracted. The returned `card_width_mm` and
    `card_height_mm` are the effective (bleed-inclusive, scaled) box.

    `fits` reports whether the grid fits the page after scaling. It can
    only be False when `auto_fit` is off.
    """
    page_w, page_h = page_dimensions(page_size, orientation)

    box_w = card_width_mm + 2 * bleed_mm
    box_h = card_height_mm + 2 * bleed_mm

    scale = 1.0
    avail_w = page_w - margin_mm * 2 - (cols - 1) * gap_mm
    avail_h = page_h - margin_mm * 2 - (rows - 1) * gap_mm
    if auto_fit and avail_w > 0 and avail_h > 0:
        scale = min(avail_w / (cols * box_w), avail_h / (rows * box_h), 1.0)
        box_w *= scale
        box_h *= scale

    geometry = SheetGeometry(
        page_width_mm=page_w,
        page_height_mm=page_h,
        margin_mm=margin_mm,
        gap_mm=gap_mm,
        bleed_mm=bleed_mm * scale,
        card_width_mm=box_w,
        card_height_mm=box_h,
        cols=cols,
        rows=rows,
        scale=scale,
    )
    fits = (
        geometry.needed_width_mm <= page_w + EPSILON_MM
        and geometry.needed_height_mm <= page_h + EPSILON_MM
    )
    if fits:
        return geometry
    return replace(geometry, fits=False)
