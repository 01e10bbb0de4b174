"""Page tiling: assign print slots to page grid cells."""
from __future__ import annotations

from typing import List, Optional, Sequence

from .errors import GeometryError
from .geometry import EPSILON_MM
from .models import CropMark, CropMode, Placement, PrintSlot, SheetGeometry, SheetPlan


def rows_per_page(geometry: SheetGeometry) -> int:
    """
    Number of grid rows that actually fit on one page.

    Equals `geometry.rows` whenever the grid fits. When auto-fit is off and
    the grid is too tall, the page is closed early so no card box crosses
    the bottom margin.

    Raises:
        GeometryError: If not even one card box, or one full row, fits
    """
    g = geometry
    if g.margin_mm * 2 + g.card_height_mm > g.page_height_mm + EPSILON_MM:
        raise GeometryError(
            f"Card box height {g.card_height_mm:.2f} mm does not fit a "
            f"{g.page_height_mm:.1f} mm page with {g.margin_mm:.1f} mm margins."
        )
    if g.margin_mm * 2 + g.card_width_mm > g.page_width_mm + EPSILON_MM:
        raise GeometryError(
            f"Card box width {g.card_width_mm:.2f} mm does not fit a "
            f"{g.page_width_mm:.1f} mm page with {g.margin_mm:.1f} mm margins."
        )
    row_width = g.margin_mm * 2 + g.cols * g.card_width_mm + (g.cols - 1) * g.gap_mm
    if row_width > g.page_width_mm + EPSILON_MM:
        raise GeometryError(
            f"A row of {g.cols} cards needs {row_width:.2f} mm but the page is "
            f"{g.page_width_mm:.1f} mm wide. Enable auto-fit or reduce the card size."
        )

    fitting = 1
    while fitting < g.rows:
        bottom = g.margin_mm + (fitting + 1) * g.card_height_mm + fitting * g.gap_mm + g.margin_mm
        if bottom > g.page_height_mm + EPSILON_MM:
            break
        fitting += 1
    return fitting


def page_capacity(geometry: SheetGeometry) -> int:
    return geometry.cols * rows_per_page(geometry)


def plan_placements(
    sequence: Sequence[Optional[PrintSlot]],
    geometry: SheetGeometry,
    crop_mode: CropMode | str = CropMode.NONE,
    side: str = "front",
    image_key: Optional[str] = None,
) -> SheetPlan:
    """
    Lay a print sequence out on pages in row-major order.

    Every page holds at most `page_capacity(geometry)` cells; the last page is
    padded with empty cells so each page is a complete grid. Positions are
    measured in mm from the top-left corner of the page.

    Args:
        sequence: Slots in print order (``None`` entries stay empty)
        geometry: Resolved sheet geometry
        crop_mode: Crop marks attached to every non-empty cell
        side: Label stored on the plan ("front" or "back")
        image_key: Image used for every slot instead of the slot's own
            source (the shared back image)

    Raises:
        GeometryError: If the card box cannot be placed on the page
    """
    crop_mode = CropMode(crop_mode)
    g = geometry
    rows = rows_per_page(g)
    per_page = g.cols * rows

    plan = SheetPlan(side=side, page_width_mm=g.page_width_mm, page_height_mm=g.page_height_mm)
    if not sequence:
        return plan

    total_cells = -(-len(sequence) // per_page) * per_page
    seen = set()
    for i in range(total_cells):
        slot = sequence[i] if i < len(sequence) else None
        page_index, cell = divmod(i, per_page)
        row, col = divmod(cell, g.cols)
        x = g.margin_mm + col * (g.card_width_mm + g.gap_mm)
        y = g.margin_mm + row * (g.card_height_mm + g.gap_mm)

        key = None
        crop = None
        if slot is not None:
            key = image_key if image_key is not None else slot.source_key
            if key not in seen:
                seen.add(key)
                plan.manifest.append(key)
            if crop_mode is not CropMode.NONE:
                crop = CropMark(x, y, g.card_width_mm, g.card_height_mm, crop_mode)

        plan.placements.append(
            Placement(
                page_index=page_index,
                row=row,
                col=col,
                x_mm=x,
                y_mm=y,
                width_mm=g.card_width_mm,
                height_mm=g.card_height_mm,
                slot=slot,
                image_key=key,
                crop=crop,
            )
        )
    return plan
