"""PDF generation for card sheets."""
from __future__ import annotations

from io import BytesIO
from pathlib import Path
from typing import Callable, Dict, Mapping, Optional, Sequence

from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from .models import CropMark, CropMode, NormalizedImage, Placement, SheetPlan


# Crop mark style (millimetres / grey level 0-255)
CROP_TICK_MM = 3.0
CROP_LINE_WIDTH_MM = 0.18
CROP_GREY = 120


def write_sheets_pdf(
    plans: Sequence[SheetPlan],
    images: Mapping[str, NormalizedImage],
    output_path: Path,
    progress_callback: Optional[Callable[[int, int], None]] = None,
    title: str = "",
) -> int:
    """
    Write placement plans to a PDF, one PDF page per plan page.

    - Pages are emitted in plan order (all front pages, then back pages).
    - Every non-empty cell draws its normalized JPEG stretched to the cell box.
    - Cells whose image failed to normalize stay blank but keep their crop marks.

    Args:
        plans: Sheet plans in output order
        images: Normalized images keyed by source key
        output_path: Path to write the PDF to
        progress_callback: Optional callback(current_page, total_pages)
        title: PDF document title

    Returns:
        Number of pages written

    Raises:
        ValueError: If there is nothing to draw
    """
    total_pages = sum(plan.page_count for plan in plans)
    if total_pages == 0:
        raise ValueError("No pages to write - placement plans are empty.")

    first = next(plan for plan in plans if plan.page_count)
    c = canvas.Canvas(
        str(output_path),
        pagesize=(first.page_width_mm * mm, first.page_height_mm * mm),
    )
    c.setCreator("card-printer")
    c.setTitle(title or output_path.stem)

    readers: Dict[str, ImageReader] = {}
    page_num = 0
    for plan in plans:
        page_h = plan.page_height_mm * mm
        for page in plan.pages():
            page_num += 1
            if progress_callback is not None:
                progress_callback(page_num, total_pages)

            c.setPageSize((plan.page_width_mm * mm, page_h))
            for placement in page:
                if placement.is_empty:
                    continue
                reader = _reader_for(placement, images, readers)
                if reader is not None:
                    x, y = _to_pdf_origin(placement.x_mm, placement.y_mm, placement.height_mm, page_h)
                    c.drawImage(
                        reader,
                        x,
                        y,
                        width=placement.width_mm * mm,
                        height=placement.height_mm * mm,
                    )
                if placement.crop is not None:
                    draw_crop_marks(c, placement.crop, page_h)
            c.showPage()

    c.save()
    return page_num


def draw_crop_marks(c: canvas.Canvas, crop: CropMark, page_height: float) -> None:
    """
    Draw crop marks around one card box.

    - short: two 3 mm ticks at each corner, running along the box edges
    - full: the complete box outline
    """
    if crop.mode is CropMode.NONE:
        return

    c.setLineWidth(CROP_LINE_WIDTH_MM * mm)
    c.setStrokeColorRGB(CROP_GREY / 255, CROP_GREY / 255, CROP_GREY / 255)

    left = crop.x_mm * mm
    right = (crop.x_mm + crop.width_mm) * mm
    top = page_height - crop.y_mm * mm
    bottom = page_height - (crop.y_mm + crop.height_mm) * mm

    if crop.mode is CropMode.FULL:
        c.rect(left, bottom, right - left, top - bottom, stroke=1, fill=0)
        return

    tick = CROP_TICK_MM * mm
    for y in (top, bottom):
        c.line(left, y, left + tick, y)
        c.line(right - tick, y, right, y)
    for x in (left, right):
        c.line(x, top, x, top - tick)
        c.line(x, bottom + tick, x, bottom)


def _to_pdf_origin(x_mm: float, y_mm: float, height_mm: float, page_height: float) -> tuple[float, float]:
    # Placements use a top-left origin, ReportLab a bottom-left one
    return x_mm * mm, page_height - (y_mm + height_mm) * mm


def _reader_for(
    placement: Placement,
    images: Mapping[str, NormalizedImage],
    readers: Dict[str, ImageReader],
) -> Optional[ImageReader]:
    key = placement.image_key
    if key is None:
        return None
    if key not in readers:
        image = images.get(key)
        if image is None or not image.ok:
            return None
        readers[key] = ImageReader(BytesIO(image.data))
    return readers[key]


def get_file_size_str(file_path: Path) -> str:
    """
    Get a human-readable file size string.

    Args:
        file_path: Path to the file

    Returns:
        Size string like "1.5 MB" or "256 KB"
    """
    file_size = file_path.stat().st_size
    if file_size >= 1024 * 1024:
        return f"{file_size / (1024 * 1024):.1f} MB"
    else:
        return f"{file_size / 1024:.1f} KB"
