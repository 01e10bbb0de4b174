"""Word (DOCX) generation: one fixed grid table per sheet page."""
from __future__ import annotations

from io import BytesIO
from pathlib import Path
from typing import Callable, List, Mapping, Optional, Sequence

from docx import Document
from docx.enum.section import WD_ORIENT, WD_SECTION
from docx.enum.table import WD_ROW_HEIGHT_RULE, WD_TABLE_ALIGNMENT
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.shared import Mm, Pt

from .models import NormalizedImage, Placement, SheetPlan


# Body height reserved under the grid (2 pt) for the section-break paragraph
TRAILING_PARAGRAPH_MM = 2 * 25.4 / 72


def write_sheets_docx(
    plans: Sequence[SheetPlan],
    images: Mapping[str, NormalizedImage],
    output_path: Path,
    progress_callback: Optional[Callable[[int, int], None]] = None,
) -> int:
    """
    Write placement plans to a DOCX file.

    Each sheet page becomes its own section holding a single table. Column
    widths and row heights are taken from the placement offsets, so a cell
    spans one card box plus the gap that follows it, and cell padding is
    zero. Crop marks are not drawn: Word tables have no drawing primitive
    that matches them.

    Returns:
        Number of pages written

    Raises:
        ValueError: If there is nothing to draw
    """
    total_pages = sum(plan.page_count for plan in plans)
    if total_pages == 0:
        raise ValueError("No pages to write - placement plans are empty.")

    doc = Document()
    body = doc.element.body
    for paragraph in list(body.iterchildren(qn("w:p"))):
        body.remove(paragraph)

    page_num = 0
    for plan in plans:
        for page in plan.pages():
            page_num += 1
            if progress_callback is not None:
                progress_callback(page_num, total_pages)

            if page_num == 1:
                section = doc.sections[0]
            else:
                section = doc.add_section(WD_SECTION.NEW_PAGE)
                _collapse(doc.paragraphs[-1])
            _setup_section(section, plan, page)
            _add_page_table(doc, page, images)

    _collapse(doc.add_paragraph())
    doc.save(str(output_path))
    return page_num


def write_docx_check(output_path: Path) -> Path:
    """Write a minimal document to confirm DOCX output opens correctly."""
    doc = Document()
    doc.add_paragraph("Card Printer - test DOCX")
    doc.add_paragraph("If this file opens, full DOCX export will work as well.")
    doc.save(str(output_path))
    return output_path


def _setup_section(section, plan: SheetPlan, page: Sequence[Placement]) -> None:
    width, height = plan.page_width_mm, plan.page_height_mm
    section.orientation = WD_ORIENT.LANDSCAPE if width > height else WD_ORIENT.PORTRAIT
    section.page_width = Mm(width)
    section.page_height = Mm(height)

    left = page[0].x_mm
    top = page[0].y_mm
    right_edge = max(p.x_mm + p.width_mm for p in page)
    bottom_edge = max(p.y_mm + p.height_mm for p in page)
    section.left_margin = Mm(left)
    section.top_margin = Mm(top)
    section.right_margin = Mm(max(0.0, min(left, width - right_edge)))
    # The paragraph that follows each table needs room below the last row
    bottom = min(top, height - bottom_edge) - TRAILING_PARAGRAPH_MM
    section.bottom_margin = Mm(max(0.0, bottom))
    section.header_distance = Mm(0)
    section.footer_distance = Mm(0)


def _track_sizes(offsets: List[float], last_size: float) -> List[float]:
    sizes = [b - a for a, b in zip(offsets, offsets[1:])]
    sizes.append(last_size)
    return sizes


def _add_page_table(doc, page: Sequence[Placement], images: Mapping[str, NormalizedImage]) -> None:
    rows = max(p.row for p in page) + 1
    cols = max(p.col for p in page) + 1
    col_x = sorted({p.x_mm for p in page})
    row_y = sorted({p.y_mm for p in page})
    col_widths = _track_sizes(col_x, page[0].width_mm)
    row_heights = _track_sizes(row_y, page[0].height_mm)

    table = doc.add_table(rows=rows, cols=cols)
    table.autofit = False
    table.alignment = WD_TABLE_ALIGNMENT.LEFT
    _zero_cell_margins(table)

    for c, width in enumerate(col_widths):
        table.columns[c].width = Mm(width)
    for r, height in enumerate(row_heights):
        table.rows[r].height = Mm(height)
        table.rows[r].height_rule = WD_ROW_HEIGHT_RULE.EXACTLY

    for placement in page:
        cell = table.cell(placement.row, placement.col)
        cell.width = Mm(col_widths[placement.col])
        paragraph = cell.paragraphs[0]
        _collapse(paragraph, keep_line=True)
        if placement.is_empty or placement.image_key is None:
            continue
        image = images.get(placement.image_key)
        if image is None or not image.ok:
            continue
        paragraph.add_run().add_picture(
            BytesIO(image.data),
            width=Mm(placement.width_mm),
            height=Mm(placement.height_mm),
        )


def _zero_cell_margins(table) -> None:
    tbl_pr = table._tbl.tblPr
    margins = OxmlElement("w:tblCellMar")
    for side in ("top", "left", "bottom", "right"):
        node = OxmlElement(f"w:{side}")
        node.set(qn("w:w"), "0")
        node.set(qn("w:type"), "dxa")
        margins.append(node)
    tbl_pr.append(margins)


def _collapse(paragraph, keep_line: bool = False) -> None:
    # Spacer paragraphs must not push the grid onto an extra page
    fmt = paragraph.paragraph_format
    fmt.space_before = Pt(0)
    fmt.space_after = Pt(0)
    if not keep_line:
        fmt.line_spacing = Pt(1)
        paragraph.add_run().font.size = Pt(1)
