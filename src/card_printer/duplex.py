"""Back-side ordering for duplex printing."""
from __future__ import annotations

from typing import List, Sequence, TypeVar

from .models import FlipMode

T = TypeVar("T")


def reorder_for_duplex(
    sequence: Sequence[T],
    mode: FlipMode | str,
    cols: int = 3,
    rows: int = 3,
) -> List[T]:
    """
    Reorder a print sequence so that, after the sheet is flipped, every back
    lands behind its front.

    The sequence is processed in page blocks of ``cols * rows`` items:

    - ``none``: unchanged.
    - ``short``: each row of the block is reversed, rows keep their index.
    - ``long``: the whole block is reversed.

    A trailing partial block is reordered within its own length only.

    Args:
        sequence: Front-side print sequence
        mode: Flip mode
        cols: Columns per page
        rows: Rows per page

    Returns:
        A new list holding the same items in back-side order
    """
    mode = FlipMode(mode)
    if mode is FlipMode.NONE:
        return list(sequence)

    per_page = cols * rows
    result: List[T] = []
    for start in range(0, len(sequence), per_page):
        page = list(sequence[start : start + per_page])
        if mode is FlipMode.SHORT:
            for row_start in range(0, len(page), cols):
                result.extend(reversed(page[row_start : row_start + cols]))
        else:
            result.extend(reversed(page))
    return result
