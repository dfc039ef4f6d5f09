"""Grid partitioning of the target image."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np

from mosaicify.errors import ImageTooSmall, InvalidGridShape
from mosaicify.signature import ColorSignature, extract_signature

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GridCell:
    """One cell of the target grid.

    ``pixels`` is a read-only view into the target image.
    """

    row: int
    col: int
    x: int
    y: int
    width: int
    height: int
    signature: ColorSignature
    pixels: np.ndarray = field(repr=False, compare=False)

    @property
    def coords(self) -> tuple[int, int]:
        return self.row, self.col


def split_lengths(total: int, parts: int) -> list[int]:
    """Split *total* into *parts* near-equal lengths.

    The first ``total % parts`` lengths get one extra unit.
    """
    base, extra = divmod(total, parts)
    return [base + 1 if i < extra else base for i in range(parts)]


def _offsets(lengths: list[int]) -> list[int]:
    out = [0]
    for n in lengths[:-1]:
        out.append(out[-1] + n)
    return out


def cell_bounds(
    width: int,
    height: int,
    rows: int,
    cols: int,
) -> list[tuple[int, int, int, int, int, int]]:
    """Compute ``(row, col, x, y, w, h)`` for every cell, row-major.

    Raises:
        InvalidGridShape: ``rows`` or ``cols`` is below 1.
        ImageTooSmall: a cell would have zero width or height.
    """
    if rows < 1 or cols < 1:
        raise InvalidGridShape(f"grid shape must be positive, got {rows}x{cols}")
    if rows > height or cols > width:
        msg = f"{rows}x{cols} grid does not fit a {width}x{height} image"
        raise ImageTooSmall(msg)

    widths = split_lengths(width, cols)
    heights = split_lengths(height, rows)
    xs = _offsets(widths)
    ys = _offsets(heights)
    return [
        (r, c, xs[c], ys[r], widths[c], heights[r])
        for r in range(rows)
        for c in range(cols)
    ]


def partition(
    target: np.ndarray,
    rows: int,
    cols: int,
    color_space: str = "lab",
    subregions: int = 1,
) -> list[GridCell]:
    """Slice *target* into ``rows x cols`` cells with their signatures.

    Args:
        target:      (H, W, 3) uint8 image.
        rows, cols:  Grid shape.
        color_space: Passed through to :func:`extract_signature`.
        subregions:  Passed through to :func:`extract_signature`.

    Returns:
        ``rows * cols`` cells in row-major order.
    """
    h, w = target.shape[:2]
    bounds = cell_bounds(w, h, rows, cols)
    logger.debug("Partitioning %dx%d target into %dx%d cells", w, h, rows, cols)

    cells = []
    for r, c, x, y, cw, ch in bounds:
        view = target[y : y + ch, x : x + cw]
        view.flags.writeable = False
        cells.append(GridCell(
            row=r, col=c, x=x, y=y, width=cw, height=ch,
            signature=extract_signature(view, color_space, subregions),
            pixels=view,
        ))
    return cells
