"""Image loading, source enumeration, mosaic composition and saving."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path
from typing import BinaryIO

import numpy as np
from PIL import Image

from mosaicify.assignment import Assignment
from mosaicify.grid import GridCell

logger = logging.getLogger(__name__)


def compute_target_size(
    original_width: int,
    original_height: int,
    max_side: int,
) -> tuple[int, int]:
    """Compute downscaled (w, h) preserving aspect ratio.

    The longest side becomes *max_side*; the other is scaled
    proportionally (rounded to the nearest integer, minimum 1).
    """
    if original_width >= original_height:
        w = max_side
        h = max(1, round(original_height * max_side / original_width))
    else:
        h = max_side
        w = max(1, round(original_width * max_side / original_height))
    return w, h


def load_image(path: str | Path | BinaryIO, max_side: int | None = None) -> np.ndarray:
    """Load an image (path or binary file object) as RGB, optionally shrinking it.

    Images whose longest side exceeds *max_side* are resized so that
    it becomes *max_side* (aspect ratio preserved). Smaller images are
    never enlarged.

    Returns:
        (H, W, 3) uint8 array.
    """
    img = Image.open(path).convert("RGB")
    if max_side is not None and max(img.size) > max_side:
        w, h = compute_target_size(img.width, img.height, max_side)
        img = img.resize((w, h), Image.LANCZOS)
    return np.array(img, dtype=np.uint8)


def collect_images(folder: Path, extensions: frozenset[str]) -> list[Path]:
    """Image files directly inside *folder*, sorted by name."""
    if not folder.exists():
        return []
    return sorted(
        f for f in folder.iterdir()
        if f.is_file() and f.suffix.lower() in extensions
    )


def load_sources(
    paths: Sequence[Path | BinaryIO],
    max_side: int | None = 64,
) -> tuple[list[np.ndarray], list[str]]:
    """Decode source images, skipping files Pillow cannot read.

    File objects (such as uploads) are labelled by their ``name`` attribute.

    Returns:
        The decoded images and their file names, in matching order.
    """
    images = []
    labels = []
    for path in paths:
        label = Path(path.name).name
        try:
            images.append(load_image(path, max_side))
        except OSError as exc:
            logger.warning("Skipping %s: %s", label, exc)
            continue
        labels.append(label)
    logger.info("Loaded %d of %d source images", len(images), len(paths))
    return images, labels


def _fit(source: np.ndarray, width: int, height: int) -> Image.Image:
    img = Image.fromarray(source)
    if img.size == (width, height):
        return img
    return img.resize((width, height), Image.LANCZOS)


def compose_mosaic(
    target_shape: tuple[int, ...],
    cells: Sequence[GridCell],
    assignment: Assignment,
    sources: Sequence[np.ndarray],
    scale: int = 1,
) -> np.ndarray:
    """Paste the assigned source of every cell into a new canvas.

    Each source is stretched to its cell's pixel size times *scale*.
    Cells without an assignment stay black.

    Args:
        target_shape: Shape of the target image, ``(H, W, ...)``.
        cells:        Grid cells of the target.
        assignment:   Cell to candidate id mapping.
        sources:      Source images indexed by candidate id.
        scale:        Output magnification.

    Returns:
        (H * scale, W * scale, 3) uint8 array.
    """
    h, w = target_shape[:2]
    canvas = Image.new("RGB", (w * scale, h * scale))
    for cell in cells:
        cid = assignment.get(cell.coords)
        if cid is None:
            continue
        tile = _fit(sources[cid], cell.width * scale, cell.height * scale)
        canvas.paste(tile, (cell.x * scale, cell.y * scale))
    return np.array(canvas, dtype=np.uint8)


def save_image(array: np.ndarray, path: str | Path) -> None:
    """Save an (H, W, 3) array, format taken from the file extension."""
    Image.fromarray(array.astype(np.uint8)).save(path)
