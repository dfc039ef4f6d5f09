"""Reduction of pixel regions to comparable colour signatures."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from mosaicify.color_utils import channel_count, to_color_space
from mosaicify.errors import IncompatibleSignature, InvalidRegion


@dataclass(frozen=True)
class ColorSignature:
    """Per-channel means of a region, optionally per sub-grid cell.

    Attributes:
        values:      Channel means, sub-grid cells concatenated row-major.
        color_space: Space the means were computed in.
        subregions:  Side of the sub-grid the region was split into.
    """

    values: tuple[float, ...]
    color_space: str = "rgb"
    subregions: int = 1

    def __len__(self) -> int:
        return len(self.values)

    def is_comparable(self, other: ColorSignature) -> bool:
        return (
            self.color_space == other.color_space
            and self.subregions == other.subregions
            and len(self.values) == len(other.values)
        )

    def check_comparable(self, other: ColorSignature) -> None:
        if not self.is_comparable(other):
            msg = (
                f"signature ({self.color_space}, {self.subregions}x{self.subregions}) "
                f"cannot be compared with ({other.color_space}, "
                f"{other.subregions}x{other.subregions})"
            )
            raise IncompatibleSignature(msg)

    def as_array(self) -> np.ndarray:
        return np.asarray(self.values, dtype=np.float64)


def extract_signature(
    pixels: np.ndarray,
    color_space: str = "rgb",
    subregions: int = 1,
) -> ColorSignature:
    """Mean colour of *pixels*, in *color_space*.

    With ``subregions > 1`` the region is split into an n x n sub-grid
    (remainder pixels going to the first rows/columns) and the means of
    all sub-cells are concatenated row-major.

    Args:
        pixels:      (H, W, 3) uint8 region.
        color_space: ``"rgb"``, ``"lab"`` or ``"gray"``.
        subregions:  Side of the sub-grid.

    Raises:
        InvalidRegion: zero-area or malformed region, or one smaller
            than the sub-grid.
    """
    if pixels.ndim != 3 or pixels.shape[2] != 3:
        raise InvalidRegion(f"expected an (H, W, 3) region, got shape {pixels.shape}")
    h, w = pixels.shape[:2]
    if h == 0 or w == 0:
        raise InvalidRegion(f"region has zero area ({w}x{h})")
    if subregions < 1:
        raise InvalidRegion(f"subregions must be >= 1, got {subregions}")
    if h < subregions or w < subregions:
        msg = f"{w}x{h} region is smaller than a {subregions}x{subregions} sub-grid"
        raise InvalidRegion(msg)

    n_ch = channel_count(color_space)
    converted = to_color_space(pixels.reshape(-1, 3), color_space).reshape(h, w, n_ch)

    means = [
        block.reshape(-1, n_ch).mean(axis=0)
        for band in np.array_split(converted, subregions, axis=0)
        for block in np.array_split(band, subregions, axis=1)
    ]
    values = np.concatenate(means)
    return ColorSignature(
        values=tuple(float(v) for v in values),
        color_space=color_space,
        subregions=subregions,
    )


def pixels_from_samples(
    width: int,
    height: int,
    samples: Sequence[Sequence[int]],
) -> np.ndarray:
    """Build an (H, W, 3) uint8 array from row-major ``(r, g, b)`` samples.

    Raises:
        InvalidRegion: wrong sample count, zero area, samples that are not
            3-channel, or channel values outside 0-255.
    """
    if width * height != len(samples):
        msg = f"{len(samples)} samples do not fill a {width}x{height} image"
        raise InvalidRegion(msg)
    if width == 0 or height == 0:
        raise InvalidRegion(f"region has zero area ({width}x{height})")
    try:
        arr = np.asarray(samples)
    except ValueError as exc:
        raise InvalidRegion(f"samples are not uniform (r, g, b) triples: {exc}") from exc
    if arr.shape != (width * height, 3):
        raise InvalidRegion(f"expected {width * height} (r, g, b) samples, got shape {arr.shape}")
    if not np.issubdtype(arr.dtype, np.integer):
        raise InvalidRegion(f"samples must be integers, got {arr.dtype}")
    if arr.min() < 0 or arr.max() > 255:
        raise InvalidRegion("sample values must lie in 0-255")
    return arr.astype(np.uint8).reshape(height, width, 3)
