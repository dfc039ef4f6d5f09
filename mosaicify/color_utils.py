"""Colour-space conversion and signature distances."""

from __future__ import annotations

import numpy as np
from skimage.color import rgb2lab

COLOR_SPACES = ("lab", "rgb", "gray")
METRICS = ("euclidean", "manhattan")

# ITU-R BT.601 luma, the weights used by Pillow's "L" conversion
_LUMA = np.array([0.299, 0.587, 0.114])


def channel_count(color_space: str) -> int:
    return 1 if color_space == "gray" else 3


def rgb_to_lab(rgb: np.ndarray) -> np.ndarray:
    """Convert flat (N, 3) uint8 RGB → (N, 3) float64 CIELAB."""
    return rgb2lab(rgb.astype(np.float64).reshape(1, -1, 3) / 255.0).reshape(-1, 3)


def rgb_to_gray(rgb: np.ndarray) -> np.ndarray:
    """Convert flat (N, 3) uint8 RGB → (N, 1) float64 luma in 0-255."""
    return (rgb.astype(np.float64) @ _LUMA).reshape(-1, 1)


def to_color_space(rgb: np.ndarray, color_space: str = "lab") -> np.ndarray:
    """Convert flat (N, 3) uint8 RGB into *color_space* as float64."""
    if color_space == "lab":
        return rgb_to_lab(rgb)
    if color_space == "gray":
        return rgb_to_gray(rgb)
    if color_space == "rgb":
        return rgb.astype(np.float64)
    msg = f"Unknown color space '{color_space}'. Available: {', '.join(COLOR_SPACES)}"
    raise ValueError(msg)


def compute_distances(
    candidates: np.ndarray,
    query: np.ndarray,
    metric: str = "euclidean",
    weights: np.ndarray | None = None,
) -> np.ndarray:
    """Distance from *query* to every row of *candidates*.

    Args:
        candidates: (N, D) float64 signature matrix.
        query:      (D,) float64 signature.
        metric:     ``"euclidean"`` or ``"manhattan"``.
        weights:    Optional (D,) non-negative per-value weights.

    Returns:
        (N,) float64 distances.
    """
    diff = candidates - query[np.newaxis, :]
    if metric == "euclidean":
        sq = diff ** 2
        if weights is not None:
            sq = sq * weights
        return np.sqrt(np.sum(sq, axis=1))
    if metric == "manhattan":
        ab = np.abs(diff)
        if weights is not None:
            ab = ab * weights
        return np.sum(ab, axis=1)
    msg = f"Unknown metric '{metric}'. Available: {', '.join(METRICS)}"
    raise ValueError(msg)
