"""Centralised configuration via a frozen dataclass."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from mosaicify.color_utils import COLOR_SPACES, METRICS, channel_count
from mosaicify.errors import InvalidConfig

SOLVERS = ("greedy", "hungarian")


@dataclass(frozen=True)
class MosaicConfig:
    """All tuneable parameters for a mosaic run.

    Values are fixed for the duration of a run.

    Attributes:
        rows:             Number of grid rows.
        cols:             Number of grid columns.
        avoid_duplicates: Use every source image at most once.
        color_space:      Space signatures are computed in - "lab", "rgb" or "gray".
        metric:           Signature distance - "euclidean" or "manhattan".
        channel_weights:  Optional per-channel weights for the distance.
        subregions:       Each signature holds the means of an n x n sub-grid.
        solver:           "greedy" (parallel nearest match) or "hungarian"
                          (optimal duplicate-free assignment).
        workers:          Thread count for matching (None = CPU count).
        deterministic:    Match cells one by one on the calling thread.
        shuffle:          Visit cells in random order.
        seed:             Seed for the visiting order (None = non-deterministic).
        max_claim_retries: Lost claim races tolerated per cell.
        source_max_side:  Longest side sources are downscaled to on load.
        output:           Default output path of the CLI.
    """

    # Grid
    rows: int = 20
    cols: int = 20

    # Matching
    avoid_duplicates: bool = False
    color_space: str = "lab"
    metric: str = "euclidean"
    channel_weights: tuple[float, ...] | None = None
    subregions: int = 1
    solver: str = "greedy"  # "greedy" | "hungarian"

    # Scheduling
    workers: int | None = None
    deterministic: bool = False
    shuffle: bool = True
    seed: int | None = None
    max_claim_retries: int = 3

    # I/O
    source_max_side: int | None = 64
    output: Path = field(default_factory=lambda: Path("mosaic.jpg"))

    SUPPORTED_EXTENSIONS: frozenset[str] = frozenset(
        {".jpg", ".jpeg", ".png", ".bmp", ".tiff", ".tif", ".webp", ".jfif"}
    )

    def validate(self) -> MosaicConfig:
        """Raise :class:`InvalidConfig` for out-of-domain values."""
        if self.color_space not in COLOR_SPACES:
            msg = f"Unknown color space '{self.color_space}'. Available: {', '.join(COLOR_SPACES)}"
            raise InvalidConfig(msg)
        if self.metric not in METRICS:
            msg = f"Unknown metric '{self.metric}'. Available: {', '.join(METRICS)}"
            raise InvalidConfig(msg)
        if self.solver not in SOLVERS:
            msg = f"Unknown solver '{self.solver}'. Available: {', '.join(SOLVERS)}"
            raise InvalidConfig(msg)
        if self.subregions < 1:
            raise InvalidConfig(f"subregions must be >= 1, got {self.subregions}")
        if self.max_claim_retries < 0:
            raise InvalidConfig("max_claim_retries must be >= 0")
        if self.workers is not None and self.workers < 1:
            raise InvalidConfig(f"workers must be >= 1, got {self.workers}")
        if self.source_max_side is not None and self.source_max_side < 1:
            raise InvalidConfig(f"source_max_side must be >= 1, got {self.source_max_side}")
        if self.channel_weights is not None:
            expected = channel_count(self.color_space)
            if len(self.channel_weights) != expected:
                msg = (
                    f"{len(self.channel_weights)} channel weights given, "
                    f"color space '{self.color_space}' has {expected} channels"
                )
                raise InvalidConfig(msg)
            if any(w < 0 for w in self.channel_weights):
                raise InvalidConfig("channel weights must be non-negative")
        return self
