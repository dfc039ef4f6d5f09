"""
Mosaicify
=========

Rebuild a target image out of a folder of source images. The target is
cut into a ``rows x cols`` grid and every cell is replaced by the source
whose colour signature is closest, optionally using each source at most
once. Two solvers are available:

- **Greedy** (parallel nearest match with atomic claiming)
- **Hungarian** (optimal duplicate-free assignment)
"""

__version__ = "0.3.0"

from mosaicify.assignment import Assignment, CellState, RunResult, RunState
from mosaicify.config import MosaicConfig
from mosaicify.coordinator import AssignmentCoordinator, build_assignment, build_pool
from mosaicify.errors import (
    AssignmentConflict,
    CellFailure,
    EmptyPool,
    ImageTooSmall,
    IncompatibleSignature,
    InvalidConfig,
    InvalidGridShape,
    InvalidRegion,
    MosaicError,
    NoAvailableCandidates,
    PartialAssignmentError,
    UnknownCandidate,
)
from mosaicify.grid import GridCell, cell_bounds, partition, split_lengths
from mosaicify.image_io import (
    collect_images,
    compose_mosaic,
    compute_target_size,
    load_image,
    load_sources,
    save_image,
)
from mosaicify.matcher import match_cell
from mosaicify.pool import Candidate, CandidatePool
from mosaicify.signature import ColorSignature, extract_signature, pixels_from_samples
from mosaicify.solver_hungarian import solve_hungarian

__all__ = [
    "Assignment",
    "AssignmentConflict",
    "AssignmentCoordinator",
    "Candidate",
    "CandidatePool",
    "CellFailure",
    "CellState",
    "ColorSignature",
    "EmptyPool",
    "GridCell",
    "ImageTooSmall",
    "IncompatibleSignature",
    "InvalidConfig",
    "InvalidGridShape",
    "InvalidRegion",
    "MosaicConfig",
    "MosaicError",
    "NoAvailableCandidates",
    "PartialAssignmentError",
    "RunResult",
    "RunState",
    "UnknownCandidate",
    "build_assignment",
    "build_pool",
    "cell_bounds",
    "collect_images",
    "compose_mosaic",
    "compute_target_size",
    "extract_signature",
    "load_image",
    "load_sources",
    "match_cell",
    "partition",
    "pixels_from_samples",
    "save_image",
    "solve_hungarian",
    "split_lengths",
]
