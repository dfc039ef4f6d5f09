"""Optimal duplicate-free assignment via the Hungarian algorithm (scipy)."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence

import numpy as np
from scipy.optimize import linear_sum_assignment

from mosaicify.assignment import Assignment, RunResult, RunState
from mosaicify.errors import NoAvailableCandidates
from mosaicify.grid import GridCell
from mosaicify.pool import CandidatePool

logger = logging.getLogger(__name__)


def solve_hungarian(
    cells: Sequence[GridCell],
    pool: CandidatePool,
    progress: Callable[[GridCell], None] | None = None,
) -> RunResult:
    """Assign each cell a distinct candidate, minimising total distance.

    Only candidates still available are considered, and every chosen
    candidate is claimed in *pool*.

    Args:
        cells:    Grid cells (at most as many as available candidates).
        pool:     Candidate pool.
        progress: Called once per assigned cell.

    Returns:
        A completed :class:`RunResult` with an injective assignment.
    """
    rows = max(c.row for c in cells) + 1
    cols = max(c.col for c in cells) + 1
    available = [cid for cid in range(len(pool)) if pool.is_available(cid)]
    if len(cells) > len(available):
        msg = f"{len(cells)} cells but only {len(available)} available source images"
        raise NoAvailableCandidates(msg)

    logger.info("Building %dx%d cost matrix (%s) …", len(cells), len(available), pool.metric)
    t0 = time.perf_counter()
    cost = np.stack([pool.distances(c.signature)[available] for c in cells])
    logger.info("Cost matrix ready  (%.1f s)", time.perf_counter() - t0)

    logger.info("Running linear_sum_assignment …")
    t0 = time.perf_counter()
    row_idx, col_idx = linear_sum_assignment(cost)
    logger.info("Assignment solved  (%.1f s)", time.perf_counter() - t0)

    mapping = {}
    for ci, ai in zip(row_idx, col_idx, strict=True):
        cid = available[ai]
        pool.claim(cid)
        mapping[cells[ci].coords] = cid
        if progress is not None:
            progress(cells[ci])
    return RunResult(RunState.COMPLETED, Assignment(rows, cols, mapping))
