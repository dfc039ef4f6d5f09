"""Nearest-candidate matching for a single grid cell."""

from __future__ import annotations

import logging

from mosaicify.errors import AssignmentConflict
from mosaicify.grid import GridCell
from mosaicify.pool import CandidatePool

logger = logging.getLogger(__name__)


def match_cell(
    cell: GridCell,
    pool: CandidatePool,
    max_claim_retries: int = 3,
) -> int:
    """Pick a candidate for *cell*.

    Without duplicate avoidance this is a single read-only search. With
    it, the best available candidate is claimed; a claim lost to another
    worker triggers a new search without that candidate.

    Args:
        cell:              Cell to match.
        pool:              Shared candidate pool.
        max_claim_retries: Lost races tolerated before giving up.

    Returns:
        The chosen candidate id.

    Raises:
        AssignmentConflict: more than *max_claim_retries* races were lost.
        NoAvailableCandidates: the pool ran dry.
    """
    if not pool.avoid_duplicates:
        return pool.find_best(cell.signature, require_available=False)

    lost: set[int] = set()
    for _ in range(max_claim_retries + 1):
        cid = pool.find_best(cell.signature, require_available=True, exclude=lost)
        if pool.claim(cid):
            return cid
        logger.debug("Cell %s lost the race for candidate %d", cell.coords, cid)
        lost.add(cid)
    raise AssignmentConflict(cell.coords, len(lost))
