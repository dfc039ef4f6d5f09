"""Parallel matching of every grid cell against the shared pool."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from mosaicify.assignment import Assignment, CellState, RunResult, RunState
from mosaicify.config import MosaicConfig
from mosaicify.errors import (
    CellFailure,
    InvalidGridShape,
    MosaicError,
    NoAvailableCandidates,
)
from mosaicify.grid import GridCell, partition
from mosaicify.matcher import match_cell
from mosaicify.pool import CandidatePool
from mosaicify.solver_hungarian import solve_hungarian

logger = logging.getLogger(__name__)


class AssignmentCoordinator:
    """Drives :func:`match_cell` over all cells and collects the assignment.

    With duplicate avoidance and several workers, which of two cells
    sharing a nearest candidate gets it depends on thread scheduling, so
    reruns can differ. ``deterministic=True`` matches cells one after the
    other on the calling thread in a fixed order instead.

    Args:
        pool:              Shared candidate pool.
        cells:             Cells of one grid.
        workers:           Thread count (None = CPU count).
        deterministic:     Match sequentially on the calling thread.
        max_claim_retries: Passed to :func:`match_cell`.
        shuffle:           Visit cells in a random order.
        seed:              Seed for the visiting order.
        progress:          Called once per finished cell.
    """

    def __init__(
        self,
        pool: CandidatePool,
        cells: Sequence[GridCell],
        *,
        workers: int | None = None,
        deterministic: bool = False,
        max_claim_retries: int = 3,
        shuffle: bool = False,
        seed: int | None = None,
        progress: Callable[[GridCell], None] | None = None,
    ) -> None:
        if not cells:
            raise InvalidGridShape("no cells to match")
        self.pool = pool
        self.cells = list(cells)
        self.rows = max(c.row for c in self.cells) + 1
        self.cols = max(c.col for c in self.cells) + 1
        self.workers = workers
        self.deterministic = deterministic
        self.max_claim_retries = max_claim_retries
        self.shuffle = shuffle
        self.seed = seed
        self.progress = progress

        self.state = RunState.INITIALIZED
        self._lock = threading.Lock()
        self._cell_states = {c.coords: CellState.PENDING for c in self.cells}

    @property
    def cell_states(self) -> dict[tuple[int, int], CellState]:
        with self._lock:
            return dict(self._cell_states)

    def validate(self) -> None:
        """Fail before any matching if the pool cannot serve the grid."""
        self.pool.candidates[0].signature.check_comparable(self.cells[0].signature)
        if self.pool.avoid_duplicates and len(self.cells) > self.pool.available_count:
            msg = (
                f"{len(self.cells)} cells but only {self.pool.available_count} "
                "available source images with duplicate avoidance"
            )
            raise NoAvailableCandidates(msg)

    def _visit_order(self) -> list[GridCell]:
        if not self.shuffle:
            return list(self.cells)
        rng = np.random.default_rng(self.seed)
        return [self.cells[i] for i in rng.permutation(len(self.cells))]

    def _set_state(self, coords: tuple[int, int], state: CellState) -> None:
        with self._lock:
            self._cell_states[coords] = state

    def _process(self, cell: GridCell) -> tuple[int | None, CellFailure | None]:
        self._set_state(cell.coords, CellState.MATCHING)
        try:
            cid = match_cell(cell, self.pool, self.max_claim_retries)
        except MosaicError as exc:
            logger.warning("Cell %s failed: %s", cell.coords, exc)
            self._set_state(cell.coords, CellState.FAILED)
            result = None, CellFailure(cell.coords, exc)
        else:
            self._set_state(cell.coords, CellState.ASSIGNED)
            result = cid, None
        if self.progress is not None:
            self.progress(cell)
        return result

    def run(self) -> RunResult:
        """Match every cell once.

        Raises:
            IncompatibleSignature: pool and cells use different color
                spaces or subregion counts.
            NoAvailableCandidates: duplicate avoidance with fewer
                available candidates than cells.
            RuntimeError: the coordinator has already run.
        """
        if self.state is not RunState.INITIALIZED:
            raise RuntimeError(f"coordinator already {self.state.value}")
        self.validate()

        order = self._visit_order()
        self.state = RunState.RUNNING
        mode = "sequential" if self.deterministic else f"{self.workers or 'auto'} workers"
        logger.info(
            "Matching %d cells against %d candidates (%s, duplicates %s) …",
            len(order), len(self.pool), mode,
            "avoided" if self.pool.avoid_duplicates else "allowed",
        )
        t0 = time.perf_counter()

        if self.deterministic:
            outcomes = [self._process(cell) for cell in order]
        else:
            with ThreadPoolExecutor(max_workers=self.workers) as executor:
                outcomes = list(executor.map(self._process, order))

        mapping = {}
        failures = []
        for cell, (cid, failure) in zip(order, outcomes, strict=True):
            if failure is not None:
                failures.append(failure)
            else:
                mapping[cell.coords] = cid
        failures.sort(key=lambda f: f.coords)

        self.state = RunState.PARTIALLY_FAILED if failures else RunState.COMPLETED
        logger.info(
            "Matching %s  (%d/%d assigned, %.1f s)",
            self.state.value, len(mapping), len(order), time.perf_counter() - t0,
        )
        return RunResult(self.state, Assignment(self.rows, self.cols, mapping), failures)


def build_pool(
    sources: Sequence[np.ndarray],
    config: MosaicConfig,
    labels: Sequence[str] | None = None,
) -> CandidatePool:
    """Build a :class:`CandidatePool` with the matching settings of *config*."""
    return CandidatePool.from_images(
        sources,
        labels,
        color_space=config.color_space,
        subregions=config.subregions,
        avoid_duplicates=config.avoid_duplicates,
        metric=config.metric,
        channel_weights=config.channel_weights,
        workers=config.workers,
    )


def build_assignment(
    target: np.ndarray,
    pool: CandidatePool,
    config: MosaicConfig,
    progress: Callable[[GridCell], None] | None = None,
) -> tuple[list[GridCell], RunResult]:
    """Partition *target* and match every cell against *pool*.

    Grid shape, duplicate avoidance and solver come from *config*.
    Configuration errors are raised before any matching starts.

    Returns:
        The grid cells and the run result.
    """
    config.validate()
    cells = partition(
        target, config.rows, config.cols,
        color_space=config.color_space, subregions=config.subregions,
    )

    if config.solver == "hungarian":
        if pool.avoid_duplicates:
            return cells, solve_hungarian(cells, pool, progress)
        logger.info("Duplicates allowed: nearest matches are already optimal, using greedy")

    coordinator = AssignmentCoordinator(
        pool,
        cells,
        workers=config.workers,
        deterministic=config.deterministic,
        max_claim_retries=config.max_claim_retries,
        shuffle=config.shuffle,
        seed=config.seed,
        progress=progress,
    )
    return cells, coordinator.run()
