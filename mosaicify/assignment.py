"""Result types of a matching run."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum

import numpy as np

from mosaicify.errors import CellFailure, PartialAssignmentError


class CellState(Enum):
    PENDING = "pending"
    MATCHING = "matching"
    ASSIGNED = "assigned"
    FAILED = "failed"


class RunState(Enum):
    INITIALIZED = "initialized"
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIALLY_FAILED = "partially_failed"


class Assignment(Mapping[tuple[int, int], int]):
    """Read-only mapping of ``(row, col)`` to the chosen candidate id."""

    def __init__(self, rows: int, cols: int, mapping: Mapping[tuple[int, int], int]) -> None:
        self.rows = rows
        self.cols = cols
        self._mapping = dict(mapping)

    def __getitem__(self, coords: tuple[int, int]) -> int:
        return self._mapping[coords]

    def __iter__(self) -> Iterator[tuple[int, int]]:
        return iter(sorted(self._mapping))

    def __len__(self) -> int:
        return len(self._mapping)

    def __repr__(self) -> str:
        return f"Assignment({self.rows}x{self.cols}, {len(self)} assigned)"

    def is_complete(self) -> bool:
        return len(self) == self.rows * self.cols

    def is_injective(self) -> bool:
        return len(set(self._mapping.values())) == len(self._mapping)

    def candidate_ids(self) -> list[int]:
        """Assigned ids in row-major cell order."""
        return [self._mapping[k] for k in self]

    def as_grid(self) -> np.ndarray:
        """(rows, cols) int array of ids, ``-1`` where a cell is unassigned."""
        grid = np.full((self.rows, self.cols), -1, dtype=np.int64)
        for (r, c), cid in self._mapping.items():
            grid[r, c] = cid
        return grid


@dataclass(frozen=True)
class RunResult:
    """Outcome of a run: final state, what was assigned, and what failed."""

    state: RunState
    assignment: Assignment
    failures: list[CellFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.state is RunState.COMPLETED

    def raise_for_failures(self) -> Assignment:
        """Return the assignment, or raise if any cell failed."""
        if self.failures:
            raise PartialAssignmentError(self.failures)
        return self.assignment
