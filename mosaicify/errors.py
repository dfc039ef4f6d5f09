"""Exception hierarchy for mosaic runs."""

from __future__ import annotations

from dataclasses import dataclass


class MosaicError(Exception):
    """Base class for every error raised by :mod:`mosaicify`."""


class InvalidConfig(MosaicError, ValueError):
    """A configuration value is outside its accepted domain."""


class InvalidRegion(MosaicError, ValueError):
    """A pixel region cannot be reduced to a signature."""


class InvalidGridShape(MosaicError, ValueError):
    """``rows`` or ``cols`` is not a positive integer."""


class ImageTooSmall(MosaicError, ValueError):
    """The grid has more rows/cols than the target has pixels."""


class EmptyPool(MosaicError, ValueError):
    """No source images were supplied."""


class IncompatibleSignature(MosaicError, ValueError):
    """Two signatures were extracted with different parameters."""


class UnknownCandidate(MosaicError, KeyError):
    """A candidate id outside the pool was referenced."""


class NoAvailableCandidates(MosaicError):
    """Every candidate eligible for a search has already been claimed."""


class AssignmentConflict(MosaicError):
    """A cell kept losing claim races after the bounded number of retries."""

    def __init__(self, coords: tuple[int, int], attempts: int) -> None:
        self.coords = coords
        self.attempts = attempts
        super().__init__(
            f"cell {coords} lost {attempts} consecutive claim races",
        )


@dataclass(frozen=True)
class CellFailure:
    """Why a single cell ended up without a candidate."""

    coords: tuple[int, int]
    error: MosaicError

    def __str__(self) -> str:
        return f"{self.coords}: {type(self.error).__name__}: {self.error}"


class PartialAssignmentError(MosaicError):
    """Raised for a run in which at least one cell failed."""

    def __init__(self, failures: list[CellFailure]) -> None:
        self.failures = failures
        lines = "\n".join(f"  {f}" for f in failures)
        super().__init__(f"{len(failures)} cell(s) could not be assigned:\n{lines}")
