"""Candidate pool: source signatures, nearest-match search and claiming."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import numpy as np

from mosaicify.color_utils import METRICS, compute_distances
from mosaicify.errors import (
    EmptyPool,
    InvalidConfig,
    NoAvailableCandidates,
    UnknownCandidate,
)
from mosaicify.signature import ColorSignature, extract_signature

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Candidate:
    """One source image, identified by its insertion index."""

    id: int
    signature: ColorSignature
    label: str | None = None


class CandidatePool:
    """Signatures of all source images plus their availability.

    The availability mask is the only mutable state and is guarded by a
    single lock. :meth:`find_best` works on a snapshot of the mask, so a
    candidate it returns may already be gone; :meth:`claim` re-checks.

    Args:
        candidates:       Candidates with ids ``0 .. n-1`` in order.
        avoid_duplicates: Whether matching must claim candidates.
        metric:           ``"euclidean"`` or ``"manhattan"``.
        channel_weights:  Optional weight per colour channel.
    """

    def __init__(
        self,
        candidates: Sequence[Candidate],
        avoid_duplicates: bool = False,
        metric: str = "euclidean",
        channel_weights: Sequence[float] | None = None,
    ) -> None:
        if not candidates:
            raise EmptyPool("the candidate pool needs at least one source image")
        if metric not in METRICS:
            msg = f"Unknown metric '{metric}'. Available: {', '.join(METRICS)}"
            raise InvalidConfig(msg)
        for i, cand in enumerate(candidates):
            if cand.id != i:
                raise InvalidConfig(f"candidate at position {i} has id {cand.id}")
            candidates[0].signature.check_comparable(cand.signature)

        self._candidates = tuple(candidates)
        self._reference = candidates[0].signature
        self.avoid_duplicates = avoid_duplicates
        self.metric = metric

        self._matrix = np.array([c.signature.values for c in candidates], dtype=np.float64)
        self._channel_weights = None if channel_weights is None else tuple(channel_weights)
        self._weights = self._expand_weights(channel_weights)
        self._available = np.ones(len(candidates), dtype=bool)
        self._lock = threading.Lock()

    @classmethod
    def from_images(
        cls,
        images: Sequence[np.ndarray],
        labels: Sequence[str] | None = None,
        *,
        color_space: str = "lab",
        subregions: int = 1,
        avoid_duplicates: bool = False,
        metric: str = "euclidean",
        channel_weights: Sequence[float] | None = None,
        workers: int | None = None,
    ) -> CandidatePool:
        """Extract a signature per source image (in parallel) and build the pool.

        Ids follow the order of *images*.
        """
        if not images:
            raise EmptyPool("the candidate pool needs at least one source image")
        if labels is not None and len(labels) != len(images):
            raise InvalidConfig(f"{len(labels)} labels given for {len(images)} images")

        logger.info("Extracting signatures of %d source images (%s) …", len(images), color_space)
        t0 = time.perf_counter()
        with ThreadPoolExecutor(max_workers=workers) as executor:
            signatures = list(executor.map(
                lambda img: extract_signature(img, color_space, subregions), images,
            ))
        logger.info("Signatures ready  (%.1f s)", time.perf_counter() - t0)

        candidates = [
            Candidate(id=i, signature=sig, label=labels[i] if labels else None)
            for i, sig in enumerate(signatures)
        ]
        return cls(
            candidates,
            avoid_duplicates=avoid_duplicates,
            metric=metric,
            channel_weights=channel_weights,
        )

    def fresh(self) -> CandidatePool:
        """A pool over the same candidates with nothing claimed."""
        return CandidatePool(
            self._candidates,
            avoid_duplicates=self.avoid_duplicates,
            metric=self.metric,
            channel_weights=self._channel_weights,
        )

    def _expand_weights(self, channel_weights: Sequence[float] | None) -> np.ndarray | None:
        if channel_weights is None:
            return None
        blocks = self._reference.subregions ** 2
        n_ch = len(self._reference) // blocks
        weights = np.asarray(channel_weights, dtype=np.float64)
        if weights.shape != (n_ch,):
            msg = f"{weights.size} channel weights given, signatures have {n_ch} channels"
            raise InvalidConfig(msg)
        if (weights < 0).any():
            raise InvalidConfig("channel weights must be non-negative")
        return np.tile(weights, blocks)

    # -- Read side -------------------------------------------------------

    def __len__(self) -> int:
        return len(self._candidates)

    @property
    def candidates(self) -> tuple[Candidate, ...]:
        return self._candidates

    def __getitem__(self, candidate_id: int) -> Candidate:
        self._check_id(candidate_id)
        return self._candidates[candidate_id]

    @property
    def available_count(self) -> int:
        with self._lock:
            return int(self._available.sum())

    def is_available(self, candidate_id: int) -> bool:
        self._check_id(candidate_id)
        with self._lock:
            return bool(self._available[candidate_id])

    def distances(self, signature: ColorSignature) -> np.ndarray:
        """(N,) distances from *signature* to every candidate, by id."""
        self._reference.check_comparable(signature)
        return compute_distances(
            self._matrix, signature.as_array(), self.metric, self._weights,
        )

    def find_best(
        self,
        signature: ColorSignature,
        require_available: bool = False,
        exclude: Iterable[int] = (),
    ) -> int:
        """Id of the candidate closest to *signature*.

        Ties go to the lowest id.

        Args:
            signature:         Query signature.
            require_available: Skip candidates that have been claimed.
            exclude:           Ids to skip in addition.

        Raises:
            NoAvailableCandidates: no candidate is eligible.
        """
        dist = self.distances(signature)

        if require_available:
            with self._lock:
                eligible = self._available.copy()
        else:
            eligible = np.ones(len(self), dtype=bool)
        for cid in exclude:
            self._check_id(cid)
            eligible[cid] = False

        if not eligible.any():
            raise NoAvailableCandidates(
                f"all {len(self)} candidates are claimed or excluded",
            )
        # argmin returns the first minimum, i.e. the lowest id
        return int(np.argmin(np.where(eligible, dist, np.inf)))

    # -- Write side ------------------------------------------------------

    def claim(self, candidate_id: int) -> bool:
        """Mark *candidate_id* unavailable.

        Returns:
            ``True`` if this call made the transition, ``False`` if the
            candidate had already been claimed.
        """
        self._check_id(candidate_id)
        with self._lock:
            if not self._available[candidate_id]:
                return False
            self._available[candidate_id] = False
            return True

    def _check_id(self, candidate_id: int) -> None:
        if not 0 <= candidate_id < len(self._candidates):
            raise UnknownCandidate(candidate_id)
