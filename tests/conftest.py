"""Shared fixtures."""

from __future__ import annotations

from collections.abc import Callable, Iterable

import pytest

from mosaicify.pool import Candidate, CandidatePool
from mosaicify.signature import ColorSignature


class RefusingPool(CandidatePool):
    """Pool whose claims on *refuse* always lose, as if another worker won."""

    def __init__(self, *args, refuse: Iterable[int] = (), **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.refuse = set(refuse)

    def claim(self, candidate_id: int) -> bool:
        if candidate_id in self.refuse:
            return False
        return super().claim(candidate_id)


@pytest.fixture
def refusing_pool() -> Callable[..., RefusingPool]:
    """Factory: duplicate-avoiding RGB pool over *values* that loses every claim on *refuse*."""

    def make(values: list[tuple[int, int, int]], refuse: Iterable[int]) -> RefusingPool:
        candidates = [
            Candidate(i, ColorSignature(tuple(float(x) for x in v)))
            for i, v in enumerate(values)
        ]
        return RefusingPool(candidates, avoid_duplicates=True, refuse=refuse)

    return make
