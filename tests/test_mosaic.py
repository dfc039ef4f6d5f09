"""Tests for signatures, grid partitioning, the candidate pool and matching."""

from __future__ import annotations

import io
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from mosaicify.color_utils import compute_distances, rgb_to_gray, rgb_to_lab
from mosaicify.config import MosaicConfig
from mosaicify.errors import (
    AssignmentConflict,
    EmptyPool,
    ImageTooSmall,
    IncompatibleSignature,
    InvalidConfig,
    InvalidGridShape,
    InvalidRegion,
    NoAvailableCandidates,
    UnknownCandidate,
)
from mosaicify.grid import cell_bounds, partition, split_lengths
from mosaicify.image_io import (
    collect_images,
    compute_target_size,
    load_image,
    load_sources,
)
from mosaicify.matcher import match_cell
from mosaicify.pool import Candidate, CandidatePool
from mosaicify.signature import ColorSignature, extract_signature, pixels_from_samples

# -- Helpers -----------------------------------------------------------

RED = (255, 0, 0)
GREEN = (0, 255, 0)
BLUE = (0, 0, 255)


def solid(color: tuple[int, int, int], h: int = 8, w: int = 8) -> np.ndarray:
    return np.full((h, w, 3), color, dtype=np.uint8)


def rgb_pool(values: list[tuple[float, ...]], **kwargs) -> CandidatePool:
    candidates = [
        Candidate(id=i, signature=ColorSignature(tuple(float(x) for x in v)))
        for i, v in enumerate(values)
    ]
    return CandidatePool(candidates, **kwargs)


def rgb_sig(*values: float) -> ColorSignature:
    return ColorSignature(tuple(float(v) for v in values))


@pytest.fixture
def tmp_image(tmp_path: Path) -> Path:
    """Write a small non-square test PNG to disk."""
    img = Image.fromarray(
        np.random.randint(0, 256, (48, 64, 3), dtype=np.uint8),
    )
    p = tmp_path / "test.png"
    img.save(p)
    return p


# -- Config ------------------------------------------------------------

class TestConfig:
    def test_defaults(self) -> None:
        cfg = MosaicConfig()
        assert cfg.color_space == "lab"
        assert cfg.avoid_duplicates is False
        assert cfg.validate() is cfg

    def test_frozen(self) -> None:
        cfg = MosaicConfig()
        with pytest.raises(AttributeError):
            cfg.rows = 128  # type: ignore[misc]

    @pytest.mark.parametrize("kwargs", [
        {"color_space": "hsv"},
        {"metric": "cosine"},
        {"solver": "annealing"},
        {"subregions": 0},
        {"max_claim_retries": -1},
        {"workers": 0},
        {"source_max_side": 0},
        {"source_max_side": -5},
        {"channel_weights": (1.0, 1.0)},
        {"channel_weights": (1.0, -1.0, 1.0)},
        {"color_space": "gray", "channel_weights": (1.0, 1.0, 1.0)},
    ])
    def test_invalid(self, kwargs: dict) -> None:
        with pytest.raises(InvalidConfig):
            MosaicConfig(**kwargs).validate()

    def test_invalid_config_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            MosaicConfig(solver="nope").validate()


# -- Colour utilities --------------------------------------------------

class TestColorUtils:
    def test_lab_red(self) -> None:
        lab = rgb_to_lab(np.array([RED], dtype=np.uint8))
        assert lab.shape == (1, 3)
        assert lab[0, 0] == pytest.approx(53.24, abs=0.1)

    def test_gray_range(self) -> None:
        g = rgb_to_gray(np.array([[0, 0, 0], [255, 255, 255]], dtype=np.uint8))
        np.testing.assert_allclose(g.ravel(), [0.0, 255.0])

    def test_euclidean(self) -> None:
        d = compute_distances(np.array([[3.0, 4.0, 0.0]]), np.zeros(3))
        np.testing.assert_allclose(d, [5.0])

    def test_manhattan(self) -> None:
        d = compute_distances(np.array([[3.0, 4.0, 0.0]]), np.zeros(3), "manhattan")
        np.testing.assert_allclose(d, [7.0])

    def test_unknown_metric(self) -> None:
        with pytest.raises(ValueError):
            compute_distances(np.zeros((1, 3)), np.zeros(3), "cosine")


# -- Signature extraction ----------------------------------------------

class TestSignature:
    def test_uniform_mean(self) -> None:
        sig = extract_signature(solid(RED), "rgb")
        assert sig.values == (255.0, 0.0, 0.0)
        assert sig.color_space == "rgb"

    def test_mean_of_mixed_region(self) -> None:
        region = np.array([[[0, 0, 0], [100, 200, 50]]], dtype=np.uint8)
        sig = extract_signature(region, "rgb")
        assert sig.values == (50.0, 100.0, 25.0)

    def test_deterministic(self) -> None:
        rng = np.random.default_rng(3)
        region = rng.integers(0, 256, size=(17, 23, 3), dtype=np.uint8)
        for space in ("rgb", "lab", "gray"):
            assert extract_signature(region, space) == extract_signature(region, space)

    def test_gray_has_one_channel(self) -> None:
        assert len(extract_signature(solid(BLUE), "gray")) == 1

    def test_subregions(self) -> None:
        region = np.zeros((4, 4, 3), dtype=np.uint8)
        region[:, 2:] = 255
        sig = extract_signature(region, "rgb", subregions=2)
        assert sig.values == (0.0,) * 3 + (255.0,) * 3 + (0.0,) * 3 + (255.0,) * 3

    def test_subregions_uneven_split(self) -> None:
        region = np.zeros((3, 3, 3), dtype=np.uint8)
        region[2, :] = 90
        sig = extract_signature(region, "rgb", subregions=2)
        # first band holds rows 0-1, second band row 2
        assert sig.values[:6] == (0.0,) * 6
        assert sig.values[6:] == (90.0,) * 6

    def test_zero_area(self) -> None:
        with pytest.raises(InvalidRegion):
            extract_signature(np.zeros((0, 5, 3), dtype=np.uint8))

    def test_wrong_shape(self) -> None:
        with pytest.raises(InvalidRegion):
            extract_signature(np.zeros((5, 5), dtype=np.uint8))

    def test_region_smaller_than_subgrid(self) -> None:
        with pytest.raises(InvalidRegion):
            extract_signature(solid(RED, 2, 2), subregions=3)

    def test_comparability(self) -> None:
        a = extract_signature(solid(RED), "rgb")
        b = extract_signature(solid(RED), "lab")
        assert a.is_comparable(a)
        assert not a.is_comparable(b)
        with pytest.raises(IncompatibleSignature):
            a.check_comparable(b)

    def test_pixels_from_samples(self) -> None:
        arr = pixels_from_samples(2, 1, [RED, BLUE])
        assert arr.shape == (1, 2, 3)
        assert tuple(arr[0, 1]) == BLUE

    def test_pixels_from_samples_count_mismatch(self) -> None:
        with pytest.raises(InvalidRegion):
            pixels_from_samples(2, 2, [RED, BLUE])

    @pytest.mark.parametrize("samples", [
        [(1, 2)],
        [(1, 2, 3, 4)],
        [(300, 0, 0)],
        [(-1, 0, 0)],
        [(0.5, 0, 0)],
    ])
    def test_pixels_from_samples_rejects_bad_samples(self, samples: list) -> None:
        with pytest.raises(InvalidRegion):
            pixels_from_samples(1, 1, samples)


# -- Grid partitioning -------------------------------------------------

class TestGrid:
    def test_split_lengths(self) -> None:
        assert split_lengths(10, 3) == [4, 3, 3]
        assert split_lengths(9, 3) == [3, 3, 3]
        assert split_lengths(5, 5) == [1, 1, 1, 1, 1]

    @pytest.mark.parametrize("w,h,rows,cols", [
        (10, 6, 3, 4),
        (7, 7, 7, 7),
        (13, 5, 2, 5),
        (1, 1, 1, 1),
        (100, 3, 3, 9),
    ])
    def test_cells_cover_image_exactly_once(
        self, w: int, h: int, rows: int, cols: int,
    ) -> None:
        bounds = cell_bounds(w, h, rows, cols)
        assert len(bounds) == rows * cols
        coverage = np.zeros((h, w), dtype=int)
        for _, _, x, y, cw, ch in bounds:
            assert cw in (w // cols, w // cols + 1)
            assert ch in (h // rows, h // rows + 1)
            coverage[y : y + ch, x : x + cw] += 1
        assert (coverage == 1).all()

    def test_remainder_goes_to_first_cells(self) -> None:
        bounds = cell_bounds(10, 3, 1, 3)
        assert [b[4] for b in bounds] == [4, 3, 3]
        assert [b[2] for b in bounds] == [0, 4, 7]

    @pytest.mark.parametrize("rows,cols", [(0, 3), (3, 0), (-1, 2)])
    def test_invalid_shape(self, rows: int, cols: int) -> None:
        with pytest.raises(InvalidGridShape):
            cell_bounds(10, 10, rows, cols)

    @pytest.mark.parametrize("rows,cols", [(11, 1), (1, 11)])
    def test_image_too_small(self, rows: int, cols: int) -> None:
        with pytest.raises(ImageTooSmall):
            cell_bounds(10, 10, rows, cols)

    def test_partition_signatures_and_views(self) -> None:
        target = np.zeros((4, 4, 3), dtype=np.uint8)
        target[:2, :2] = RED
        target[2:, 2:] = BLUE
        cells = partition(target, 2, 2, color_space="rgb")
        assert [c.coords for c in cells] == [(0, 0), (0, 1), (1, 0), (1, 1)]
        assert cells[0].signature.values == (255.0, 0.0, 0.0)
        assert cells[3].signature.values == (0.0, 0.0, 255.0)
        assert not cells[0].pixels.flags.writeable
        assert target.flags.writeable
        assert cells[0].pixels.shape == (2, 2, 3)


# -- Candidate pool ----------------------------------------------------

class TestPool:
    def test_tie_goes_to_lowest_id(self) -> None:
        pool = rgb_pool([(0, 0, 0), (10, 10, 10), (10, 10, 10)])
        assert pool.find_best(rgb_sig(9, 9, 9)) == 1

    def test_global_minimum(self) -> None:
        rng = np.random.default_rng(11)
        values = [tuple(v) for v in rng.integers(0, 256, size=(50, 3))]
        pool = rgb_pool(values)
        query = rgb_sig(120, 30, 200)
        expected = int(np.argmin([
            np.linalg.norm(np.array(v, dtype=float) - query.as_array()) for v in values
        ]))
        assert pool.find_best(query) == expected

    def test_empty_pool(self) -> None:
        with pytest.raises(EmptyPool):
            CandidatePool([])
        with pytest.raises(EmptyPool):
            CandidatePool.from_images([])

    def test_claim_once(self) -> None:
        pool = rgb_pool([(0, 0, 0), (5, 5, 5)])
        assert pool.claim(0) is True
        assert pool.claim(0) is False
        assert not pool.is_available(0)
        assert pool.available_count == 1

    def test_find_best_skips_claimed(self) -> None:
        pool = rgb_pool([(0, 0, 0), (5, 5, 5), (200, 200, 200)])
        pool.claim(0)
        assert pool.find_best(rgb_sig(0, 0, 0)) == 0
        assert pool.find_best(rgb_sig(0, 0, 0), require_available=True) == 1

    def test_exclude(self) -> None:
        pool = rgb_pool([(0, 0, 0), (5, 5, 5), (200, 200, 200)])
        assert pool.find_best(rgb_sig(0, 0, 0), exclude={0, 1}) == 2

    def test_no_available_candidates(self) -> None:
        pool = rgb_pool([(0, 0, 0), (5, 5, 5)])
        pool.claim(0)
        pool.claim(1)
        with pytest.raises(NoAvailableCandidates):
            pool.find_best(rgb_sig(0, 0, 0), require_available=True)

    def test_unknown_candidate(self) -> None:
        pool = rgb_pool([(0, 0, 0)])
        with pytest.raises(UnknownCandidate):
            pool.claim(3)

    def test_channel_weights(self) -> None:
        values = [(100, 0, 0), (0, 50, 0)]
        assert rgb_pool(values).find_best(rgb_sig(0, 0, 0)) == 1
        weighted = rgb_pool(values, channel_weights=(1.0, 9.0, 1.0))
        assert weighted.find_best(rgb_sig(0, 0, 0)) == 0

    def test_weight_count_mismatch(self) -> None:
        with pytest.raises(InvalidConfig):
            rgb_pool([(0, 0, 0)], channel_weights=(1.0, 2.0))

    def test_manhattan_metric(self) -> None:
        values = [(20, 20, 20), (0, 0, 40)]
        assert rgb_pool(values).find_best(rgb_sig(0, 0, 0)) == 0
        assert rgb_pool(values, metric="manhattan").find_best(rgb_sig(0, 0, 0)) == 1

    def test_incompatible_query(self) -> None:
        pool = rgb_pool([(0, 0, 0)])
        with pytest.raises(IncompatibleSignature):
            pool.find_best(ColorSignature((0.0,), color_space="gray"))

    def test_from_images_keeps_order(self) -> None:
        pool = CandidatePool.from_images(
            [solid(RED), solid(BLUE), solid(GREEN)],
            labels=["red.png", "blue.png", "green.png"],
            color_space="rgb",
            workers=3,
        )
        assert len(pool) == 3
        assert pool[1].label == "blue.png"
        assert pool[2].signature.values == (0.0, 255.0, 0.0)

    def test_fresh_resets_availability(self) -> None:
        pool = rgb_pool([(0, 0, 0), (5, 5, 5)], avoid_duplicates=True)
        pool.claim(0)
        again = pool.fresh()
        assert again.available_count == 2
        assert again.avoid_duplicates
        assert pool.available_count == 1


# -- Matcher -----------------------------------------------------------

class TestMatcher:
    @pytest.fixture
    def red_cell(self):
        return partition(solid(RED, 2, 2), 1, 1, color_space="rgb")[0]

    def test_without_duplicate_avoidance_does_not_claim(self, red_cell) -> None:
        pool = rgb_pool([RED, BLUE])
        assert match_cell(red_cell, pool) == 0
        assert match_cell(red_cell, pool) == 0
        assert pool.available_count == 2

    def test_claims_best_available(self, red_cell) -> None:
        pool = rgb_pool([RED, (200, 0, 0), BLUE], avoid_duplicates=True)
        assert match_cell(red_cell, pool) == 0
        assert match_cell(red_cell, pool) == 1
        assert pool.available_count == 1

    def test_retries_after_lost_race(self, red_cell, refusing_pool) -> None:
        pool = refusing_pool([RED, (200, 0, 0), BLUE], refuse={0})
        assert match_cell(red_cell, pool, max_claim_retries=1) == 1

    def test_persistent_race_is_conflict(self, red_cell, refusing_pool) -> None:
        values = [(250 - 10 * i, 0, 0) for i in range(6)]
        pool = refusing_pool(values, refuse=range(6))
        with pytest.raises(AssignmentConflict) as info:
            match_cell(red_cell, pool, max_claim_retries=3)
        assert info.value.coords == (0, 0)
        assert info.value.attempts == 4


# -- Image I/O ---------------------------------------------------------

class TestImageIO:
    def test_target_size(self) -> None:
        assert compute_target_size(1920, 1080, 64) == (64, 36)
        assert compute_target_size(1080, 1920, 64) == (36, 64)

    def test_load_shrinks_large_images(self, tmp_image: Path) -> None:
        arr = load_image(tmp_image, max_side=32)
        assert arr.shape == (24, 32, 3)

    def test_load_never_enlarges(self, tmp_image: Path) -> None:
        arr = load_image(tmp_image, max_side=500)
        assert arr.shape == (48, 64, 3)

    def test_collect_images(self, tmp_path: Path, tmp_image: Path) -> None:
        (tmp_path / "notes.txt").write_text("not an image")
        found = collect_images(tmp_path, MosaicConfig.SUPPORTED_EXTENSIONS)
        assert found == [tmp_image]
        assert collect_images(tmp_path / "missing", MosaicConfig.SUPPORTED_EXTENSIONS) == []

    def test_load_sources_skips_unreadable(self, tmp_path: Path, tmp_image: Path) -> None:
        broken = tmp_path / "broken.png"
        broken.write_bytes(b"not a png")
        images, labels = load_sources([broken, tmp_image], max_side=16)
        assert labels == ["test.png"]
        assert images[0].shape == (12, 16, 3)

    def test_load_sources_accepts_uploads(self, tmp_image: Path) -> None:
        good = io.BytesIO(tmp_image.read_bytes())
        good.name = "upload.png"
        bad = io.BytesIO(b"not an image")
        bad.name = "bad.jpg"
        images, labels = load_sources([bad, good], max_side=16)
        assert labels == ["upload.png"]
        assert images[0].shape == (12, 16, 3)
