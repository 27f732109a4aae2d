import numpy as np
import pytest

from sentence_atlas.core.errors import ReductionError
from sentence_atlas.services.reducer import UMAPReducer, neighbor_count


@pytest.mark.parametrize(
    "total,expected",
    [(1, 2), (2, 2), (3, 2), (4, 3), (10, 9), (16, 15), (17, 15), (10_000, 15)],
)
def test_neighbor_count_is_clamped(total, expected):
    assert neighbor_count(total) == expected


def test_transform_before_fit_is_a_programming_error():
    reducer = UMAPReducer(10)
    with pytest.raises(RuntimeError):
        reducer.transform(np.zeros((2, 4), dtype=np.float32))


def test_fit_on_empty_sample_fails():
    reducer = UMAPReducer(10)
    with pytest.raises(ReductionError):
        reducer.fit(np.zeros((0, 4), dtype=np.float32))
    assert not reducer.is_fitted


def test_fit_then_transform_shapes():
    rng = np.random.default_rng(42)
    sample = rng.normal(size=(40, 8)).astype(np.float32)
    remainder = rng.normal(size=(6, 8)).astype(np.float32)

    reducer = UMAPReducer(46, random_state=42)
    assert reducer.n_neighbors == 15

    coords = reducer.fit(sample)
    assert coords.shape == (40, 2)
    assert np.isfinite(coords).all()
    assert reducer.is_fitted

    projected = reducer.transform(remainder)
    assert projected.shape == (6, 2)
    assert np.isfinite(projected).all()

    with pytest.raises(RuntimeError):
        reducer.fit(sample)


def test_transform_of_empty_batch_is_empty():
    rng = np.random.default_rng(7)
    reducer = UMAPReducer(30, random_state=7)
    reducer.fit(rng.normal(size=(30, 5)).astype(np.float32))
    assert reducer.transform(np.zeros((0, 5), dtype=np.float32)).shape == (0, 2)
