import random
from collections import Counter

import pytest

from sentence_atlas.services.sampler import choose_sample_indices, partition_sample


@pytest.mark.parametrize("total,sample_size", [(10, 3), (10, 10), (10, 0), (5, 12), (1, 1), (0, 4)])
def test_sample_size_and_range(total, sample_size):
    indices = choose_sample_indices(total, sample_size)
    assert len(indices) == min(sample_size, total)
    assert len(set(indices)) == len(indices)
    assert all(0 <= index < total for index in indices)


def test_full_sample_is_a_permutation():
    indices = choose_sample_indices(50, 50)
    assert sorted(indices) == list(range(50))


def test_negative_sample_size_is_empty():
    assert choose_sample_indices(8, -3) == []


def test_sampling_is_roughly_uniform():
    rng = random.Random(1234)
    counts: Counter[int] = Counter()
    draws = 4000
    for _ in range(draws):
        counts.update(choose_sample_indices(10, 3, rng))
    assert set(counts) == set(range(10))
    for index in range(10):
        assert counts[index] / draws == pytest.approx(0.3, abs=0.04)


def test_partition_is_disjoint_and_exhaustive():
    partition = partition_sample(37, 11)
    sample = [index for index in range(37) if partition.in_sample(index)]
    remainder = [index for index in range(37) if not partition.in_sample(index)]
    assert partition.sample_count == len(sample) == 11
    assert partition.remainder_count == len(remainder) == 26
    assert set(sample).isdisjoint(remainder)
    assert sorted(sample + remainder) == list(range(37))


def test_partition_with_oversized_sample_has_no_remainder():
    partition = partition_sample(4, 100)
    assert partition.sample_count == 4
    assert partition.remainder_count == 0
    assert partition.mask.all()
