"""Fit-sample selection.

Classes:
    SamplePartition: Membership mask splitting sentence indices into fit sample and transform remainder.

Functions:
    choose_sample_indices(total, sample_size, rng): Uniform random indices without replacement.
    partition_sample(total, sample_size, rng): Build the SamplePartition used by a run.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Optional

import numpy as np


@dataclass(slots=True)
class SamplePartition:
    mask: np.ndarray
    sample_count: int
    remainder_count: int

    def in_sample(self, index: int) -> bool:
        return bool(self.mask[index])


def choose_sample_indices(total: int, sample_size: int, rng: Optional[random.Random] = None) -> list[int]:
    """Return ``min(sample_size, total)`` distinct indices drawn uniformly from ``range(total)``."""

    count = max(0, min(sample_size, total))
    source = rng or random
    return source.sample(range(max(total, 0)), count)


def partition_sample(total: int, sample_size: int, rng: Optional[random.Random] = None) -> SamplePartition:
    indices = choose_sample_indices(total, sample_size, rng)
    mask = np.zeros(max(total, 0), dtype=bool)
    mask[indices] = True
    return SamplePartition(mask=mask, sample_count=len(indices), remainder_count=max(total, 0) - len(indices))
