"""UMAP reduction adapter used by projection runs.

Classes:
    Reducer: Protocol for the two-phase fit/transform capability.
    UMAPReducer: Run-scoped UMAP wrapper; unfit until ``fit`` is called exactly once.

Functions:
    neighbor_count(total_count): Neighbour count for the UMAP graph given the run's sentence count.
"""

from __future__ import annotations

import logging
import warnings
from typing import Optional, Protocol

import numpy as np
import umap

from sentence_atlas.core.errors import ReductionError

_LOGGER = logging.getLogger(__name__)

# Structural constants; changing them changes every layout.
UMAP_N_COMPONENTS = 2
UMAP_MIN_NEIGHBORS = 2
UMAP_MAX_NEIGHBORS = 15
UMAP_MIN_DIST = 0.1
UMAP_SPREAD = 1.0
UMAP_N_EPOCHS = 300
UMAP_METRIC = "euclidean"


class Reducer(Protocol):
    @property
    def is_fitted(self) -> bool: ...

    def fit(self, vectors: np.ndarray) -> np.ndarray: ...

    def transform(self, vectors: np.ndarray) -> np.ndarray: ...


def neighbor_count(total_count: int) -> int:
    return max(UMAP_MIN_NEIGHBORS, min(UMAP_MAX_NEIGHBORS, total_count - 1))


class UMAPReducer:
    def __init__(self, total_count: int, *, random_state: Optional[int] = None) -> None:
        self.total_count = total_count
        self.n_neighbors = neighbor_count(total_count)
        self.random_state = random_state
        self._model: Optional[umap.UMAP] = None

    @property
    def is_fitted(self) -> bool:
        return self._model is not None

    def fit(self, vectors: np.ndarray) -> np.ndarray:
        """Fit on the sample and return its 2-D coordinates in input order.

        Raises:
            RuntimeError: If the reducer was already fitted.
            ReductionError: If the sample is empty or UMAP fails.
        """
        if self._model is not None:
            raise RuntimeError("UMAP reducer already fitted for this run.")

        data = np.asarray(vectors, dtype=np.float32)
        if data.ndim != 2 or data.shape[0] == 0:
            raise ReductionError("Cannot fit UMAP on an empty sample.")

        model = umap.UMAP(
            n_components=UMAP_N_COMPONENTS,
            n_neighbors=self.n_neighbors,
            min_dist=UMAP_MIN_DIST,
            spread=UMAP_SPREAD,
            n_epochs=UMAP_N_EPOCHS,
            metric=UMAP_METRIC,
            random_state=self.random_state,
        )
        try:
            with warnings.catch_warnings():
                warnings.filterwarnings("ignore", message=".*Spectral initialisation failed.*")
                warnings.filterwarnings("ignore", message=".*n_neighbors is larger than the dataset size.*")
                coords = model.fit_transform(data)
        except Exception as exc:
            raise ReductionError(str(exc) or "UMAP fit failed.") from exc

        self._model = model
        _LOGGER.debug("UMAP fitted on %d vectors (n_neighbors=%d)", data.shape[0], self.n_neighbors)
        return np.asarray(coords, dtype=np.float32)

    def transform(self, vectors: np.ndarray) -> np.ndarray:
        """Project additional vectors into the fitted space, preserving input order.

        Raises:
            RuntimeError: If ``fit`` has not been called.
            ReductionError: If UMAP fails.
        """
        if self._model is None:
            raise RuntimeError("UMAP reducer not fitted. Call fit() first.")

        data = np.asarray(vectors, dtype=np.float32)
        if data.shape[0] == 0:
            return np.zeros((0, UMAP_N_COMPONENTS), dtype=np.float32)
        try:
            coords = self._model.transform(data)
        except Exception as exc:
            raise ReductionError(str(exc) or "UMAP transform failed.") from exc
        return np.asarray(coords, dtype=np.float32)
