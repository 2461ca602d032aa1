"""KD-tree over prediction means to restrict individual compatibility tests.

Evaluating every observation against every prediction costs O(M·N). When
the map is large most of those pairs are trivially incompatible; a range
query around each observation with a radius that provably contains every
compatible prediction (see CompatibilityEvaluator.gate_radius) skips them
without changing the compatibility matrix.

Author: Navigation Engineer
"""

from typing import List

import numpy as np
from scipy.spatial import KDTree


class PredictionIndex:
    """Read-only spatial index over prediction means.

    The tree is built once and never modified, so one instance can be
    shared by parallel association calls on the same prediction set.

    Attributes:
        n_predictions: Number of indexed predictions.
        dim: Dimension of the indexed means.

    Examples:
        >>> index = PredictionIndex(np.array([[0.0, 0.0], [5.0, 5.0]]))
        >>> index.query(np.array([[0.1, 0.0]]), radius=1.0)
        [[0]]
    """

    def __init__(self, prediction_means: np.ndarray):
        means = np.asarray(prediction_means, dtype=float)
        if means.ndim != 2 or means.shape[0] == 0:
            raise ValueError(
                f"prediction_means must have shape (N, O) with N > 0, got {means.shape}"
            )
        self.n_predictions, self.dim = means.shape
        self._tree = KDTree(means)

    def query(self, observations: np.ndarray, radius: float) -> List[List[int]]:
        """Predictions within `radius` of each observation.

        Args:
            observations: Observation vectors, shape (M, O).
            radius: Euclidean search radius (>= 0).

        Returns:
            For each observation, ascending list of prediction indices.
        """
        observations = np.asarray(observations, dtype=float)
        if observations.ndim != 2 or observations.shape[1] != self.dim:
            raise ValueError(
                f"observations must have shape (M, {self.dim}), got {observations.shape}"
            )
        if radius < 0 or not np.isfinite(radius):
            raise ValueError(f"radius must be finite and non-negative, got {radius}")
        if observations.shape[0] == 0:
            return []

        hits = self._tree.query_ball_point(observations, r=radius)
        return [sorted(int(j) for j in h) for h in hits]
