"""Individual and joint compatibility of observations with predictions.

For observation z_i and prediction y_j the innovation is

    v_ij = z_i - y_j,        S_j = P_jj + R

where P_jj is the marginal covariance of prediction j and R the (optional)
observation noise shared by all observations. Two metrics are supported:

    Mahalanobis:          D_ij = v^T S^{-1} v
    Matching likelihood:  D_ij = 0.5 v^T S^{-1} v + 0.5 (O log 2π + log det S)

and two admissibility tests:

    Mahalanobis:          compatible iff  d^2 <= χ²(O, α)
    Matching likelihood:  compatible iff  -D_ij >= log_ml_threshold

For a hypothesis H = {(i_1, j_1), ..., (i_k, j_k)} the joint innovation is
the stacked vector of the k innovations and its covariance the joint
prediction covariance (with cross terms in full mode) plus blockdiag(R).
H is jointly compatible iff its joint d^2 <= χ²(k·O, α).

Author: Navigation Engineer
References: Neira & Tardos (2001); Blanco, Gonzalez-Jimenez & Fernandez-Madrigal
    (2012), "An alternative to the Mahalanobis distance for determining
    optimal correspondences in data association", IEEE Trans. Robotics.
"""

from typing import List, Optional, Sequence, Tuple

import numpy as np

from .covariance import PredictionCovariance
from .gating import (
    LOG_2PI,
    SingularInnovationError,
    chi_square_threshold,
    cholesky_innovation,
    log_determinant,
    mahalanobis_squared,
    negative_log_likelihood,
)
from .types import AssociationConfig, AssociationMetric

Pair = Tuple[int, int]


class CompatibilityEvaluator:
    """Pairwise and joint statistical tests for one association call.

    Factorises every innovation covariance S_j once at construction, so a
    malformed (non positive definite) prediction is reported before any
    pair is evaluated or any search begins.

    Attributes:
        Z: Observations, shape (M, O).
        Y: Prediction means, shape (N, O).
        covariance: Prediction covariance accessor (full or independent).
        config: Association configuration.
        R: Observation noise covariance (O, O); zeros when not given.
        dim: Measurement dimension O.
    """

    def __init__(
        self,
        Z: np.ndarray,
        Y: np.ndarray,
        covariance: PredictionCovariance,
        config: AssociationConfig,
        observation_cov: Optional[np.ndarray] = None,
    ):
        self.Z = np.asarray(Z, dtype=float)
        self.Y = np.asarray(Y, dtype=float)
        self.covariance = covariance
        self.config = config
        self.dim = self.Y.shape[1]

        if observation_cov is None:
            self.R = np.zeros((self.dim, self.dim))
        else:
            self.R = np.asarray(observation_cov, dtype=float)

        self.individual_threshold = chi_square_threshold(
            self.dim, config.chi2_quantile
        )
        self._joint_thresholds = {}

        self._factors: List[np.ndarray] = []
        self._log_dets = np.zeros(self.Y.shape[0])
        for j in range(self.Y.shape[0]):
            try:
                L = cholesky_innovation(covariance.block(j) + self.R)
            except SingularInnovationError as e:
                raise SingularInnovationError(
                    f"Innovation covariance of prediction {j} is singular: {e}"
                ) from e
            self._factors.append(L)
            self._log_dets[j] = log_determinant(L)

    @property
    def n_observations(self) -> int:
        return self.Z.shape[0]

    @property
    def n_predictions(self) -> int:
        return self.Y.shape[0]

    def _gate_d2(self) -> np.ndarray:
        """Per-prediction bound on d^2 above which a pair is incompatible."""
        if self.config.effective_compatibility_metric is AssociationMetric.MAHALANOBIS:
            return np.full(self.n_predictions, self.individual_threshold)
        # -0.5 d2 - 0.5 (O log 2π + log det S) >= τ
        return (
            -2.0 * self.config.log_ml_threshold
            - self.dim * LOG_2PI
            - self._log_dets
        )

    def gate_radius(self) -> float:
        """Euclidean radius outside which no observation can be compatible.

        Uses d^2 = v^T S^{-1} v >= |v|^2 / λ_max(S): a pair whose innovation
        norm exceeds sqrt(gate_j · λ_max(S_j)) fails the individual test for
        certain. Returns the largest such radius over all predictions, so a
        single range query is conservative for every prediction.

        Returns:
            Radius (>= 0). 0.0 when no prediction can ever be compatible.
        """
        if self.n_predictions == 0:
            return 0.0
        gates = np.maximum(self._gate_d2(), 0.0)
        lam_max = np.array(
            [np.max(np.linalg.eigvalsh(L @ L.T)) for L in self._factors]
        )
        # Slack so rounding near the boundary never drops a compatible pair
        return float(np.sqrt(np.max(gates * lam_max)) * (1.0 + 1e-6) + 1e-12)

    def evaluate(
        self, candidates: Optional[Sequence[Sequence[int]]] = None
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Individual distance and compatibility matrices.

        Args:
            candidates: Optional per-observation lists of prediction indices
                to evaluate (e.g., from a KD-tree range query). Pairs not
                listed are left at distance inf and incompatible. None
                evaluates every pair.

        Returns:
            Tuple (distances, compatibility), shapes (M, N), float and bool.
        """
        M, N = self.n_observations, self.n_predictions
        distances = np.full((M, N), np.inf)
        compatibility = np.zeros((M, N), dtype=bool)
        if M == 0 or N == 0:
            return distances, compatibility

        # Group candidate observations by prediction: one triangular solve
        # per prediction for all of its observations
        if candidates is None:
            by_prediction = [np.arange(M)] * N
        else:
            buckets: List[List[int]] = [[] for _ in range(N)]
            for i, cands in enumerate(candidates):
                for j in cands:
                    buckets[j].append(i)
            by_prediction = [np.asarray(b, dtype=int) for b in buckets]

        compat_metric = self.config.effective_compatibility_metric
        for j in range(N):
            rows = by_prediction[j]
            if rows.size == 0:
                continue
            V = self.Z[rows] - self.Y[j]
            d2 = np.atleast_1d(mahalanobis_squared(V, self._factors[j]))
            nll = negative_log_likelihood(d2, self._log_dets[j], self.dim)

            if self.config.metric is AssociationMetric.MAHALANOBIS:
                distances[rows, j] = d2
            else:
                distances[rows, j] = nll

            if compat_metric is AssociationMetric.MAHALANOBIS:
                compatibility[rows, j] = d2 <= self.individual_threshold
            else:
                compatibility[rows, j] = -nll >= self.config.log_ml_threshold

        return distances, compatibility

    def joint_threshold(self, n_pairs: int) -> float:
        """χ²(k·O, α) for a hypothesis with k pairs."""
        if n_pairs not in self._joint_thresholds:
            self._joint_thresholds[n_pairs] = chi_square_threshold(
                n_pairs * self.dim, self.config.chi2_quantile
            )
        return self._joint_thresholds[n_pairs]

    def joint(self, pairs: Sequence[Pair]) -> Tuple[float, float]:
        """Joint squared Mahalanobis distance and joint metric distance.

        Args:
            pairs: (observation index, prediction index) pairs.

        Returns:
            Tuple (d2, distance): the joint d^2, and the joint distance
            under the configured metric (d^2 itself, or the joint negative
            log-likelihood). (0.0, 0.0) for no pairs.

        Raises:
            SingularInnovationError: If the joint innovation covariance is
                not positive definite (e.g., perfectly correlated
                predictions).
        """
        k = len(pairs)
        if k == 0:
            return 0.0, 0.0

        obs = [i for i, _ in pairs]
        preds = [j for _, j in pairs]
        v = (self.Z[obs] - self.Y[preds]).ravel()
        S = self.covariance.joint(preds) + np.kron(np.eye(k), self.R)

        L = cholesky_innovation(S)
        d2 = mahalanobis_squared(v, L)
        if self.config.metric is AssociationMetric.MAHALANOBIS:
            return d2, d2
        return d2, float(negative_log_likelihood(d2, log_determinant(L), k * self.dim))

    def is_jointly_compatible(self, d2: float, n_pairs: int) -> bool:
        """Joint chi-square test for a hypothesis with k pairs."""
        if n_pairs == 0:
            return True
        return d2 <= self.joint_threshold(n_pairs)
