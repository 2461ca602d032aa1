"""Prediction covariance layouts.

SLAM landmark predictions come with one of two covariance layouts:

    FULL:        (N·O)×(N·O) matrix. Landmark estimates are correlated
                 through the shared robot pose, and the joint compatibility
                 test needs those cross terms.
    INDEPENDENT: (N·O)×O vertical stack of N blocks. Cross-correlations are
                 ignored for speed.

Both are exposed through the same two accessors, `block(j)` and
`joint(indices)`, so the compatibility evaluator never branches on layout.

Author: Navigation Engineer
"""

from typing import Optional, Sequence, Union

import numpy as np

from .types import CovarianceMode


class FullPredictionCovariance:
    """Full cross-covariance of N stacked O-dimensional predictions.

    Attributes:
        P: Covariance matrix, shape (N·O, N·O).
        dim: Measurement dimension O.
        n_predictions: Number of predictions N.
    """

    mode = CovarianceMode.FULL

    def __init__(self, P: np.ndarray, dim: int):
        self.P = np.asarray(P, dtype=float)
        self.dim = int(dim)
        self.n_predictions = self.P.shape[0] // self.dim

    def block(self, j: int) -> np.ndarray:
        """Marginal O×O covariance of prediction j."""
        s = slice(j * self.dim, (j + 1) * self.dim)
        return self.P[s, s]

    def joint(self, indices: Sequence[int]) -> np.ndarray:
        """Joint covariance of predictions `indices`, cross terms included."""
        idx = _stacked_rows(indices, self.dim)
        return self.P[np.ix_(idx, idx)]


class IndependentPredictionCovariance:
    """N independent O×O covariance blocks, stacked vertically.

    Attributes:
        P: Stacked blocks, shape (N·O, O).
        dim: Measurement dimension O.
        n_predictions: Number of predictions N.
    """

    mode = CovarianceMode.INDEPENDENT

    def __init__(self, P: np.ndarray, dim: int):
        self.P = np.asarray(P, dtype=float)
        self.dim = int(dim)
        self.n_predictions = self.P.shape[0] // self.dim

    def block(self, j: int) -> np.ndarray:
        """Covariance of prediction j."""
        return self.P[j * self.dim:(j + 1) * self.dim, :]

    def joint(self, indices: Sequence[int]) -> np.ndarray:
        """Block-diagonal joint covariance of predictions `indices`."""
        k = len(indices)
        O = self.dim
        S = np.zeros((k * O, k * O))
        for a, j in enumerate(indices):
            S[a * O:(a + 1) * O, a * O:(a + 1) * O] = self.block(j)
        return S


PredictionCovariance = Union[FullPredictionCovariance, IndependentPredictionCovariance]


def _stacked_rows(indices: Sequence[int], dim: int) -> np.ndarray:
    """Row indices of the stacked state for predictions `indices`."""
    indices = np.asarray(indices, dtype=int)
    return (indices[:, None] * dim + np.arange(dim)[None, :]).ravel()


def make_prediction_covariance(
    P: np.ndarray,
    n_predictions: int,
    dim: int,
    mode: Optional[Union[CovarianceMode, str]] = None,
) -> PredictionCovariance:
    """Validate a prediction covariance matrix and wrap it.

    Args:
        P: Covariance matrix, (N·O)×(N·O) for FULL or (N·O)×O for INDEPENDENT.
        n_predictions: Number of predictions N.
        dim: Measurement dimension O.
        mode: Layout. If None, inferred from the shape (for N == 1 both
              layouts coincide and FULL is used).

    Returns:
        FullPredictionCovariance or IndependentPredictionCovariance.

    Raises:
        ValueError: If the shape does not match N and O, the row count is
            not a multiple of O, or entries are non-finite.

    Examples:
        >>> cov = make_prediction_covariance(np.eye(4), n_predictions=2, dim=2)
        >>> cov.mode
        <CovarianceMode.FULL: 'full'>
        >>> cov = make_prediction_covariance(np.vstack([np.eye(2)] * 2), 2, 2)
        >>> cov.mode
        <CovarianceMode.INDEPENDENT: 'independent'>
    """
    P = np.asarray(P, dtype=float)

    if P.ndim != 2:
        raise ValueError(f"Prediction covariance must be 2D, got shape {P.shape}")
    if dim < 1:
        raise ValueError(f"Measurement dimension must be positive, got {dim}")
    if P.shape[0] % dim != 0:
        raise ValueError(
            f"Prediction covariance has {P.shape[0]} rows, "
            f"not a multiple of the measurement dimension {dim}"
        )
    if P.shape[0] != n_predictions * dim:
        raise ValueError(
            f"Prediction covariance has {P.shape[0]} rows, expected "
            f"{n_predictions} predictions × {dim} = {n_predictions * dim}"
        )

    full_shape = (n_predictions * dim, n_predictions * dim)
    block_shape = (n_predictions * dim, dim)

    if mode is None:
        if P.shape == full_shape:
            mode = CovarianceMode.FULL
        elif P.shape == block_shape:
            mode = CovarianceMode.INDEPENDENT
        else:
            raise ValueError(
                f"Prediction covariance shape {P.shape} is neither full "
                f"{full_shape} nor stacked blocks {block_shape}"
            )
    elif not isinstance(mode, CovarianceMode):
        mode = CovarianceMode(str(mode).lower())

    if mode is CovarianceMode.FULL and P.shape != full_shape:
        raise ValueError(
            f"Full prediction covariance must have shape {full_shape}, got {P.shape}"
        )
    if mode is CovarianceMode.INDEPENDENT and P.shape != block_shape:
        raise ValueError(
            f"Stacked prediction covariance must have shape {block_shape}, got {P.shape}"
        )

    if not np.all(np.isfinite(P)):
        raise ValueError("Prediction covariance contains non-finite entries")

    if mode is CovarianceMode.FULL:
        return FullPredictionCovariance(P, dim)
    return IndependentPredictionCovariance(P, dim)
