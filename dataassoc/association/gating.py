"""Chi-square gating statistics for landmark data association.

This module provides the statistical primitives shared by the individual
and joint compatibility tests: chi-square critical values, Cholesky
factorisation of innovation covariances, squared Mahalanobis distances and
Gaussian negative log-likelihoods.

The API uses a 'confidence' parameter (e.g., 0.99 for 99% confidence),
where the confidence is the upper quantile of the chi-square distribution
with as many degrees of freedom as stacked innovation components.

Author: Navigation Engineer
References: Neira & Tardos (2001), "Data association in stochastic mapping
    using the joint compatibility test", IEEE Trans. Robotics and Automation.
"""

import numpy as np
from scipy import linalg, stats


LOG_2PI = float(np.log(2.0 * np.pi))


class SingularInnovationError(ValueError):
    """Innovation covariance is not symmetric positive definite.

    Raised instead of returning a meaningless distance: a covariance that
    cannot be factorised means the upstream estimator handed over a corrupt
    prediction (or observation noise) covariance.
    """


def chi_square_threshold(dof: int, confidence: float = 0.99) -> float:
    """Get chi-square critical value for a given confidence level.

    Computes χ²(m, α), the α-quantile of the chi-square distribution with
    m degrees of freedom. A pairing (or a set of pairings) is compatible when
    its squared Mahalanobis distance does not exceed this value.

    Args:
        dof: Degrees of freedom m (total stacked innovation dimension).
        confidence: Confidence level α in (0, 1). Common values:
                    - 0.99 (99% confidence, default for association)
                    - 0.95 (95% confidence)

    Returns:
        Chi-square critical value χ²(m, α).

    Raises:
        ValueError: If dof < 1 or confidence is not in (0, 1).

    Example:
        >>> threshold = chi_square_threshold(dof=2, confidence=0.99)
        >>> np.allclose(threshold, 9.210, atol=0.01)
        True
    """
    if dof < 1:
        raise ValueError(f"Degrees of freedom must be positive, got {dof}")
    if not (0 < confidence < 1):
        raise ValueError(
            f"Confidence level must be in (0, 1), got {confidence}"
        )

    return float(stats.chi2.ppf(confidence, dof))


def cholesky_innovation(S: np.ndarray) -> np.ndarray:
    """Lower Cholesky factor L of an innovation covariance (S = L L^T).

    Args:
        S: Innovation covariance matrix (m × m).

    Returns:
        Lower-triangular factor L (m × m).

    Raises:
        ValueError: If S is not a square 2D matrix.
        SingularInnovationError: If S has non-finite entries or is not
            positive definite.

    Example:
        >>> L = cholesky_innovation(np.diag([4.0, 9.0]))
        >>> np.allclose(np.diag(L), [2.0, 3.0])
        True
    """
    S = np.asarray(S, dtype=float)

    if S.ndim != 2 or S.shape[0] != S.shape[1]:
        raise ValueError(f"Covariance S must be square 2D, got shape {S.shape}")
    if not np.all(np.isfinite(S)):
        raise SingularInnovationError(
            "Innovation covariance contains non-finite entries"
        )

    try:
        return np.linalg.cholesky(S)
    except np.linalg.LinAlgError as e:
        raise SingularInnovationError(
            f"Innovation covariance is not positive definite: {e}"
        ) from e


def mahalanobis_squared(v: np.ndarray, L: np.ndarray) -> float:
    """Squared Mahalanobis distance d^2 = v^T S^{-1} v from a Cholesky factor.

    Args:
        v: Innovation vector (m,), or a batch of innovations (k, m).
        L: Lower Cholesky factor of S (m × m).

    Returns:
        d^2 as a float for a single vector, or an array (k,) for a batch.

    Example:
        >>> L = cholesky_innovation(np.eye(2))
        >>> mahalanobis_squared(np.array([3.0, 4.0]), L)
        25.0
    """
    v = np.asarray(v, dtype=float)

    if v.ndim == 1:
        w = linalg.solve_triangular(L, v, lower=True)
        return float(w @ w)

    # Batch: one column per innovation
    W = linalg.solve_triangular(L, v.T, lower=True)
    return np.einsum("ij,ij->j", W, W)


def log_determinant(L: np.ndarray) -> float:
    """log det(S) for S = L L^T."""
    return float(2.0 * np.sum(np.log(np.diag(L))))


def negative_log_likelihood(d2, log_det: float, dof: int):
    """Negative log of the Gaussian innovation density evaluated at v.

    For an innovation v ~ N(0, S) of dimension m:

        -log p(v) = 0.5 * d^2 + 0.5 * (m log 2π + log det S)

    The determinant term is what distinguishes the matching-likelihood
    metric from the Mahalanobis distance: a loose prediction is penalised
    even when the innovation is small relative to its covariance.

    Args:
        d2: Squared Mahalanobis distance (float or array).
        log_det: log det(S).
        dof: Innovation dimension m.

    Returns:
        Negative log-likelihood (same shape as d2).
    """
    return 0.5 * d2 + 0.5 * (dof * LOG_2PI + log_det)
