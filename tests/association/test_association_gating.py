"""Unit tests for dataassoc.association.gating module.

Tests chi-square thresholds, Cholesky factorisation of innovation
covariances, squared Mahalanobis distances and Gaussian negative
log-likelihoods.

Author: Navigation Engineer
"""

import unittest

import numpy as np
from scipy import stats

from dataassoc.association.gating import (
    LOG_2PI,
    SingularInnovationError,
    chi_square_threshold,
    cholesky_innovation,
    log_determinant,
    mahalanobis_squared,
    negative_log_likelihood,
)


class TestChiSquareThreshold(unittest.TestCase):
    """Test suite for chi_square_threshold function."""

    def test_known_values(self) -> None:
        """Test threshold matches tabulated values."""
        self.assertAlmostEqual(chi_square_threshold(1, 0.95), 3.841, places=3)
        self.assertAlmostEqual(chi_square_threshold(2, 0.99), 9.210, places=3)
        self.assertAlmostEqual(chi_square_threshold(4, 0.99), 13.277, places=3)

    def test_matches_scipy(self) -> None:
        """Test threshold equals scipy chi2 quantile."""
        for dof in range(1, 7):
            expected = stats.chi2.ppf(0.9, dof)
            self.assertAlmostEqual(chi_square_threshold(dof, 0.9), expected, places=10)

    def test_increases_with_confidence(self) -> None:
        """Test higher confidence gives larger threshold."""
        self.assertLess(chi_square_threshold(2, 0.9), chi_square_threshold(2, 0.99))

    def test_invalid_dof_raises(self) -> None:
        """Test zero degrees of freedom raises ValueError."""
        with self.assertRaises(ValueError):
            chi_square_threshold(0, 0.99)

    def test_invalid_confidence_raises(self) -> None:
        """Test confidence outside (0, 1) raises ValueError."""
        for bad in (0.0, 1.0, -0.5, 1.5):
            with self.assertRaises(ValueError):
                chi_square_threshold(2, bad)


class TestCholeskyInnovation(unittest.TestCase):
    """Test suite for cholesky_innovation function."""

    def test_reconstructs_covariance(self) -> None:
        """Test L L^T recovers S."""
        S = np.array([[2.0, 1.0], [1.0, 2.0]])
        L = cholesky_innovation(S)
        np.testing.assert_allclose(L @ L.T, S, atol=1e-12)
        self.assertEqual(L[0, 1], 0.0)

    def test_singular_raises(self) -> None:
        """Test singular covariance raises SingularInnovationError."""
        S = np.array([[1.0, 1.0], [1.0, 1.0]])
        with self.assertRaises(SingularInnovationError):
            cholesky_innovation(S)

    def test_singular_is_value_error(self) -> None:
        """Test SingularInnovationError can be caught as ValueError."""
        with self.assertRaises(ValueError):
            cholesky_innovation(np.zeros((2, 2)))

    def test_indefinite_raises(self) -> None:
        """Test indefinite covariance raises SingularInnovationError."""
        with self.assertRaises(SingularInnovationError):
            cholesky_innovation(np.diag([1.0, -1.0]))

    def test_non_finite_raises(self) -> None:
        """Test NaN entries raise SingularInnovationError."""
        with self.assertRaises(SingularInnovationError):
            cholesky_innovation(np.array([[np.nan, 0.0], [0.0, 1.0]]))

    def test_non_square_raises(self) -> None:
        """Test non-square input raises ValueError."""
        with self.assertRaises(ValueError):
            cholesky_innovation(np.ones((2, 3)))


class TestMahalanobisSquared(unittest.TestCase):
    """Test suite for mahalanobis_squared function."""

    def test_identity_covariance(self) -> None:
        """Test Mahalanobis distance with identity covariance."""
        L = cholesky_innovation(np.eye(2))
        self.assertAlmostEqual(mahalanobis_squared(np.array([3.0, 4.0]), L), 25.0)

    def test_diagonal_covariance(self) -> None:
        """Test Mahalanobis distance with diagonal covariance."""
        L = cholesky_innovation(np.diag([4.0, 9.0]))
        # d^2 = 2^2/4 + 3^2/9 = 2
        self.assertAlmostEqual(mahalanobis_squared(np.array([2.0, 3.0]), L), 2.0)

    def test_correlated_covariance(self) -> None:
        """Test Mahalanobis distance with correlated covariance."""
        S = np.array([[2.0, 1.0], [1.0, 2.0]])
        L = cholesky_innovation(S)
        # S^{-1} = (1/3) [[2, -1], [-1, 2]] -> d^2 = 2/3
        self.assertAlmostEqual(mahalanobis_squared(np.array([1.0, 1.0]), L), 2.0 / 3.0)

    def test_batch_matches_single(self) -> None:
        """Test batch evaluation equals per-vector evaluation."""
        rng = np.random.default_rng(7)
        A = rng.normal(size=(3, 3))
        L = cholesky_innovation(A @ A.T + 0.5 * np.eye(3))
        V = rng.normal(size=(5, 3))

        batch = mahalanobis_squared(V, L)

        self.assertEqual(batch.shape, (5,))
        for k in range(5):
            self.assertAlmostEqual(batch[k], mahalanobis_squared(V[k], L), places=10)

    def test_matches_explicit_inverse(self) -> None:
        """Test agreement with v^T S^{-1} v."""
        S = np.array([[3.0, 0.5, 0.1], [0.5, 2.0, 0.2], [0.1, 0.2, 1.0]])
        v = np.array([0.3, -1.2, 0.7])
        expected = v @ np.linalg.inv(S) @ v
        self.assertAlmostEqual(
            mahalanobis_squared(v, cholesky_innovation(S)), expected, places=10
        )


class TestNegativeLogLikelihood(unittest.TestCase):
    """Test suite for log_determinant and negative_log_likelihood."""

    def test_log_determinant(self) -> None:
        """Test log det from Cholesky factor."""
        S = np.diag([2.0, 3.0])
        self.assertAlmostEqual(
            log_determinant(cholesky_innovation(S)), np.log(6.0), places=12
        )

    def test_matches_scipy_logpdf(self) -> None:
        """Test NLL equals -log N(v; 0, S)."""
        S = np.array([[0.5, 0.1], [0.1, 0.3]])
        v = np.array([0.2, -0.4])
        L = cholesky_innovation(S)

        nll = negative_log_likelihood(mahalanobis_squared(v, L), log_determinant(L), 2)

        expected = -stats.multivariate_normal(mean=np.zeros(2), cov=S).logpdf(v)
        self.assertAlmostEqual(nll, expected, places=10)

    def test_zero_innovation_unit_covariance(self) -> None:
        """Test NLL at the mean with identity covariance."""
        self.assertAlmostEqual(
            negative_log_likelihood(0.0, 0.0, 3), 1.5 * LOG_2PI, places=12
        )


if __name__ == "__main__":
    unittest.main()
