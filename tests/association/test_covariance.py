"""Unit tests for prediction covariance layouts.

Author: Navigation Engineer
"""

import numpy as np
import pytest

from dataassoc.association.covariance import (
    FullPredictionCovariance,
    IndependentPredictionCovariance,
    make_prediction_covariance,
)
from dataassoc.association.types import CovarianceMode


def _full_cov():
    """Full 3-landmark 2D covariance with distinct blocks and cross terms."""
    rng = np.random.default_rng(3)
    A = rng.normal(size=(6, 6))
    return A @ A.T + np.eye(6)


class TestMakePredictionCovariance:
    """Test suite for make_prediction_covariance."""

    def test_infers_full(self):
        cov = make_prediction_covariance(_full_cov(), n_predictions=3, dim=2)
        assert isinstance(cov, FullPredictionCovariance)
        assert cov.mode is CovarianceMode.FULL
        assert cov.n_predictions == 3

    def test_infers_independent(self):
        P = np.vstack([np.eye(2), 2 * np.eye(2), 3 * np.eye(2)])
        cov = make_prediction_covariance(P, n_predictions=3, dim=2)
        assert isinstance(cov, IndependentPredictionCovariance)
        assert cov.n_predictions == 3

    def test_explicit_mode_string(self):
        P = np.vstack([np.eye(2)] * 2)
        cov = make_prediction_covariance(P, 2, 2, mode="independent")
        assert cov.mode is CovarianceMode.INDEPENDENT

    def test_explicit_mode_mismatch_raises(self):
        """Test a stacked matrix declared as full raises ValueError."""
        P = np.vstack([np.eye(2)] * 2)
        with pytest.raises(ValueError):
            make_prediction_covariance(P, 2, 2, mode=CovarianceMode.FULL)

    def test_rows_not_multiple_of_dim_raises(self):
        with pytest.raises(ValueError, match="multiple"):
            make_prediction_covariance(np.eye(5), n_predictions=2, dim=2)

    def test_wrong_prediction_count_raises(self):
        with pytest.raises(ValueError):
            make_prediction_covariance(np.eye(6), n_predictions=2, dim=2)

    def test_unrecognised_shape_raises(self):
        with pytest.raises(ValueError):
            make_prediction_covariance(np.ones((4, 3)), n_predictions=2, dim=2)

    def test_non_finite_raises(self):
        P = np.eye(4)
        P[0, 0] = np.nan
        with pytest.raises(ValueError):
            make_prediction_covariance(P, 2, 2)

    def test_not_2d_raises(self):
        with pytest.raises(ValueError):
            make_prediction_covariance(np.ones(4), 2, 2)


class TestCovarianceAccessors:
    """Test block() and joint() on both layouts."""

    def test_full_block_and_joint(self):
        P = _full_cov()
        cov = FullPredictionCovariance(P, dim=2)

        np.testing.assert_allclose(cov.block(1), P[2:4, 2:4])

        J = cov.joint([2, 0])
        assert J.shape == (4, 4)
        np.testing.assert_allclose(J[0:2, 0:2], P[4:6, 4:6])
        np.testing.assert_allclose(J[2:4, 2:4], P[0:2, 0:2])
        # Cross term between predictions 2 and 0
        np.testing.assert_allclose(J[0:2, 2:4], P[4:6, 0:2])

    def test_independent_joint_is_block_diagonal(self):
        blocks = [np.eye(2), np.array([[2.0, 0.5], [0.5, 1.0]]), 3 * np.eye(2)]
        cov = IndependentPredictionCovariance(np.vstack(blocks), dim=2)

        np.testing.assert_allclose(cov.block(1), blocks[1])

        J = cov.joint([1, 2])
        np.testing.assert_allclose(J[0:2, 0:2], blocks[1])
        np.testing.assert_allclose(J[2:4, 2:4], blocks[2])
        np.testing.assert_allclose(J[0:2, 2:4], np.zeros((2, 2)))

    def test_full_with_zero_cross_terms_matches_independent(self):
        blocks = [np.eye(2), 2 * np.eye(2)]
        full = FullPredictionCovariance(np.kron(np.diag([1.0, 2.0]), np.eye(2)), dim=2)
        indep = IndependentPredictionCovariance(np.vstack(blocks), dim=2)
        np.testing.assert_allclose(full.joint([0, 1]), indep.joint([0, 1]))
