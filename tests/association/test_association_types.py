"""Unit tests for dataassoc.association.types module.

Author: Navigation Engineer
"""

import numpy as np
import pytest

from dataassoc.association.types import (
    AssociationConfig,
    AssociationMethod,
    AssociationMetric,
    AssociationResult,
    GaussianPoint,
    SupportsGaussian,
)


class TestAssociationConfig:
    """Test suite for AssociationConfig validation."""

    def test_defaults(self):
        """Test default configuration values."""
        cfg = AssociationConfig()
        assert cfg.method is AssociationMethod.JCBB
        assert cfg.metric is AssociationMetric.MAHALANOBIS
        assert cfg.chi2_quantile == 0.99
        assert cfg.use_kd_tree is True
        assert cfg.compatibility_metric is AssociationMetric.MAHALANOBIS
        assert cfg.max_nodes is None
        assert cfg.time_limit is None

    def test_string_enums_are_coerced(self):
        """Test method/metric given as strings."""
        cfg = AssociationConfig(method="NN", metric="ml", compatibility_metric="mahalanobis")
        assert cfg.method is AssociationMethod.NN
        assert cfg.metric is AssociationMetric.MATCHING_LIKELIHOOD
        assert cfg.compatibility_metric is AssociationMetric.MAHALANOBIS

    def test_enum_name_accepted(self):
        """Test enum member names are accepted."""
        cfg = AssociationConfig(metric="matching_likelihood")
        assert cfg.metric is AssociationMetric.MATCHING_LIKELIHOOD

    def test_unknown_method_raises(self):
        """Test unknown method string raises ValueError."""
        with pytest.raises(ValueError):
            AssociationConfig(method="hungarian")

    def test_wrong_type_raises(self):
        """Test non-enum, non-string method raises TypeError."""
        with pytest.raises(TypeError):
            AssociationConfig(method=1)

    @pytest.mark.parametrize("q", [0.0, 1.0, -0.1, 2.0])
    def test_invalid_quantile_raises(self, q):
        """Test chi2_quantile outside (0, 1) raises ValueError."""
        with pytest.raises(ValueError):
            AssociationConfig(chi2_quantile=q)

    def test_invalid_cutoffs_raise(self):
        """Test non-positive node/time budgets raise ValueError."""
        with pytest.raises(ValueError):
            AssociationConfig(max_nodes=0)
        with pytest.raises(ValueError):
            AssociationConfig(time_limit=0.0)

    def test_non_finite_log_threshold_raises(self):
        """Test infinite log-likelihood threshold raises ValueError."""
        with pytest.raises(ValueError):
            AssociationConfig(log_ml_threshold=float("inf"))

    def test_effective_compatibility_metric(self):
        """Test the admissibility test stays Mahalanobis unless asked otherwise."""
        assert (
            AssociationConfig(metric="ml").effective_compatibility_metric
            is AssociationMetric.MAHALANOBIS
        )
        cfg = AssociationConfig(metric="ml", compatibility_metric=None)
        assert cfg.effective_compatibility_metric is AssociationMetric.MAHALANOBIS
        cfg = AssociationConfig(compatibility_metric="ml")
        assert cfg.effective_compatibility_metric is AssociationMetric.MATCHING_LIKELIHOOD

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_nodes": 2.5},
            {"max_nodes": "3"},
            {"max_nodes": True},
            {"use_kd_tree": "yes"},
            {"use_kd_tree": 1},
            {"time_limit": "1.0"},
            {"log_ml_threshold": "-5"},
        ],
    )
    def test_wrongly_typed_fields_raise(self, kwargs):
        """Test non-numeric budgets and non-bool flags raise TypeError."""
        with pytest.raises(TypeError):
            AssociationConfig(**kwargs)

    def test_numpy_scalars_accepted(self):
        cfg = AssociationConfig(max_nodes=np.int64(10), use_kd_tree=np.bool_(False))
        assert cfg.max_nodes == 10
        assert not cfg.use_kd_tree

    def test_frozen(self):
        """Test configuration is immutable."""
        cfg = AssociationConfig()
        with pytest.raises(Exception):
            cfg.chi2_quantile = 0.5

    def test_replace_revalidates(self):
        """Test replace returns a validated copy."""
        cfg = AssociationConfig()
        cfg2 = cfg.replace(method="nn")
        assert cfg2.method is AssociationMethod.NN
        assert cfg.method is AssociationMethod.JCBB
        with pytest.raises(ValueError):
            cfg.replace(chi2_quantile=1.5)


class TestGaussianPoint:
    """Test suite for GaussianPoint."""

    def test_accessors_return_copies(self):
        """Test mean() and cov_and_mean() return independent copies."""
        p = GaussianPoint(mu=[1.0, 2.0, 3.0], cov=np.eye(3))
        mean = p.mean()
        mean[0] = 99.0
        cov, mean2 = p.cov_and_mean()
        cov[0, 0] = 99.0

        np.testing.assert_allclose(p.mean(), [1.0, 2.0, 3.0])
        assert p.cov[0, 0] == 1.0
        np.testing.assert_allclose(mean2, [1.0, 2.0, 3.0])
        assert p.dim == 3

    def test_satisfies_protocol(self):
        """Test GaussianPoint is a SupportsGaussian."""
        assert isinstance(GaussianPoint([0.0], [[1.0]]), SupportsGaussian)
        assert not isinstance(np.zeros(2), SupportsGaussian)

    def test_shape_mismatch_raises(self):
        """Test covariance of wrong shape raises ValueError."""
        with pytest.raises(ValueError):
            GaussianPoint(mu=[0.0, 0.0], cov=np.eye(3))

    def test_asymmetric_raises(self):
        """Test asymmetric covariance raises ValueError."""
        with pytest.raises(ValueError):
            GaussianPoint(mu=[0.0, 0.0], cov=[[1.0, 0.5], [0.0, 1.0]])

    def test_negative_definite_raises(self):
        """Test covariance with negative eigenvalue raises ValueError."""
        with pytest.raises(ValueError):
            GaussianPoint(mu=[0.0, 0.0], cov=np.diag([1.0, -1.0]))


class TestAssociationResult:
    """Test suite for AssociationResult helpers."""

    def _result(self):
        compat = np.array([[True, False], [False, False], [True, True]])
        return AssociationResult(
            associations={2: 1, 0: 0},
            distance=1.5,
            indiv_distances=np.array([[0.5, np.inf], [7.0, 8.0], [2.0, 1.0]]),
            indiv_compatibility=compat,
            indiv_compatibility_counts=compat.sum(axis=1),
            nodes_explored=6,
        )

    def test_counts_and_unassigned(self):
        """Test association counts and unassigned observations."""
        result = self._result()
        assert result.n_associations == 2
        assert result.n_observations == 3
        assert result.unassigned_observations() == [1]
        assert result.associated_predictions() == [0, 1]

    def test_to_dict(self):
        """Test plain-Python view of the result."""
        d = self._result().to_dict()
        assert d["associations"] == {0: 0, 2: 1}
        assert d["method"] == "jcbb"
        assert d["metric"] == "mahalanobis"
        assert d["indiv_compatibility_counts"] == [1, 0, 2]
        assert d["nodes_explored"] == 6
        assert d["search_complete"] is True
