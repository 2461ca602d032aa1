"""Data association between landmark predictions and sensor observations.

Given M observations and N predicted landmarks with Gaussian uncertainty,
decide which observation corresponds to which landmark (or none):

    - Individual compatibility: pairwise chi-square (Mahalanobis) or
      matching-likelihood gate, optionally accelerated by a KD-tree
    - Nearest neighbour (NN): greedy, fast, no joint consistency
    - JCBB: Joint Compatibility Branch and Bound, maximising the number of
      jointly compatible pairs, then minimising the joint distance

Example usage:
    >>> from dataassoc.association import data_association_full_covariance
    >>> import numpy as np
    >>>
    >>> Z = np.array([[0.4, 0.0], [-0.6, 0.0]])
    >>> Y = np.array([[0.0, 0.0], [1.0, 0.0]])
    >>> P = np.kron(np.array([[1.0, 0.99], [0.99, 1.0]]), np.eye(2))
    >>> result = data_association_full_covariance(Z, Y, P, method="jcbb")
    >>> result.associations
    {0: 1, 1: 0}

References:
    Neira & Tardos (2001), "Data association in stochastic mapping using
    the joint compatibility test".
    Blanco, Gonzalez-Jimenez & Fernandez-Madrigal (2012), "An alternative
    to the Mahalanobis distance for determining optimal correspondences in
    data association".

Author: Navigation Engineer
"""

from .compatibility import CompatibilityEvaluator
from .covariance import (
    FullPredictionCovariance,
    IndependentPredictionCovariance,
    make_prediction_covariance,
)
from .engine import (
    DataAssociator,
    data_association_full_covariance,
    data_association_independent_predictions,
)
from .gating import (
    SingularInnovationError,
    chi_square_threshold,
    cholesky_innovation,
    log_determinant,
    mahalanobis_squared,
    negative_log_likelihood,
)
from .kdtree_index import PredictionIndex
from .points import (
    data_association_independent_2d_points,
    data_association_independent_3d_points,
    data_association_independent_points,
    stack_gaussian_predictions,
)
from .search import JCBBSearch, SearchOutcome, candidate_lists, nearest_neighbor
from .types import (
    AssociationConfig,
    AssociationMethod,
    AssociationMetric,
    AssociationResult,
    CovarianceMode,
    GaussianPoint,
    SupportsGaussian,
)

__all__ = [
    # Types
    "AssociationMethod",
    "AssociationMetric",
    "CovarianceMode",
    "AssociationConfig",
    "AssociationResult",
    "SupportsGaussian",
    "GaussianPoint",
    # Gating statistics
    "SingularInnovationError",
    "chi_square_threshold",
    "cholesky_innovation",
    "mahalanobis_squared",
    "log_determinant",
    "negative_log_likelihood",
    # Covariance layouts
    "FullPredictionCovariance",
    "IndependentPredictionCovariance",
    "make_prediction_covariance",
    # Compatibility and index
    "CompatibilityEvaluator",
    "PredictionIndex",
    # Search
    "SearchOutcome",
    "candidate_lists",
    "nearest_neighbor",
    "JCBBSearch",
    # Entry points
    "DataAssociator",
    "data_association_full_covariance",
    "data_association_independent_predictions",
    "data_association_independent_points",
    "data_association_independent_2d_points",
    "data_association_independent_3d_points",
    "stack_gaussian_predictions",
]
