"""Data association between landmark predictions and observations.

Pipeline of one call (no state survives between calls):

    1. Validate shapes of observations, predictions and covariance.
    2. Factorise the innovation covariance of every prediction.
    3. Optionally range-query a KD-tree over prediction means to skip
       pairs that cannot be individually compatible.
    4. Individual distances + compatibility matrix.
    5. NN or JCBB search over the compatible pairs.
    6. Aggregate hypothesis, matrices and statistics into a result.

Example usage:
    >>> Z = np.array([[1.0, 1.0]])
    >>> Y = np.array([[1.05, 1.05], [5.0, 5.0]])
    >>> P = np.vstack([0.01 * np.eye(2)] * 2)
    >>> result = data_association_independent_predictions(Z, Y, P)
    >>> result.associations
    {0: 0}

Author: Navigation Engineer
References: Neira & Tardos (2001); Blanco et al. (2012).
"""

import logging
import warnings
from typing import Optional, Sequence, Tuple, Union

import numpy as np

from .compatibility import CompatibilityEvaluator
from .covariance import make_prediction_covariance
from .kdtree_index import PredictionIndex
from .results import build_result, empty_result
from .search import JCBBSearch, SearchOutcome, nearest_neighbor
from .types import (
    AssociationConfig,
    AssociationMethod,
    AssociationMetric,
    AssociationResult,
    CovarianceMode,
)

logger = logging.getLogger(__name__)


def _as_matrix(arr: np.ndarray, name: str) -> np.ndarray:
    """Observation/prediction matrix (rows = vectors); empty 1D → (0, 0)."""
    arr = np.asarray(arr, dtype=float)
    if arr.ndim == 1 and arr.size == 0:
        return arr.reshape(0, 0)
    if arr.ndim != 2:
        raise ValueError(f"{name} must be a 2D array (rows = vectors), got shape {arr.shape}")
    if not np.all(np.isfinite(arr)):
        raise ValueError(f"{name} contains non-finite entries")
    return arr


def _validate_means(
    observations: np.ndarray, prediction_means: np.ndarray
) -> Tuple[np.ndarray, np.ndarray, int]:
    Z = _as_matrix(observations, "observations")
    Y = _as_matrix(prediction_means, "prediction_means")

    dims = {a.shape[1] for a in (Z, Y) if a.shape != (0, 0)}
    if len(dims) > 1:
        raise ValueError(
            f"Observation dimension {Z.shape[1]} does not match "
            f"prediction dimension {Y.shape[1]}"
        )
    dim = dims.pop() if dims else 0
    if dim == 0 and (Z.shape[0] > 0 or Y.shape[0] > 0):
        raise ValueError("Observation and prediction vectors must have dimension >= 1")

    # Normalise bare empties to (0, O)
    if Z.shape == (0, 0):
        Z = Z.reshape(0, dim)
    if Y.shape == (0, 0):
        Y = Y.reshape(0, dim)
    return Z, Y, dim


def _validate_ids(prediction_ids: Optional[Sequence], n_predictions: int) -> Optional[list]:
    if prediction_ids is None:
        return None
    ids = list(prediction_ids)
    if len(ids) != n_predictions:
        raise ValueError(
            f"prediction_ids has {len(ids)} entries, expected {n_predictions}"
        )
    if len(set(ids)) != len(ids):
        raise ValueError("prediction_ids must be unique")
    return ids


def _validate_observation_cov(observation_cov: Optional[np.ndarray], dim: int):
    if observation_cov is None:
        return None
    R = np.asarray(observation_cov, dtype=float)
    if R.shape != (dim, dim):
        raise ValueError(
            f"observation_cov must have shape ({dim}, {dim}), got {R.shape}"
        )
    if not np.all(np.isfinite(R)):
        raise ValueError("observation_cov contains non-finite entries")
    if not np.allclose(R, R.T):
        raise ValueError("observation_cov must be symmetric")
    return R


class DataAssociator:
    """Reusable data-association engine.

    Holds only its configuration; every call to `associate` is independent,
    so one instance may serve several threads (e.g., one per robot pose
    hypothesis), each receiving its own result object.

    Attributes:
        config: Association configuration.

    Example:
        >>> associator = DataAssociator(AssociationConfig(method="nn"))
        >>> result = associator.associate(Z, Y, P)  # doctest: +SKIP
    """

    def __init__(self, config: Optional[AssociationConfig] = None):
        self.config = config if config is not None else AssociationConfig()

    def associate(
        self,
        observations: np.ndarray,
        prediction_means: np.ndarray,
        prediction_cov: np.ndarray,
        covariance_mode: Optional[Union[CovarianceMode, str]] = None,
        prediction_ids: Optional[Sequence] = None,
        observation_cov: Optional[np.ndarray] = None,
        index: Optional[PredictionIndex] = None,
    ) -> AssociationResult:
        """Associate observations with predictions.

        Args:
            observations: Observation means Z, shape (M, O).
            prediction_means: Prediction means Y, shape (N, O).
            prediction_cov: (N·O)×(N·O) full or (N·O)×O stacked covariance.
            covariance_mode: Layout of prediction_cov; inferred if None.
            prediction_ids: Optional external IDs (length N, unique) to report
                instead of prediction indices.
            observation_cov: Optional O×O observation noise added to every
                innovation covariance. If None, prediction_cov is taken to
                be the innovation covariance already.
            index: Optional prebuilt PredictionIndex over prediction_means,
                shared read-only between calls. Built on demand otherwise.

        Returns:
            AssociationResult.

        Raises:
            ValueError: On malformed shapes, non-finite values or bad IDs,
                before any search work.
            SingularInnovationError: If an innovation covariance is not
                positive definite. This includes the joint covariance of the
                chosen pairs, which NN also factorises to report `distance`
                and `jointly_compatible`: a full covariance that is singular
                as a whole fails even when every block is positive definite.
        """
        config = self.config
        Z, Y, dim = _validate_means(observations, prediction_means)
        M, N = Z.shape[0], Y.shape[0]

        ids = _validate_ids(prediction_ids, N)
        if dim == 0:
            return empty_result(M, N, config)

        if N == 0:
            # No layout to check: any empty covariance stands for zero predictions
            if np.asarray(prediction_cov).size != 0:
                raise ValueError(
                    f"prediction_cov must be empty when there are no predictions, "
                    f"got shape {np.shape(prediction_cov)}"
                )
            _validate_observation_cov(observation_cov, dim)
            return empty_result(M, N, config)

        covariance = make_prediction_covariance(prediction_cov, N, dim, covariance_mode)
        R = _validate_observation_cov(observation_cov, dim)

        if M == 0:
            return empty_result(M, N, config)

        evaluator = CompatibilityEvaluator(Z, Y, covariance, config, observation_cov=R)

        candidates = None
        if config.use_kd_tree:
            if index is None:
                index = PredictionIndex(Y)
            elif index.n_predictions != N or index.dim != dim:
                raise ValueError(
                    f"index covers {index.n_predictions} predictions of dimension "
                    f"{index.dim}, expected {N} of dimension {dim}"
                )
            candidates = index.query(Z, evaluator.gate_radius())
            logger.debug(
                "KD-tree gate kept %d of %d pairs",
                sum(len(c) for c in candidates), M * N,
            )
        elif index is not None:
            warnings.warn(
                "A prediction index was supplied but use_kd_tree is False; ignoring it",
                UserWarning,
                stacklevel=2,
            )

        distances, compatibility = evaluator.evaluate(candidates)

        if config.method is AssociationMethod.NN:
            pairs = tuple(nearest_neighbor(distances, compatibility))
            # Joint factorisation only for reporting; raises on a singular joint S
            d2, distance = evaluator.joint(pairs)
            outcome = SearchOutcome(pairs=pairs, joint_d2=d2, distance=distance)
        else:
            outcome = JCBBSearch(evaluator, distances, compatibility, config).run()

        jointly_compatible = evaluator.is_jointly_compatible(
            outcome.joint_d2, len(outcome.pairs)
        )
        logger.debug(
            "%s: %d of %d observations associated (jointly compatible: %s)",
            config.method.name, len(outcome.pairs), M, jointly_compatible,
        )

        return build_result(
            outcome, distances, compatibility, config, jointly_compatible, ids
        )


def _associate(
    observations,
    prediction_means,
    prediction_cov,
    covariance_mode: CovarianceMode,
    method,
    metric,
    chi2_quantile,
    use_kd_tree,
    prediction_ids,
    compatibility_metric,
    log_ml_threshold,
    observation_cov,
    max_nodes,
    time_limit,
) -> AssociationResult:
    config = AssociationConfig(
        method=method,
        metric=metric,
        chi2_quantile=chi2_quantile,
        use_kd_tree=use_kd_tree,
        compatibility_metric=compatibility_metric,
        log_ml_threshold=log_ml_threshold,
        max_nodes=max_nodes,
        time_limit=time_limit,
    )
    return DataAssociator(config).associate(
        observations,
        prediction_means,
        prediction_cov,
        covariance_mode=covariance_mode,
        prediction_ids=prediction_ids,
        observation_cov=observation_cov,
    )


def data_association_full_covariance(
    observations: np.ndarray,
    prediction_means: np.ndarray,
    prediction_cov: np.ndarray,
    method: Union[AssociationMethod, str] = AssociationMethod.JCBB,
    metric: Union[AssociationMetric, str] = AssociationMetric.MAHALANOBIS,
    chi2_quantile: float = 0.99,
    use_kd_tree: bool = True,
    prediction_ids: Optional[Sequence] = None,
    compatibility_metric: Union[AssociationMetric, str] = AssociationMetric.MAHALANOBIS,
    log_ml_threshold: float = 0.0,
    observation_cov: Optional[np.ndarray] = None,
    max_nodes: Optional[int] = None,
    time_limit: Optional[float] = None,
) -> AssociationResult:
    """Data association with full prediction cross-covariances.

    Args:
        observations: M×O matrix, one observation mean per row.
        prediction_means: N×O matrix, one prediction mean per row.
        prediction_cov: (N·O)×(N·O) covariance of all stacked predictions.
        method: 'nn' or 'jcbb' (default).
        metric: 'mahalanobis' (default) or 'ml' (matching likelihood).
        chi2_quantile: Confidence of the chi-square tests (default 0.99).
        use_kd_tree: Speed up individual compatibility with a KD-tree.
        prediction_ids: Optional N external IDs reported instead of indices.
        compatibility_metric: Metric of the individual admissibility test
            (default Mahalanobis, independent of `metric`).
        log_ml_threshold: Log-likelihood gate for matching-likelihood
            admissibility.
        observation_cov: Optional O×O observation noise.
        max_nodes: Optional JCBB node budget.
        time_limit: Optional JCBB wall-clock budget (seconds).

    Returns:
        AssociationResult.
    """
    return _associate(
        observations, prediction_means, prediction_cov, CovarianceMode.FULL,
        method, metric, chi2_quantile, use_kd_tree, prediction_ids,
        compatibility_metric, log_ml_threshold, observation_cov,
        max_nodes, time_limit,
    )


def data_association_independent_predictions(
    observations: np.ndarray,
    prediction_means: np.ndarray,
    prediction_cov: np.ndarray,
    method: Union[AssociationMethod, str] = AssociationMethod.JCBB,
    metric: Union[AssociationMetric, str] = AssociationMetric.MAHALANOBIS,
    chi2_quantile: float = 0.99,
    use_kd_tree: bool = True,
    prediction_ids: Optional[Sequence] = None,
    compatibility_metric: Union[AssociationMetric, str] = AssociationMetric.MAHALANOBIS,
    log_ml_threshold: float = 0.0,
    observation_cov: Optional[np.ndarray] = None,
    max_nodes: Optional[int] = None,
    time_limit: Optional[float] = None,
) -> AssociationResult:
    """Data association with independent predictions (no cross-covariances).

    Same as data_association_full_covariance, except that prediction_cov is
    an (N·O)×O vertical stack of the N individual O×O covariances.
    """
    return _associate(
        observations, prediction_means, prediction_cov, CovarianceMode.INDEPENDENT,
        method, metric, chi2_quantile, use_kd_tree, prediction_ids,
        compatibility_metric, log_ml_threshold, observation_cov,
        max_nodes, time_limit,
    )
