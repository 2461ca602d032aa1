"""Data association for independent Gaussian points.

Convenience layer over the engine for the common case where landmarks are
2D or 3D points with independent uncertainty: observations and predictions
are given as objects exposing `mean()` / `cov_and_mean()` (see
SupportsGaussian) instead of stacked matrices.

Author: Navigation Engineer
"""

from typing import Optional, Sequence, Union

import numpy as np

from .engine import DataAssociator
from .types import AssociationConfig, AssociationResult, CovarianceMode, SupportsGaussian


def _observation_mean(obs) -> np.ndarray:
    if isinstance(obs, SupportsGaussian):
        return np.asarray(obs.mean(), dtype=float).ravel()
    return np.asarray(obs, dtype=float).ravel()


def stack_gaussian_predictions(predictions: Sequence[SupportsGaussian]):
    """Stack prediction PDFs into a mean matrix and a block covariance.

    Args:
        predictions: N objects exposing cov_and_mean().

    Returns:
        Tuple (means, stacked_cov) of shapes (N, O) and (N·O, O).

    Raises:
        TypeError: If an element does not expose cov_and_mean().
        ValueError: If dimensions differ between predictions.
    """
    means, covs = [], []
    for k, pred in enumerate(predictions):
        if not isinstance(pred, SupportsGaussian):
            raise TypeError(
                f"Prediction {k} must expose mean() and cov_and_mean(), got {type(pred)}"
            )
        cov, mean = pred.cov_and_mean()
        mean = np.asarray(mean, dtype=float).ravel()
        cov = np.asarray(cov, dtype=float)
        if cov.shape != (mean.size, mean.size):
            raise ValueError(
                f"Prediction {k}: covariance shape {cov.shape} does not match "
                f"mean dimension {mean.size}"
            )
        means.append(mean)
        covs.append(cov)

    if not means:
        return np.zeros((0, 0)), np.zeros((0, 0))
    if len({m.size for m in means}) > 1:
        raise ValueError(
            f"Predictions have mixed dimensions {sorted({m.size for m in means})}"
        )
    return np.vstack(means), np.vstack(covs)


def data_association_independent_points(
    observations: Sequence[Union[np.ndarray, SupportsGaussian]],
    predictions: Sequence[SupportsGaussian],
    config: Optional[AssociationConfig] = None,
    prediction_ids: Optional[Sequence] = None,
    observation_cov: Optional[np.ndarray] = None,
    dim: Optional[int] = None,
) -> AssociationResult:
    """Associate observed points with predicted Gaussian points.

    Args:
        observations: Observation vectors, or PDFs whose mean() is used.
        predictions: Predicted landmark PDFs (mean + covariance).
        config: Association configuration (default JCBB / Mahalanobis).
        prediction_ids: Optional external IDs for the predictions.
        observation_cov: Optional O×O observation noise.
        dim: If given, every point must have this dimension.

    Returns:
        AssociationResult.

    Examples:
        >>> from dataassoc.association import GaussianPoint
        >>> preds = [GaussianPoint(np.array([0.0, 0.0]), 0.01 * np.eye(2)),
        ...          GaussianPoint(np.array([3.0, 0.0]), 0.01 * np.eye(2))]
        >>> data_association_independent_points([np.array([2.95, 0.0])], preds).associations
        {0: 1}
    """
    obs_means = [_observation_mean(o) for o in observations]
    Y, P = stack_gaussian_predictions(predictions)

    if obs_means:
        if len({m.size for m in obs_means}) > 1:
            raise ValueError(
                f"Observations have mixed dimensions {sorted({m.size for m in obs_means})}"
            )
        Z = np.vstack(obs_means)
    else:
        Z = np.zeros((0, Y.shape[1]))

    if Y.shape[0] == 0:
        Y = np.zeros((0, Z.shape[1]))
        P = np.zeros((0, Z.shape[1]))

    if dim is not None:
        for name, arr in (("observations", Z), ("predictions", Y)):
            if arr.shape[0] > 0 and arr.shape[1] != dim:
                raise ValueError(
                    f"Expected {dim}D {name}, got dimension {arr.shape[1]}"
                )

    return DataAssociator(config).associate(
        Z,
        Y,
        P,
        covariance_mode=CovarianceMode.INDEPENDENT,
        prediction_ids=prediction_ids,
        observation_cov=observation_cov,
    )


def data_association_independent_2d_points(
    observations: Sequence[Union[np.ndarray, SupportsGaussian]],
    predictions: Sequence[SupportsGaussian],
    config: Optional[AssociationConfig] = None,
    prediction_ids: Optional[Sequence] = None,
    observation_cov: Optional[np.ndarray] = None,
) -> AssociationResult:
    """data_association_independent_points restricted to 2D points."""
    return data_association_independent_points(
        observations, predictions, config, prediction_ids, observation_cov, dim=2
    )


def data_association_independent_3d_points(
    observations: Sequence[Union[np.ndarray, SupportsGaussian]],
    predictions: Sequence[SupportsGaussian],
    config: Optional[AssociationConfig] = None,
    prediction_ids: Optional[Sequence] = None,
    observation_cov: Optional[np.ndarray] = None,
) -> AssociationResult:
    """data_association_independent_points restricted to 3D points."""
    return data_association_independent_points(
        observations, predictions, config, prediction_ids, observation_cov, dim=3
    )
