"""Packaging of association outcomes into AssociationResult objects.

Author: Navigation Engineer
"""

from typing import Optional, Sequence

import numpy as np

from .search import SearchOutcome
from .types import AssociationConfig, AssociationMethod, AssociationResult


def empty_result(
    n_observations: int, n_predictions: int, config: AssociationConfig
) -> AssociationResult:
    """Result for an empty observation or prediction set.

    Not an error: no association, zero distance, zero nodes.
    """
    return AssociationResult(
        associations={},
        distance=0.0,
        indiv_distances=np.full((n_observations, n_predictions), np.inf),
        indiv_compatibility=np.zeros((n_observations, n_predictions), dtype=bool),
        indiv_compatibility_counts=np.zeros(n_observations, dtype=int),
        nodes_explored=0,
        method=config.method,
        metric=config.metric,
        jointly_compatible=True,
        search_complete=True,
    )


def build_result(
    outcome: SearchOutcome,
    distances: np.ndarray,
    compatibility: np.ndarray,
    config: AssociationConfig,
    jointly_compatible: bool,
    prediction_ids: Optional[Sequence] = None,
) -> AssociationResult:
    """Aggregate the chosen hypothesis with the individual statistics.

    Args:
        outcome: Best hypothesis of the search.
        distances: Individual distance matrix (M, N).
        compatibility: Individual compatibility matrix (M, N).
        config: Association configuration.
        jointly_compatible: Outcome of the joint test on the chosen pairs.
        prediction_ids: Optional external IDs (length N) reported instead of
            prediction indices.

    Returns:
        AssociationResult owning copies of the matrices.
    """
    if prediction_ids is None:
        associations = {int(i): int(j) for i, j in outcome.pairs}
    else:
        associations = {int(i): prediction_ids[j] for i, j in outcome.pairs}

    return AssociationResult(
        associations=associations,
        distance=float(outcome.distance),
        indiv_distances=np.array(distances, dtype=float, copy=True),
        indiv_compatibility=np.array(compatibility, dtype=bool, copy=True),
        indiv_compatibility_counts=compatibility.sum(axis=1).astype(int),
        nodes_explored=outcome.nodes if config.method is AssociationMethod.JCBB else 0,
        method=config.method,
        metric=config.metric,
        jointly_compatible=bool(jointly_compatible),
        search_complete=outcome.complete,
    )
