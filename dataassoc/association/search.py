"""Search over observation → prediction assignment hypotheses.

Two strategies consume the individual compatibility matrix:

    Nearest neighbour (NN):
        For each observation in index order, take the individually
        compatible, still unclaimed prediction with the smallest distance
        (ties → lowest prediction index). No backtracking.

    Joint Compatibility Branch and Bound (JCBB):
        Depth-first search over observations in index order. At observation
        i the children are, in order: every compatible unclaimed prediction
        in ascending (distance, index) order, provided the extended
        hypothesis passes the joint chi-square test; then "i unassigned".
        The best leaf maximises the number of pairs, then minimises the
        joint distance.

Pruning uses an admissible bound: a node is cut when even assigning every
remaining observation cannot beat the best leaf. With the Mahalanobis
metric the joint distance never decreases as pairs are added, so a node
that can at most tie the best pair count is also cut once its distance
reaches the best distance. The search is implemented with an explicit
stack (depth is bounded by the number of observations, which may exceed
the interpreter's recursion limit).

Author: Navigation Engineer
References: Neira & Tardos (2001), Section III (JCBB algorithm).
"""

import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from .compatibility import CompatibilityEvaluator, Pair
from .types import AssociationConfig, AssociationMetric

logger = logging.getLogger(__name__)


@dataclass
class SearchOutcome:
    """Best hypothesis of a search.

    Attributes:
        pairs: Chosen (observation, prediction) pairs, ascending by observation.
        joint_d2: Joint squared Mahalanobis distance of the pairs.
        distance: Joint distance under the configured metric.
        nodes: Number of JCBB nodes visited (0 for NN).
        complete: False if a node/time cutoff stopped the search early.
    """

    pairs: Tuple[Pair, ...] = ()
    joint_d2: float = 0.0
    distance: float = 0.0
    nodes: int = 0
    complete: bool = True


def candidate_lists(
    distances: np.ndarray, compatibility: np.ndarray
) -> List[List[int]]:
    """Compatible predictions per observation, by ascending (distance, index).

    Args:
        distances: Individual distances (M, N).
        compatibility: Individual compatibility flags (M, N).

    Returns:
        List of M lists of prediction indices.

    Examples:
        >>> D = np.array([[2.0, 1.0, 1.0]])
        >>> C = np.array([[True, True, True]])
        >>> candidate_lists(D, C)
        [[1, 2, 0]]
    """
    lists = []
    for i in range(compatibility.shape[0]):
        js = np.flatnonzero(compatibility[i])
        # lexsort: last key is primary
        order = np.lexsort((js, distances[i, js]))
        lists.append([int(j) for j in js[order]])
    return lists


def nearest_neighbor(
    distances: np.ndarray, compatibility: np.ndarray
) -> List[Pair]:
    """Greedy nearest-neighbour association.

    Args:
        distances: Individual distances (M, N).
        compatibility: Individual compatibility flags (M, N).

    Returns:
        List of (observation, prediction) pairs, ascending by observation.
        Each prediction appears at most once.

    Examples:
        >>> D = np.array([[0.1, 0.2], [0.1, 0.3]])
        >>> C = np.ones((2, 2), dtype=bool)
        >>> nearest_neighbor(D, C)
        [(0, 0), (1, 1)]
    """
    claimed = set()
    pairs = []
    for i, cands in enumerate(candidate_lists(distances, compatibility)):
        for j in cands:
            if j not in claimed:
                claimed.add(j)
                pairs.append((i, j))
                break
    return pairs


class JCBBSearch:
    """Joint Compatibility Branch and Bound over one set of candidates.

    Attributes:
        evaluator: Joint compatibility tests for the call.
        candidates: Per-observation ordered candidate predictions.
        config: Association configuration (metric, cutoffs).
    """

    def __init__(
        self,
        evaluator: CompatibilityEvaluator,
        distances: np.ndarray,
        compatibility: np.ndarray,
        config: AssociationConfig,
    ):
        self.evaluator = evaluator
        self.candidates = candidate_lists(distances, compatibility)
        self.config = config
        self._distance_is_monotone = config.metric is AssociationMetric.MAHALANOBIS

        self._best: Optional[SearchOutcome] = None

    def _can_improve(self, n_pairs: int, n_remaining: int, distance: float) -> bool:
        best = self._best
        upper = n_pairs + n_remaining
        if upper != len(best.pairs):
            return upper > len(best.pairs)
        if self._distance_is_monotone:
            return distance < best.distance
        return True

    def _is_better(self, n_pairs: int, distance: float) -> bool:
        best = self._best
        if n_pairs != len(best.pairs):
            return n_pairs > len(best.pairs)
        return distance < best.distance

    def _children(self, i: int, pairs: Tuple[Pair, ...], d2: float, distance: float):
        """Child nodes of observation i, in exploration order."""
        claimed = {j for _, j in pairs}
        children = []
        for j in self.candidates[i]:
            if j in claimed:
                continue
            trial = pairs + ((i, j),)
            t_d2, t_distance = self.evaluator.joint(trial)
            if self.evaluator.is_jointly_compatible(t_d2, len(trial)):
                children.append((i + 1, trial, t_d2, t_distance))
        children.append((i + 1, pairs, d2, distance))
        return children

    def run(self) -> SearchOutcome:
        """Execute the search.

        Returns:
            SearchOutcome with the best hypothesis and the node count.
        """
        n_obs = len(self.candidates)
        max_nodes = self.config.max_nodes
        time_limit = self.config.time_limit

        self._best = SearchOutcome()
        nodes = 0
        complete = True
        start = time.perf_counter()

        # Frame: (next observation, pairs so far, joint d2, joint distance)
        stack = [(0, (), 0.0, 0.0)]
        while stack:
            if max_nodes is not None and nodes >= max_nodes:
                complete = False
                break
            if time_limit is not None and time.perf_counter() - start > time_limit:
                complete = False
                break

            i, pairs, d2, distance = stack.pop()
            nodes += 1

            if not self._can_improve(len(pairs), n_obs - i, distance):
                continue

            if i == n_obs:
                if self._is_better(len(pairs), distance):
                    self._best = SearchOutcome(pairs=pairs, joint_d2=d2, distance=distance)
                continue

            # Reverse so the first child is explored first
            stack.extend(reversed(self._children(i, pairs, d2, distance)))

        best = self._best
        self._best = None

        if complete:
            logger.debug(
                "JCBB: %d pairs, distance %.4f, %d nodes",
                len(best.pairs), best.distance, nodes,
            )
        else:
            logger.warning(
                "JCBB stopped after %d nodes (%.3f s); returning best hypothesis "
                "found so far (%d pairs), optimality not guaranteed",
                nodes, time.perf_counter() - start, len(best.pairs),
            )

        return SearchOutcome(
            pairs=best.pairs,
            joint_d2=best.joint_d2,
            distance=best.distance,
            nodes=nodes,
            complete=complete,
        )
