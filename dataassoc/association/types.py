"""Type definitions and data structures for landmark data association.

Key types:
    - AssociationMethod: NN (greedy) or JCBB (joint compatibility B&B)
    - AssociationMetric: Mahalanobis distance or matching likelihood
    - CovarianceMode: full cross-covariance or independent blocks
    - AssociationConfig: validated configuration of one association call
    - SupportsGaussian / GaussianPoint: mean + covariance capability
    - AssociationResult: chosen hypothesis plus individual statistics

Author: Navigation Engineer
"""

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Tuple, Union, runtime_checkable

import numpy as np


class AssociationMethod(Enum):
    """Search strategy over observation → prediction assignments.

    Attributes:
        NN: Greedy nearest neighbour, no backtracking.
        JCBB: Joint Compatibility Branch and Bound.
    """

    NN = "nn"
    JCBB = "jcbb"


class AssociationMetric(Enum):
    """Statistical distance between observations and predictions.

    Attributes:
        MAHALANOBIS: Squared Mahalanobis distance, gated by chi-square.
        MATCHING_LIKELIHOOD: Gaussian negative log-likelihood, including
            the covariance determinant, gated by a log-likelihood threshold.
    """

    MAHALANOBIS = "mahalanobis"
    MATCHING_LIKELIHOOD = "ml"


class CovarianceMode(Enum):
    """Layout of the prediction covariance matrix.

    Attributes:
        FULL: (N·O)×(N·O) matrix with cross-covariances between predictions.
        INDEPENDENT: (N·O)×O vertical stack of N separate O×O blocks.
    """

    FULL = "full"
    INDEPENDENT = "independent"


def _coerce_enum(enum_cls, value, name: str):
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.lower())
        except ValueError:
            pass
        try:
            return enum_cls[value.upper()]
        except KeyError:
            pass
        valid = [m.value for m in enum_cls]
        raise ValueError(f"Unknown {name} '{value}', expected one of {valid}")
    raise TypeError(f"{name} must be {enum_cls.__name__} or str, got {type(value)}")


@dataclass(frozen=True)
class AssociationConfig:
    """Configuration of a data-association call.

    Attributes:
        method: Search strategy (default JCBB).
        metric: Metric used for candidate ordering, tie-breaking and the
            reported joint distance (default Mahalanobis).
        chi2_quantile: Confidence level of the chi-square tests, in (0, 1).
        use_kd_tree: Build a KD-tree over prediction means to skip pairs that
            cannot pass the individual test. Pure speed-up; worth disabling
            for a handful of landmarks.
        compatibility_metric: Metric of the individual admissibility test
            (default Mahalanobis whatever `metric` is). None is read as
            Mahalanobis. The matching-likelihood gate is opt-in.
        log_ml_threshold: Minimum log-likelihood for a pair to be
            individually compatible when the admissibility metric is the
            matching likelihood.
        max_nodes: Optional cap on JCBB nodes; when hit the result is the
            best hypothesis found so far and is flagged incomplete.
        time_limit: Optional wall-clock cap on JCBB in seconds, same
            semantics as max_nodes.

    Examples:
        >>> cfg = AssociationConfig(method="nn", chi2_quantile=0.95)
        >>> cfg.method
        <AssociationMethod.NN: 'nn'>
        >>> cfg.effective_compatibility_metric
        <AssociationMetric.MAHALANOBIS: 'mahalanobis'>
    """

    method: AssociationMethod = AssociationMethod.JCBB
    metric: AssociationMetric = AssociationMetric.MAHALANOBIS
    chi2_quantile: float = 0.99
    use_kd_tree: bool = True
    compatibility_metric: AssociationMetric = AssociationMetric.MAHALANOBIS
    log_ml_threshold: float = 0.0
    max_nodes: Optional[int] = None
    time_limit: Optional[float] = None

    def __post_init__(self) -> None:
        """Validate and normalise configuration values."""
        # Frozen dataclass: coerce through object.__setattr__
        object.__setattr__(
            self, "method", _coerce_enum(AssociationMethod, self.method, "method")
        )
        object.__setattr__(
            self, "metric", _coerce_enum(AssociationMetric, self.metric, "metric")
        )
        compat = self.compatibility_metric
        object.__setattr__(
            self,
            "compatibility_metric",
            AssociationMetric.MAHALANOBIS if compat is None
            else _coerce_enum(AssociationMetric, compat, "compatibility_metric"),
        )

        if not isinstance(self.chi2_quantile, (float, int)) or isinstance(
            self.chi2_quantile, bool
        ):
            raise TypeError(
                f"chi2_quantile must be numeric, got {type(self.chi2_quantile)}"
            )
        if not (0 < self.chi2_quantile < 1):
            raise ValueError(
                f"chi2_quantile must be in (0, 1), got {self.chi2_quantile}"
            )
        if not isinstance(self.use_kd_tree, (bool, np.bool_)):
            raise TypeError(f"use_kd_tree must be bool, got {type(self.use_kd_tree)}")
        if not isinstance(self.log_ml_threshold, (float, int)) or isinstance(
            self.log_ml_threshold, bool
        ):
            raise TypeError(
                f"log_ml_threshold must be numeric, got {type(self.log_ml_threshold)}"
            )
        if not np.isfinite(self.log_ml_threshold):
            raise ValueError(
                f"log_ml_threshold must be finite, got {self.log_ml_threshold}"
            )
        if self.max_nodes is not None:
            if not isinstance(self.max_nodes, (int, np.integer)) or isinstance(
                self.max_nodes, bool
            ):
                raise TypeError(f"max_nodes must be an int, got {type(self.max_nodes)}")
            if self.max_nodes < 1:
                raise ValueError(f"max_nodes must be positive, got {self.max_nodes}")
        if self.time_limit is not None:
            if not isinstance(self.time_limit, (float, int)) or isinstance(
                self.time_limit, bool
            ):
                raise TypeError(
                    f"time_limit must be numeric, got {type(self.time_limit)}"
                )
            if not self.time_limit > 0:
                raise ValueError(f"time_limit must be positive, got {self.time_limit}")

    @property
    def effective_compatibility_metric(self) -> AssociationMetric:
        """Metric actually used by the individual admissibility test."""
        return self.compatibility_metric

    def replace(self, **changes) -> "AssociationConfig":
        """Return a copy with some fields changed (validated again)."""
        return dataclasses.replace(self, **changes)


@runtime_checkable
class SupportsGaussian(Protocol):
    """Anything exposing a Gaussian mean and covariance.

    Landmark estimates, point PDFs or filter outputs plug into the
    association engine through these two methods; no base class needed.
    """

    def mean(self) -> np.ndarray:
        ...

    def cov_and_mean(self) -> Tuple[np.ndarray, np.ndarray]:
        ...


@dataclass(frozen=True)
class GaussianPoint:
    """A point with Gaussian uncertainty (2D, 3D or any dimension).

    Attributes:
        mu: Mean vector, shape (O,).
        cov: Covariance matrix, shape (O, O), symmetric PSD.

    Examples:
        >>> p = GaussianPoint(mu=np.array([1.0, 2.0]), cov=0.01 * np.eye(2))
        >>> p.mean()
        array([1., 2.])
        >>> p.dim
        2
    """

    mu: np.ndarray
    cov: np.ndarray

    def __post_init__(self) -> None:
        """Validate mean and covariance."""
        mu = np.asarray(self.mu, dtype=float)
        cov = np.asarray(self.cov, dtype=float)

        if mu.ndim != 1 or mu.size == 0:
            raise ValueError(f"Mean must be a non-empty 1D array, got shape {mu.shape}")
        m = mu.size
        if cov.shape != (m, m):
            raise ValueError(
                f"Covariance shape {cov.shape} must match mean dimension ({m}, {m})"
            )
        if not np.allclose(cov, cov.T):
            raise ValueError("Covariance must be symmetric")
        eigvals = np.linalg.eigvalsh(cov)
        if np.any(eigvals < -1e-10):  # small negative tolerance for numerical errors
            raise ValueError(
                f"Covariance must be positive semi-definite, got eigenvalues {eigvals}"
            )

        object.__setattr__(self, "mu", mu)
        object.__setattr__(self, "cov", cov)

    @property
    def dim(self) -> int:
        return int(self.mu.size)

    def mean(self) -> np.ndarray:
        return self.mu.copy()

    def cov_and_mean(self) -> Tuple[np.ndarray, np.ndarray]:
        return self.cov.copy(), self.mu.copy()


PredictionId = Any


@dataclass
class AssociationResult:
    """Outcome of one data-association call.

    Attributes:
        associations: Observation index → prediction index (or the caller's
            external ID when one was supplied). Unassigned observations are
            absent.
        distance: Joint distance of the chosen hypothesis under the search
            metric (joint squared Mahalanobis distance, or joint negative
            log-likelihood). 0.0 for an empty hypothesis.
        indiv_distances: Individual distances, shape (M, N); rows are
            observations, columns predictions. inf where the pair was
            skipped by the KD-tree gate.
        indiv_compatibility: Individual compatibility flags, shape (M, N).
        indiv_compatibility_counts: Number of compatible predictions per
            observation, shape (M,).
        nodes_explored: Number of JCBB search nodes (0 for NN).
        method: Search strategy that produced the result.
        metric: Metric of `distance` and `indiv_distances`.
        jointly_compatible: Whether the chosen pairs pass the joint
            chi-square test. Always True for JCBB; NN may commit to
            individually plausible but jointly inconsistent pairs.
        search_complete: False when a node or time cutoff stopped JCBB
            early; the hypothesis is then the best found so far and is not
            guaranteed optimal.
    """

    associations: Dict[int, PredictionId] = field(default_factory=dict)
    distance: float = 0.0
    indiv_distances: np.ndarray = field(default_factory=lambda: np.zeros((0, 0)))
    indiv_compatibility: np.ndarray = field(
        default_factory=lambda: np.zeros((0, 0), dtype=bool)
    )
    indiv_compatibility_counts: np.ndarray = field(
        default_factory=lambda: np.zeros(0, dtype=int)
    )
    nodes_explored: int = 0
    method: AssociationMethod = AssociationMethod.JCBB
    metric: AssociationMetric = AssociationMetric.MAHALANOBIS
    jointly_compatible: bool = True
    search_complete: bool = True

    @property
    def n_associations(self) -> int:
        return len(self.associations)

    @property
    def n_observations(self) -> int:
        return int(self.indiv_compatibility.shape[0])

    def unassigned_observations(self) -> List[int]:
        """Observation indices left without a prediction, ascending."""
        return [i for i in range(self.n_observations) if i not in self.associations]

    def associated_predictions(self) -> List[PredictionId]:
        """Predictions (indices or IDs) claimed by some observation, in observation order."""
        return [self.associations[i] for i in sorted(self.associations)]

    def to_dict(self) -> Dict[str, Union[Any, List]]:
        """Plain-Python view of the result (lists instead of arrays)."""
        return {
            "associations": {int(k): v for k, v in sorted(self.associations.items())},
            "distance": float(self.distance),
            "indiv_distances": self.indiv_distances.tolist(),
            "indiv_compatibility": self.indiv_compatibility.tolist(),
            "indiv_compatibility_counts": self.indiv_compatibility_counts.tolist(),
            "nodes_explored": int(self.nodes_explored),
            "method": self.method.value,
            "metric": self.metric.value,
            "jointly_compatible": bool(self.jointly_compatible),
            "search_complete": bool(self.search_complete),
        }
