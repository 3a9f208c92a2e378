"""
Engine configuration.

All tuning switches live on one frozen :class:`EngineConfig` value that is
passed to the engines that need it, so two evaluations running side by side
can use different settings.
"""

import dataclasses
import os
from dataclasses import dataclass, field
from enum import Enum


class RealType(str, Enum):
    """Scalar representation used for likelihood values."""
    STANDARD = "standard"
    SCALED = "scaled"


class ExpMethod(str, Enum):
    """Matrix exponential algorithm."""
    TAYLOR = "taylor"
    EIGEN = "eigen"


class DistributionMethod(str, Enum):
    """Algorithm used for stationary and quasi-stationary distributions."""
    EIGEN = "eigen"
    REPEAT = "repeat"


def _default_threads() -> int:
    return os.cpu_count() or 1


@dataclass(frozen=True)
class EngineConfig:
    """
    Settings shared by the likelihood and reconstruction engines.

    Attributes
    ----------
    exp_method : ExpMethod
        Algorithm used to exponentiate rate matrices.
    force_squarings : int
        Minimum number of squarings for the Taylor algorithm.
    taylor_terms : int
        Number of terms of the truncated exponential series.
    real_type : RealType
        Scalar representation used for likelihood values.
    keep_node_likelihoods : bool
        Whether per-node partial likelihoods are kept in results. Turning this
        off bounds memory inside optimization loops.
    n_threads : int
        Size of the worker pool used for per-site computations.
    parallel_threshold : int
        Matrix dimension above which products are split row-wise over the
        worker pool.
    distribution_method : DistributionMethod
        Algorithm used for derived (stationary) frequencies.
    """

    exp_method: ExpMethod = ExpMethod.TAYLOR
    force_squarings: int = 0
    taylor_terms: int = 12
    real_type: RealType = RealType.STANDARD
    keep_node_likelihoods: bool = True
    n_threads: int = field(default_factory=_default_threads)
    parallel_threshold: int = 10
    distribution_method: DistributionMethod = DistributionMethod.EIGEN

    def __post_init__(self):
        if self.n_threads < 1:
            raise ValueError(f"n_threads must be positive, got {self.n_threads}")
        if self.force_squarings < 0:
            raise ValueError(
                f"force_squarings must be non-negative, got {self.force_squarings}"
            )
        if self.taylor_terms < 2:
            raise ValueError(f"taylor_terms must be at least 2, got {self.taylor_terms}")
        if self.parallel_threshold < 1:
            raise ValueError(
                f"parallel_threshold must be positive, got {self.parallel_threshold}"
            )
        # Accept plain strings ("eigen", "scaled", ...) for the enum fields
        object.__setattr__(self, "exp_method", ExpMethod(self.exp_method))
        object.__setattr__(self, "real_type", RealType(self.real_type))
        object.__setattr__(
            self, "distribution_method", DistributionMethod(self.distribution_method)
        )

    def replace(self, **changes) -> "EngineConfig":
        """Return a copy with the given fields changed."""
        return dataclasses.replace(self, **changes)


DEFAULT_CONFIG = EngineConfig()
