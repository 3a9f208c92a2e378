"""
Stationary and quasi-stationary distributions of a rate matrix.

Rate categories whose frequencies are not given explicitly derive them from
their generator. Two solvers are available for each distribution:

- ``EIGEN`` reads the distribution off a left eigenvector of R.
- ``REPEAT`` applies a transition matrix to a start distribution until the
  result stops changing.

Quasi-stationary distributions treat state 0 as an absorbing (sink) state
and describe the distribution over the remaining states conditional on not
having been absorbed.
"""

import warnings

import numpy as np
import scipy.linalg

from ..config import DistributionMethod, EngineConfig
from ..core.matrix import RateMatrix
from ..exceptions import DistributionError, MatrixError

CONVERGENCE = 1e-10
MAX_STATIONARY_REPS = 2_000_000
MAX_QUASI_REPS = 20_000_000


def _left_eigen(R: np.ndarray, what: str) -> tuple[np.ndarray, np.ndarray]:
    try:
        values, vectors = scipy.linalg.eig(R.T)
    except (np.linalg.LinAlgError, ValueError) as e:
        raise DistributionError(
            f"Cannot calculate {what} distribution - eigenvalue calculation does not converge"
        ) from e
    # Rank eigenvalues from largest to smallest real part
    order = np.argsort(-values.real, kind="stable")
    return values[order], vectors[:, order]


def _finish(v: np.ndarray, what: str) -> np.ndarray:
    total = v.sum()
    if total == 0.0 or not np.all(np.isfinite(v)):
        raise DistributionError(f"Cannot calculate {what} distribution - degenerate eigenvector")
    v = v / total
    if np.any(v < 0.0):
        warnings.warn(
            f"Negative components in {what} distribution clipped to zero: {v}",
            UserWarning,
            stacklevel=3,
        )
        v = np.clip(v, 0.0, None)
        v /= v.sum()
    return v


def _unchanged(a: np.ndarray, b: np.ndarray, start: int) -> bool:
    a, b = a[start:], b[start:]
    both_zero = (a == 0.0) & (b == 0.0)
    with np.errstate(divide="ignore", invalid="ignore"):
        change = np.abs(np.log(a / b))
    return bool(np.all(both_zero | (change < CONVERGENCE)))


def _exp(R: np.ndarray, what: str) -> np.ndarray:
    try:
        return RateMatrix(R, EngineConfig(n_threads=1)).exp(1.0)
    except MatrixError as e:
        raise DistributionError(
            f"Cannot calculate {what} distribution - can't exponentiate matrix"
        ) from e


def stationary(R: np.ndarray, method: DistributionMethod = DistributionMethod.EIGEN) -> np.ndarray:
    """
    Stationary distribution pi with pi R = 0.

    Parameters
    ----------
    R : ndarray, shape (n, n)
        Generator matrix.
    method : DistributionMethod
        ``EIGEN`` or ``REPEAT``.

    Returns
    -------
    ndarray, shape (n,)
        Distribution summing to one.

    Raises
    ------
    DistributionError
        If the computation fails or does not converge.

    Examples
    --------
    >>> R = np.array([[-1.0, 1.0], [3.0, -3.0]])
    >>> np.round(stationary(R), 6)
    array([0.75, 0.25])
    """
    R = np.asarray(R, dtype=np.float64)
    if DistributionMethod(method) is DistributionMethod.EIGEN:
        _, vectors = _left_eigen(R, "stationary")
        return _finish(vectors[:, 0].real, "stationary")

    off_diagonal = R - np.diag(R.diagonal())
    if np.any(off_diagonal.sum(axis=1) == 0.0):
        warnings.warn(
            "Rate matrix has an absorbing state; the repeat method may not converge",
            UserWarning,
            stacklevel=2,
        )
    scale = np.abs(R).max()
    if scale == 0.0:
        raise DistributionError("Cannot calculate stationary distribution - zero rate matrix")
    P = _exp(R / scale, "stationary")
    current = np.full(len(R), 1.0 / len(R))
    for _ in range(MAX_STATIONARY_REPS):
        following = current @ P
        if _unchanged(current, following, 0):
            return following
        current = following
    raise DistributionError("Cannot calculate stationary distribution - no convergence")


def quasi_stationary(
    R: np.ndarray, method: DistributionMethod = DistributionMethod.EIGEN
) -> np.ndarray:
    """
    Quasi-stationary distribution with state 0 as the sink.

    Entry 0 of the result is zero and the remaining entries sum to one.

    Parameters
    ----------
    R : ndarray, shape (n, n)
        Generator matrix in which state 0 is absorbing.
    method : DistributionMethod
        ``EIGEN`` or ``REPEAT``.

    Raises
    ------
    DistributionError
        If the computation fails or does not converge.
    """
    R = np.asarray(R, dtype=np.float64)
    if len(R) < 2:
        raise DistributionError(
            "Cannot calculate quasi-stationary distribution - needs at least two states"
        )
    if DistributionMethod(method) is DistributionMethod.EIGEN:
        # The largest eigenvalue (zero) belongs to the sink; the next one
        # describes the slowest decaying transient distribution.
        _, vectors = _left_eigen(R, "quasi-stationary")
        v = vectors[:, 1].real.copy()
        v[0] = 0.0
        return _finish(v, "quasi-stationary")

    P = _exp(R * 8.0, "quasi-stationary")
    current = np.full(len(R), 1.0 / (len(R) - 1))
    current[0] = 0.0
    for _ in range(MAX_QUASI_REPS):
        following = current @ P
        following[0] = 0.0
        total = following[1:].sum()
        if total == 0.0:
            raise DistributionError(
                "Cannot calculate quasi-stationary distribution - all mass absorbed"
            )
        following[1:] /= total
        if _unchanged(current, following, 1):
            return following
        current = following
    raise DistributionError("Cannot calculate quasi-stationary distribution - no convergence")
