"""
Matrix operations for phylogenetic likelihood calculations.

This module turns a numeric rate matrix (generator) into finite-time
transition probability matrices P(t) = exp(R*t). Two algorithms are
available and selected through :class:`~pruneml.config.EngineConfig`:

- **Taylor**: scaling and squaring around a truncated power series. Powers
  of the scaled generator are computed once per matrix and reused for every
  branch length.
- **Eigen**: R = V diag(lambda) V^-1 is decomposed once per matrix and
  P(t) = V diag(exp(lambda*t)) V^-1.

Results are memoized per branch length inside each :class:`RateMatrix`.
"""

import math
from concurrent.futures import Executor
from typing import Optional

import numpy as np
import scipy.linalg

from ..config import DEFAULT_CONFIG, EngineConfig, ExpMethod
from ..exceptions import MatrixError
from .parallel import matmul


def column_norm(m: np.ndarray) -> float:
    """Maximum absolute column sum (the matrix 1-norm)."""
    return float(np.abs(m).sum(axis=0).max())


def generator_from_rates(rates: np.ndarray) -> np.ndarray:
    """
    Build a generator from off-diagonal rates.

    Parameters
    ----------
    rates : ndarray, shape (n, n)
        Off-diagonal substitution rates; the diagonal is ignored.

    Returns
    -------
    R : ndarray, shape (n, n)
        Copy of ``rates`` whose diagonal is minus the off-diagonal row sum.
    """
    R = np.array(rates, dtype=np.float64)
    np.fill_diagonal(R, 0.0)
    np.fill_diagonal(R, -R.sum(axis=1))
    return R


def create_reversible_rates(
    exchangeabilities: np.ndarray, pi: np.ndarray, normalize: bool = True
) -> np.ndarray:
    """
    Create a reversible rate matrix from exchangeabilities and frequencies.

    Parameters
    ----------
    exchangeabilities : ndarray, shape (n, n)
        Symmetric exchangeability matrix (s[i,j] = s[j,i]).
    pi : ndarray, shape (n,)
        Stationary distribution.
    normalize : bool, default=True
        If True, scale so the expected rate is one substitution per unit time.

    Returns
    -------
    R : ndarray, shape (n, n)
        Generator with R[i,j] = s[i,j] * pi[j] for i != j.
    """
    R = generator_from_rates(exchangeabilities * pi[np.newaxis, :])
    if normalize:
        R /= -np.dot(pi, R.diagonal())
    return R


def check_detailed_balance(R: np.ndarray, pi: np.ndarray, rtol: float = 1e-10) -> bool:
    """
    Test whether R satisfies detailed balance, pi_i R[i,j] = pi_j R[j,i].
    """
    flux = pi[:, np.newaxis] * R
    return bool(np.allclose(flux, flux.T, rtol=rtol, atol=0.0))


class RateMatrix:
    """
    Transition probability engine for one numeric generator.

    Parameters
    ----------
    R : ndarray, shape (n, n)
        Rate matrix whose rows sum to zero.
    config : EngineConfig, optional
        Selects the algorithm and its tuning knobs.
    executor : Executor, optional
        Pool used for row-parallel products on large state spaces.

    Notes
    -----
    A ``RateMatrix`` is tied to one numeric R. When parameters change a new
    instance is built, which discards the cached powers, eigendecomposition
    and P(t) table along with it.

    Examples
    --------
    >>> R = np.array([[-1.0, 1.0], [1.0, -1.0]])
    >>> P = RateMatrix(R).exp(50.0)
    >>> np.allclose(P, 0.5)
    True
    """

    def __init__(
        self,
        R: np.ndarray,
        config: EngineConfig = DEFAULT_CONFIG,
        executor: Optional[Executor] = None,
    ):
        R = np.array(R, dtype=np.float64)
        if R.ndim != 2 or R.shape[0] != R.shape[1]:
            raise MatrixError(f"Rate matrix must be square, got shape {R.shape}")
        if not np.all(np.isfinite(R)):
            raise MatrixError("Rate matrix contains non-finite entries")
        self.R = R
        self.n = R.shape[0]
        self.config = config
        self.executor = executor
        self._cache: dict[float, np.ndarray] = {}
        self._powers: Optional[list[np.ndarray]] = None
        self._pdiv = 0
        self._scaled_norm = 0.0
        self._eigen: Optional[tuple[np.ndarray, np.ndarray, np.ndarray]] = None

    def same_generator(self, R: np.ndarray) -> bool:
        return R.shape == self.R.shape and np.array_equal(R, self.R)

    def exp(self, t: float) -> np.ndarray:
        """
        Transition probabilities over length ``t``.

        Parameters
        ----------
        t : float
            Non-negative branch length.

        Returns
        -------
        P : ndarray, shape (n, n)
            Read-only matrix; P[i, j] is the probability of ending in state j
            after starting in state i.

        Raises
        ------
        MatrixError
            If t is negative or the computation fails.
        """
        t = float(t)
        if not t >= 0.0:
            raise MatrixError(f"Branch length must be non-negative, got {t}")
        P = self._cache.get(t)
        if P is not None:
            return P
        if t == 0.0:
            P = np.eye(self.n)
        elif self.config.exp_method is ExpMethod.EIGEN:
            P = self._exp_eigen(t)
        else:
            P = self._exp_taylor(t)
        if not np.all(np.isfinite(P)):
            raise MatrixError(f"Matrix exponential is not finite for length {t}")
        P.setflags(write=False)
        self._cache[t] = P
        return P

    def _matmul(self, a: np.ndarray, b: np.ndarray) -> np.ndarray:
        return matmul(
            a, b, self.executor,
            threshold=self.config.parallel_threshold,
            n_chunks=self.config.n_threads,
        )

    def _taylor_powers(self) -> list[np.ndarray]:
        if self._powers is None:
            norm = column_norm(self.R)
            pdiv = 0
            while norm / 2.0 ** pdiv > 1.0:
                pdiv += 1
            scaled = self.R / 2.0 ** pdiv
            powers = [np.eye(self.n), scaled]
            for _ in range(2, self.config.taylor_terms + 1):
                powers.append(self._matmul(powers[-1], scaled))
            self._pdiv = pdiv
            self._scaled_norm = norm / 2.0 ** pdiv
            self._powers = powers
        return self._powers

    def _exp_taylor(self, t: float) -> np.ndarray:
        powers = self._taylor_powers()
        # R*t == scaled * imult; halve imult until the series argument is small
        imult = t * 2.0 ** self._pdiv
        squarings = 0
        while imult * self._scaled_norm > 1.0:
            imult /= 2.0
            squarings += 1
        while squarings < self.config.force_squarings:
            imult /= 2.0
            squarings += 1

        result = np.eye(self.n)
        coef = 1.0
        for i in range(1, len(powers)):
            coef *= imult / i
            result = result + powers[i] * coef
        for _ in range(squarings):
            result = self._matmul(result, result)
        return result

    def _decomposition(self) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        if self._eigen is None:
            try:
                values, vectors = scipy.linalg.eig(self.R)
                inverse = scipy.linalg.inv(vectors)
            except (np.linalg.LinAlgError, ValueError) as e:
                raise MatrixError(f"Eigendecomposition failed: {e}") from e
            if not (np.all(np.isfinite(values)) and np.all(np.isfinite(inverse))):
                raise MatrixError("Eigendecomposition did not converge")
            self._eigen = (values, vectors, inverse)
        return self._eigen

    def _exp_eigen(self, t: float) -> np.ndarray:
        values, vectors, inverse = self._decomposition()
        scaled = vectors * np.exp(values * t)[np.newaxis, :]
        P = self._matmul(scaled, inverse)
        if np.iscomplexobj(P):
            if np.abs(P.imag).max() > 1e-8 * max(1.0, np.abs(P.real).max()):
                raise MatrixError(
                    f"Eigen matrix exponential has complex residue for length {t}"
                )
            P = P.real
        return np.ascontiguousarray(P)

    def scalar_multiply(self, factor: float) -> "RateMatrix":
        """New engine for ``factor * R`` sharing this one's settings."""
        return RateMatrix(self.R * factor, self.config, self.executor)

    def __repr__(self) -> str:
        return f"RateMatrix(n={self.n}, method={self.config.exp_method.value})"


def matrix_exponential(R: np.ndarray, t: float, config: EngineConfig = DEFAULT_CONFIG) -> np.ndarray:
    """
    Compute P(t) = exp(R*t) without keeping the engine around.

    Examples
    --------
    >>> alpha = 0.25
    >>> R = generator_from_rates(np.full((4, 4), alpha))
    >>> P = matrix_exponential(R, 0.1)
    >>> bool(np.isclose(P[0].sum(), 1.0))
    True
    """
    return RateMatrix(R, config).exp(t)
