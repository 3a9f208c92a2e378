"""
Parameter-dependent entries for rate matrices, frequencies and weights.

Model entries are built directly from Python values rather than parsed from
strings:

- a number is a constant;
- a string names a parameter;
- an :class:`Expression` computes a value from the parameter mapping.

Every expression reports the parameter names it needs so missing values can
be detected before a matrix is built.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Mapping, Union

import numpy as np
from scipy import special, stats


class Expression:
    """Base class for computed entries."""

    parameters: frozenset = frozenset()

    def evaluate(self, values: Mapping[str, float]) -> float:
        raise NotImplementedError

    def __mul__(self, other) -> "Product":
        return Product(self, as_expression(other))

    def __rmul__(self, other) -> "Product":
        return Product(as_expression(other), self)


@dataclass(frozen=True)
class Constant(Expression):
    value: float

    @property
    def parameters(self) -> frozenset:
        return frozenset()

    def evaluate(self, values: Mapping[str, float]) -> float:
        return float(self.value)


@dataclass(frozen=True)
class Variable(Expression):
    name: str

    @property
    def parameters(self) -> frozenset:
        return frozenset([self.name])

    def evaluate(self, values: Mapping[str, float]) -> float:
        return float(values[self.name])


@dataclass(frozen=True)
class Product(Expression):
    left: Expression
    right: Expression

    @property
    def parameters(self) -> frozenset:
        return self.left.parameters | self.right.parameters

    def evaluate(self, values: Mapping[str, float]) -> float:
        return self.left.evaluate(values) * self.right.evaluate(values)


@dataclass(frozen=True, eq=False)
class Function(Expression):
    """
    Arbitrary function of named parameters.

    ``fn`` is called with the parameter values in the order given by
    ``names``.

    Examples
    --------
    >>> e = Function(lambda k, p: k * p, ("kappa", "pA"))
    >>> e.evaluate({"kappa": 2.0, "pA": 0.25})
    0.5
    """

    fn: Callable[..., float]
    names: tuple

    @property
    def parameters(self) -> frozenset:
        return frozenset(self.names)

    def evaluate(self, values: Mapping[str, float]) -> float:
        return float(self.fn(*(values[n] for n in self.names)))


@dataclass(frozen=True)
class GammaRate(Expression):
    """
    Relative rate of one category of a discretized gamma distribution.

    Parameters
    ----------
    alpha : str
        Name of the shape parameter.
    category : int
        One-based category number.
    n_categories : int
        Total number of equal-probability categories.
    """

    alpha: str
    category: int
    n_categories: int

    @property
    def parameters(self) -> frozenset:
        return frozenset([self.alpha])

    def evaluate(self, values: Mapping[str, float]) -> float:
        return _cached_gamma_rates(float(values[self.alpha]), self.n_categories)[self.category - 1]


Entry = Union[float, int, str, Expression]


def as_expression(entry: Entry) -> Expression:
    """Convert a number, parameter name or expression to an Expression."""
    if isinstance(entry, Expression):
        return entry
    if isinstance(entry, str):
        return Variable(entry)
    if isinstance(entry, (int, float, np.floating, np.integer)):
        return Constant(float(entry))
    raise TypeError(f"Cannot use {entry!r} as a model entry")


def gamma_rates(alpha: float, n_categories: int) -> np.ndarray:
    """
    Mean rates of equal-probability gamma categories (Yang 1994).

    The gamma distribution has shape ``alpha`` and mean one. Category
    boundaries are its quantiles at i/K, and each category's rate is the mean
    of the distribution restricted to it, so the rates average to one.

    Parameters
    ----------
    alpha : float
        Shape parameter (> 0).
    n_categories : int
        Number of categories K.

    Returns
    -------
    ndarray, shape (K,)
        Category rates in increasing order.

    Examples
    --------
    >>> rates = gamma_rates(0.5, 4)
    >>> bool(np.isclose(rates.mean(), 1.0))
    True
    """
    if alpha <= 0:
        raise ValueError(f"Gamma shape must be positive, got {alpha}")
    if n_categories == 1:
        return np.ones(1)
    probs = np.arange(1, n_categories) / n_categories
    cuts = stats.gamma.ppf(probs, a=alpha, scale=1.0 / alpha)
    # Incomplete gamma of shape alpha+1 gives the partial first moments
    upper = special.gammainc(alpha + 1.0, cuts * alpha)
    edges = np.concatenate([[0.0], upper, [1.0]])
    return np.diff(edges) * n_categories


@lru_cache(maxsize=256)
def _cached_gamma_rates(alpha: float, n_categories: int) -> tuple:
    return tuple(float(r) for r in gamma_rates(alpha, n_categories))


def memo_evaluate(expr: Expression, values: Mapping[str, float], memo=None) -> float:
    """Evaluate ``expr``, computing each distinct expression once per ``memo``."""
    if memo is None:
        return expr.evaluate(values)
    try:
        return memo[expr]
    except KeyError:
        value = memo[expr] = expr.evaluate(values)
        return value
