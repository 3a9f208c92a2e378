"""
Per-state partial likelihood vectors.

A node likelihood vector holds one entry per model state. The pruning
recursion only needs a handful of operations on it (elementwise product,
propagation through a transition matrix, weighted sums), so the two scalar
representations from :mod:`pruneml.core.scalar` get matching vector types
backed by numpy arrays:

- :class:`PlainVector` is a float64 array.
- :class:`ScaledVector` keeps a mantissa array in [1, 2) and an int64
  exponent array, entry by entry, mirroring :class:`SmallDouble`.

Vectors are immutable: every operation returns a new vector.
"""

from typing import Union

import numpy as np

from ..config import RealType
from .scalar import MAX_EXPONENT, SmallDouble, StandardDouble


class PlainVector:
    """Partial likelihoods stored as plain floats."""

    __slots__ = ("values",)

    def __init__(self, values: np.ndarray):
        self.values = np.asarray(values, dtype=np.float64)

    @classmethod
    def ones(cls, n: int) -> "PlainVector":
        return cls(np.ones(n))

    def __len__(self) -> int:
        return len(self.values)

    def multiply(self, other: "PlainVector") -> "PlainVector":
        return PlainVector(self.values * other.values)

    def scale(self, factors: np.ndarray) -> "PlainVector":
        """Multiply entrywise by a plain array (e.g. root frequencies)."""
        return PlainVector(self.values * factors)

    def transition(self, P: np.ndarray) -> "PlainVector":
        """Entry e becomes ``sum_s P[e, s] * self[s]``."""
        return PlainVector(P @ self.values)

    def reverse_transition(self, P: np.ndarray) -> "PlainVector":
        """Entry e becomes ``sum_s self[s] * P[s, e]``."""
        return PlainVector(self.values @ P)

    def dot(self, weights: np.ndarray) -> StandardDouble:
        return StandardDouble(float(self.values @ weights))

    def total(self) -> StandardDouble:
        return StandardDouble(float(self.values.sum()))

    def entry(self, i: int) -> StandardDouble:
        return StandardDouble(self.values[i])

    def any_nonzero(self) -> bool:
        return bool(np.any(self.values != 0.0))

    def log_values(self) -> np.ndarray:
        with np.errstate(divide="ignore"):
            return np.log(self.values)

    def normalized(self) -> np.ndarray:
        return self.values / self.values.sum()

    def argmax(self) -> int:
        """Index of the largest entry; ties go to the lowest index."""
        return int(np.argmax(self.values))

    def to_array(self) -> np.ndarray:
        return self.values.copy()

    def __repr__(self) -> str:
        return f"PlainVector({self.values!r})"


class ScaledVector:
    """Partial likelihoods stored as per-entry mantissa and exponent."""

    __slots__ = ("mantissa", "exponent")

    def __init__(self, mantissa: np.ndarray, exponent: np.ndarray):
        self.mantissa = mantissa
        self.exponent = exponent

    @classmethod
    def from_array(cls, values: np.ndarray, exponent=0) -> "ScaledVector":
        values = np.asarray(values, dtype=np.float64)
        m, e = np.frexp(values)
        e = e.astype(np.int64) - 1 + exponent
        m = m * 2.0
        e = np.where(m == 0.0, 0, e)
        return cls(m, e)

    @classmethod
    def ones(cls, n: int) -> "ScaledVector":
        return cls(np.ones(n), np.zeros(n, dtype=np.int64))

    def __len__(self) -> int:
        return len(self.mantissa)

    def _aligned(self) -> tuple[np.ndarray, int]:
        """
        Express all entries relative to the largest exponent.

        Entries more than ``MAX_EXPONENT`` below the largest contribute zero,
        exactly as :meth:`SmallDouble.add` drops them.
        """
        nonzero = self.mantissa != 0.0
        if not nonzero.any():
            return np.zeros_like(self.mantissa), 0
        top = int(self.exponent[nonzero].max())
        gap = top - self.exponent
        keep = nonzero & (gap <= MAX_EXPONENT)
        shift = np.where(keep, -gap, 0).astype(np.int32)
        return np.where(keep, np.ldexp(self.mantissa, shift), 0.0), top

    def multiply(self, other: "ScaledVector") -> "ScaledVector":
        return ScaledVector.from_array(
            self.mantissa * other.mantissa, self.exponent + other.exponent
        )

    def scale(self, factors: np.ndarray) -> "ScaledVector":
        return ScaledVector.from_array(self.mantissa * factors, self.exponent)

    def transition(self, P: np.ndarray) -> "ScaledVector":
        values, top = self._aligned()
        return ScaledVector.from_array(P @ values, top)

    def reverse_transition(self, P: np.ndarray) -> "ScaledVector":
        values, top = self._aligned()
        return ScaledVector.from_array(values @ P, top)

    def dot(self, weights: np.ndarray) -> SmallDouble:
        values, top = self._aligned()
        return SmallDouble(float(values @ weights), top)

    def total(self) -> SmallDouble:
        values, top = self._aligned()
        return SmallDouble(float(values.sum()), top)

    def entry(self, i: int) -> SmallDouble:
        return SmallDouble(float(self.mantissa[i]), int(self.exponent[i]))

    def any_nonzero(self) -> bool:
        return bool(np.any(self.mantissa != 0.0))

    def log_values(self) -> np.ndarray:
        with np.errstate(divide="ignore", invalid="ignore"):
            return np.log(self.mantissa) + self.exponent * np.log(2.0)

    def normalized(self) -> np.ndarray:
        values, _ = self._aligned()
        return values / values.sum()

    def argmax(self) -> int:
        """Index of the largest entry; ties go to the lowest index."""
        best = 0
        for i in range(1, len(self)):
            if self.entry(i).greater_than(self.entry(best)):
                best = i
        return best

    def to_array(self) -> np.ndarray:
        """Plain float values (may underflow to zero)."""
        exponent = np.clip(self.exponent, -2200, 2200).astype(np.int32)
        with np.errstate(over="ignore"):
            return np.ldexp(self.mantissa, exponent)

    def __repr__(self) -> str:
        return f"ScaledVector({self.mantissa!r}, {self.exponent!r})"


LikelihoodVector = Union[PlainVector, ScaledVector]


def vector_from_array(values: np.ndarray, real_type: RealType = RealType.STANDARD) -> LikelihoodVector:
    """Create a likelihood vector of the requested representation."""
    if RealType(real_type) is RealType.SCALED:
        return ScaledVector.from_array(values)
    return PlainVector(np.array(values, dtype=np.float64))


def vector_ones(n: int, real_type: RealType = RealType.STANDARD) -> LikelihoodVector:
    if RealType(real_type) is RealType.SCALED:
        return ScaledVector.ones(n)
    return PlainVector.ones(n)
