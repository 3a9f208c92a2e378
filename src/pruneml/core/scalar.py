"""
Underflow-safe scalar arithmetic for likelihood values.

Site likelihoods are products of many transition probabilities, each at most
one. On large or deep trees a plain float product underflows to exactly zero
and the log-likelihood silently becomes ``-inf``. Two interchangeable scalar
types share one contract:

- :class:`StandardDouble` wraps a Python float.
- :class:`SmallDouble` stores a mantissa in [1, 2) and an unbounded integer
  binary exponent, so products never underflow.

Both support ``multiply``, ``add``, ``subtract``, ``divide``, ``negate``,
``inverse``, ``greater_than``, ``ln``, ``ln1m`` and ``to_float`` as well as
the corresponding Python operators. Arguments may be either scalar type or a
plain number.

Examples
--------
>>> x = real(0.01, RealType.SCALED)
>>> p = one(RealType.SCALED)
>>> for _ in range(1000):
...     p = p * x
>>> round(p.ln(), 6)
-4605.170186
"""

import math
import sys
from typing import Union

from ..config import RealType

#: Largest exponent gap over which an addition still changes the result.
MAX_EXPONENT = sys.float_info.max_exp - 1
LN2 = math.log(2.0)


def _split(x: float) -> tuple[float, int]:
    """Split x into a mantissa in [1, 2) and a binary exponent."""
    if x == 0.0 or not math.isfinite(x):
        return x, 0
    m, e = math.frexp(x)
    return m * 2.0, e - 1


def _log(x: float) -> float:
    if x > 0.0:
        return math.log(x)
    if x == 0.0:
        return -math.inf
    return math.nan


def _log1m(x: float) -> float:
    if x < 1.0:
        return math.log1p(-x)
    if x == 1.0:
        return -math.inf
    return math.nan


class StandardDouble:
    """Plain floating point likelihood value."""

    __slots__ = ("value",)

    def __init__(self, value: float = 0.0):
        self.value = float(value)

    def multiply(self, other: "Real") -> "StandardDouble":
        return StandardDouble(self.value * _as_float(other))

    def add(self, other: "Real") -> "StandardDouble":
        return StandardDouble(self.value + _as_float(other))

    def subtract(self, other: "Real") -> "StandardDouble":
        return StandardDouble(self.value - _as_float(other))

    def divide(self, other: "Real") -> "StandardDouble":
        return StandardDouble(self.value / _as_float(other))

    def negate(self) -> "StandardDouble":
        return StandardDouble(-self.value)

    def inverse(self) -> "StandardDouble":
        return StandardDouble(1.0 / self.value)

    def greater_than(self, other: "Real") -> bool:
        return self.value > _as_float(other)

    def ln(self) -> float:
        """Natural log of the value."""
        return _log(self.value)

    def ln1m(self) -> float:
        """Natural log of one minus the value, exact for small values via ``log1p``."""
        return _log1m(self.value)

    def to_float(self) -> float:
        return self.value

    def to_small_double(self) -> "SmallDouble":
        return SmallDouble(self.value)

    __mul__ = multiply
    __rmul__ = multiply
    __add__ = add
    __radd__ = add
    __sub__ = subtract
    __truediv__ = divide
    __neg__ = negate
    __gt__ = greater_than

    def __lt__(self, other: "Real") -> bool:
        return self.value < _as_float(other)

    def __float__(self) -> float:
        return self.value

    def __eq__(self, other) -> bool:
        if isinstance(other, SmallDouble):
            return other == self
        if isinstance(other, (StandardDouble, int, float)):
            return self.value == _as_float(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.value)

    def __repr__(self) -> str:
        return f"StandardDouble({self.value!r})"


class SmallDouble:
    """
    Likelihood value stored as ``mantissa * 2**exponent``.

    The mantissa is kept in [1, 2) (or is exactly zero) and the exponent is a
    Python int, so the representable range is effectively unbounded.

    Parameters
    ----------
    value : float
        Value to represent.
    exponent : int
        Additional binary exponent applied to ``value``.
    """

    __slots__ = ("mantissa", "exponent")

    def __init__(self, value: float = 0.0, exponent: int = 0):
        m, e = _split(float(value))
        self.mantissa = m
        self.exponent = e + exponent if m != 0.0 else 0

    @classmethod
    def from_parts(cls, mantissa: float, exponent: int) -> "SmallDouble":
        """Build from an unnormalized mantissa and exponent."""
        return cls(mantissa, int(exponent))

    def multiply(self, other: "Real") -> "SmallDouble":
        if isinstance(other, (int, float)):
            return SmallDouble(self.mantissa * other, self.exponent)
        o = _as_small(other)
        return SmallDouble(self.mantissa * o.mantissa, self.exponent + o.exponent)

    def add(self, other: "Real") -> "SmallDouble":
        o = _as_small(other)
        if self.mantissa == 0.0:
            return o
        if o.mantissa == 0.0:
            return self
        # Shift the operand with the smaller exponent; past the double range
        # it cannot change the result.
        if self.exponent >= o.exponent:
            big, small = self, o
        else:
            big, small = o, self
        gap = big.exponent - small.exponent
        if gap > MAX_EXPONENT:
            return big
        return SmallDouble(
            big.mantissa + math.ldexp(small.mantissa, -gap), big.exponent
        )

    def subtract(self, other: "Real") -> "SmallDouble":
        return self.add(_as_small(other).negate())

    def divide(self, other: "Real") -> "SmallDouble":
        if isinstance(other, (int, float)):
            return SmallDouble(self.mantissa / other, self.exponent)
        return self.multiply(_as_small(other).inverse())

    def negate(self) -> "SmallDouble":
        return SmallDouble(-self.mantissa, self.exponent)

    def inverse(self) -> "SmallDouble":
        return SmallDouble(1.0 / self.mantissa, -self.exponent)

    def greater_than(self, other: "Real") -> bool:
        o = _as_small(other)
        if self.mantissa == 0.0 or o.mantissa == 0.0 or (self.mantissa > 0) != (o.mantissa > 0):
            return self.mantissa > o.mantissa
        if self.exponent != o.exponent:
            larger_magnitude = self.exponent > o.exponent
            return larger_magnitude if self.mantissa > 0 else not larger_magnitude
        return self.mantissa > o.mantissa

    def ln(self) -> float:
        """Natural log, ``log(mantissa) + exponent * log(2)``."""
        if self.mantissa <= 0.0:
            return _log(self.mantissa)
        return math.log(self.mantissa) + self.exponent * LN2

    def ln1m(self) -> float:
        """
        Natural log of one minus the value.

        Values too small for a double give ``log1p(-0.0) == 0``, which is
        also the nearest double to the exact result.
        """
        return _log1m(self.to_float())

    def to_float(self) -> float:
        try:
            return math.ldexp(self.mantissa, self.exponent)
        except OverflowError:
            return math.copysign(math.inf, self.mantissa)

    def to_small_double(self) -> "SmallDouble":
        return self

    __mul__ = multiply
    __rmul__ = multiply
    __add__ = add
    __radd__ = add
    __sub__ = subtract
    __truediv__ = divide
    __neg__ = negate
    __gt__ = greater_than

    def __lt__(self, other: "Real") -> bool:
        return _as_small(other).greater_than(self)

    def __float__(self) -> float:
        return self.to_float()

    def __eq__(self, other) -> bool:
        if isinstance(other, (SmallDouble, StandardDouble, int, float)):
            o = _as_small(other)
            return self.mantissa == o.mantissa and self.exponent == o.exponent
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self.mantissa, self.exponent))

    def __repr__(self) -> str:
        if self.mantissa == 0.0:
            return "SmallDouble(0.0)"
        t = self.exponent * LN2 / math.log(10.0)
        se = math.floor(t)
        sm = self.mantissa * 10.0 ** (t - se)
        if abs(sm) >= 10.0:
            sm, se = sm / 10.0, se + 1
        return f"SmallDouble({sm!r}e{se})"


Real = Union[StandardDouble, SmallDouble, float, int]


def _as_float(x: Real) -> float:
    if isinstance(x, (StandardDouble, SmallDouble)):
        return x.to_float()
    return float(x)


def _as_small(x: Real) -> SmallDouble:
    if isinstance(x, SmallDouble):
        return x
    if isinstance(x, StandardDouble):
        return x.to_small_double()
    return SmallDouble(float(x))


def real(value: float, real_type: RealType = RealType.STANDARD):
    """Create a scalar of the requested representation."""
    if RealType(real_type) is RealType.SCALED:
        return SmallDouble(value)
    return StandardDouble(value)


def zero(real_type: RealType = RealType.STANDARD):
    return real(0.0, real_type)


def one(real_type: RealType = RealType.STANDARD):
    return real(1.0, real_type)


def smallest(real_type: RealType = RealType.STANDARD):
    """A value below any likelihood, used to seed running maxima."""
    if RealType(real_type) is RealType.SCALED:
        return SmallDouble.from_parts(-1.0, sys.maxsize)
    return StandardDouble(-sys.float_info.max)
