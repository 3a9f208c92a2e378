"""
Standard nucleotide substitution models.

States are ordered T, C, A, G. Frequency parameters are ``pT``, ``pC``,
``pA`` and ``pG`` (normalized before use), the transition/transversion
ratio is ``k``, GTR exchangeabilities are ``a`` to ``f`` and the gamma shape
is ``g``. The RY model collapses the four bases into purines and
pyrimidines. Every factory takes an optional number of gamma categories.

Examples
--------
>>> m = hky(gamma_categories=4)
>>> sorted(m.parameters)
['g', 'k', 'pA', 'pC', 'pG', 'pT']
"""

from typing import Optional

from .expressions import Variable
from .model import Model
from .rate_category import FREQUENCY_PREFIX, RateCategory

NUCLEOTIDES = ("T", "C", "A", "G")
FREQUENCY_PARAMETERS = ("pT", "pC", "pA", "pG")
GAMMA_PARAMETER = "g"
RY_STATES = ("R", "Y")
#: Purines to R and pyrimidines to Y, for use with :meth:`Alignment.recode`
RY_RECODING = {"A": "R", "G": "R", "C": "Y", "T": "Y"}

# Pairs (T,C) and (A,G) are transitions
_TRANSITIONS = {(0, 1), (1, 0), (2, 3), (3, 2)}
# GTR exchangeability names by unordered pair
_EXCHANGEABILITIES = {
    (0, 1): "a", (0, 2): "b", (0, 3): "c",
    (1, 2): "d", (1, 3): "e", (2, 3): "f",
}


def _own(state: int) -> Variable:
    return Variable(FREQUENCY_PREFIX + NUCLEOTIDES[state])


def _build(rate, freq, gamma_categories: Optional[int], name: str) -> Model:
    rates = [[0.0 if i == j else rate(i, j) for j in range(4)] for i in range(4)]
    category = RateCategory(rates, NUCLEOTIDES, freq=freq, name=name)
    return Model.with_gamma(category, GAMMA_PARAMETER, gamma_categories)


def jukes_cantor(gamma_categories: Optional[int] = None) -> Model:
    """Jukes-Cantor (1969): equal rates and equal frequencies."""
    return _build(lambda i, j: 1.0, [0.25] * 4, gamma_categories, "JC")


def kimura(gamma_categories: Optional[int] = None) -> Model:
    """Kimura (1980) two-parameter model with transition ratio ``k``."""
    return _build(
        lambda i, j: "k" if (i, j) in _TRANSITIONS else 1.0,
        [0.25] * 4,
        gamma_categories,
        "K80",
    )


def felsenstein81(gamma_categories: Optional[int] = None) -> Model:
    """Felsenstein (1981): rates proportional to target frequencies."""
    return _build(
        lambda i, j: _own(j), list(FREQUENCY_PARAMETERS), gamma_categories, "F81"
    )


def hky(gamma_categories: Optional[int] = None) -> Model:
    """Hasegawa, Kishino and Yano (1985): F81 with transition ratio ``k``."""
    return _build(
        lambda i, j: Variable("k") * _own(j) if (i, j) in _TRANSITIONS else _own(j),
        list(FREQUENCY_PARAMETERS),
        gamma_categories,
        "HKY",
    )


def gtr(gamma_categories: Optional[int] = None) -> Model:
    """General time-reversible model with exchangeabilities ``a`` to ``f``."""
    return _build(
        lambda i, j: Variable(_EXCHANGEABILITIES[(min(i, j), max(i, j))]) * _own(j),
        list(FREQUENCY_PARAMETERS),
        gamma_categories,
        "GTR",
    )


def ry(gamma_categories: Optional[int] = None) -> Model:
    """
    Two-state purine/pyrimidine model.

    F81 on the states R and Y with frequency parameters ``pR`` and ``pY``.
    Nucleotide alignments are mapped onto it with ``RY_RECODING``.

    Examples
    --------
    >>> m = ry()
    >>> m.states, sorted(m.parameters)
    (('R', 'Y'), ['pR', 'pY'])
    """
    rates = [
        [0.0, Variable(FREQUENCY_PREFIX + "Y")],
        [Variable(FREQUENCY_PREFIX + "R"), 0.0],
    ]
    category = RateCategory(rates, RY_STATES, freq=["pR", "pY"], name="RY")
    return Model.with_gamma(category, GAMMA_PARAMETER, gamma_categories)


def default_parameters(model: Model) -> dict:
    """
    Starting values for a nucleotide model's parameters.

    Every parameter starts at one: equal frequencies, no transition bias,
    equal exchangeabilities and a gamma shape of one.
    """
    return {name: 1.0 for name in sorted(model.parameters)}
