"""
Gene family size models (Ames et al. 2012).

States are family sizes written as decimal strings, ``"0"`` up to the
maximum size. Root frequencies are derived from the rate matrix rather than
given. Parameters:

- ``r``: rate of gaining or losing one copy in the parsimony-style model
- ``b``, ``d``: per-family birth and death rates
- ``i``: innovation rate, the rate of a family appearing from size zero
- ``g``: gamma shape, when gamma categories are used

By default each model is rescaled to one expected change per unit branch
length, so ``r`` or ``b`` only matters relative to the other rates and is
normally held at one. With ``rescale=False`` rates are absolute.

Examples
--------
>>> m = bdi(3)
>>> m.states, sorted(m.parameters)
(('0', '1', '2', '3'), ['b', 'd', 'i'])
"""

from typing import Callable, Optional

from ..exceptions import ModelError
from .model import Model
from .nucleotide import GAMMA_PARAMETER
from .rate_category import FrequencyType, RateCategory


def _sizes(low: int, high: int) -> list:
    return [str(n) for n in range(low, high + 1)]


def _build(
    rate: Callable[[int, int], object],
    states: list,
    freq_type: FrequencyType,
    gamma_categories: Optional[int],
    rescale: bool,
    name: str,
) -> Model:
    n = len(states)
    rates = [[0.0 if i == j else rate(i, j) for j in range(n)] for i in range(n)]
    category = RateCategory(rates, states, freq_type=freq_type, name=name)
    return Model.with_gamma(category, GAMMA_PARAMETER, gamma_categories, rescale)


def _birth_death(i: int, j: int):
    if j - i == 1:
        return "b"
    if i - j == 1:
        return "d"
    return 0.0


def _check_size(max_size: int, smallest: int) -> None:
    if max_size < smallest:
        raise ModelError(f"Maximum family size must be at least {smallest}, got {max_size}")


def parsimony(max_size: int, gamma_categories: Optional[int] = None, rescale: bool = True) -> Model:
    """
    Parsimony-style model: one gain or loss at a time, all at rate ``r``.

    Parameters
    ----------
    max_size : int
        Largest family size.
    gamma_categories : int, optional
        Number of discrete gamma categories.
    rescale : bool, default=True
        Whether to rescale to one expected change per unit length.
    """
    _check_size(max_size, 1)
    return _build(
        lambda i, j: "r" if abs(i - j) == 1 else 0.0,
        _sizes(0, max_size),
        FrequencyType.STATIONARY,
        gamma_categories,
        rescale,
        "Parsimony",
    )


def bdi(max_size: int, gamma_categories: Optional[int] = None, rescale: bool = True) -> Model:
    """
    Birth, death and innovation.

    A family of size n > 0 grows at rate ``b`` and shrinks at rate ``d``; a
    family of size zero reappears at rate ``i``. Frequencies are the
    stationary distribution. Arguments are as for :func:`parsimony`.
    """
    _check_size(max_size, 1)
    return _build(
        lambda i, j: "i" if (i, j) == (0, 1) else _birth_death(i, j),
        _sizes(0, max_size),
        FrequencyType.STATIONARY,
        gamma_categories,
        rescale,
        "BDI",
    )


def bd_no_zero(max_size: int, gamma_categories: Optional[int] = None, rescale: bool = True) -> Model:
    """
    Birth and death on sizes 1 to ``max_size``; families never disappear.

    Frequencies are the stationary distribution. Arguments are as for
    :func:`parsimony`.
    """
    _check_size(max_size, 2)
    return _build(
        _birth_death,
        _sizes(1, max_size),
        FrequencyType.STATIONARY,
        gamma_categories,
        rescale,
        "BD (no zero)",
    )


def bd(max_size: int, gamma_categories: Optional[int] = None, rescale: bool = True) -> Model:
    """
    Birth and death with loss of the family as an absorbing state.

    Size zero can be entered but not left, so there is no stationary
    distribution with families present. Root frequencies are the
    quasi-stationary distribution: the long-run distribution of sizes among
    families that survive. It puts no mass on size zero. Arguments are as
    for :func:`parsimony`.
    """
    _check_size(max_size, 1)
    return _build(
        # no rates out of size zero
        lambda i, j: _birth_death(i, j) if i > 0 else 0.0,
        _sizes(0, max_size),
        FrequencyType.QSTAT,
        gamma_categories,
        rescale,
        "BD",
    )
