"""
A single rate category: a parameterized rate matrix plus its frequencies.
"""

from enum import Enum
from typing import Mapping, MutableMapping, Optional, Sequence, Union

import numpy as np

from ..config import DistributionMethod
from ..core.matrix import generator_from_rates
from ..exceptions import DistributionError, RateError
from .distributions import quasi_stationary, stationary
from .expressions import Entry, Product, as_expression, memo_evaluate

#: Prefix of parameters that refer to the category's own model frequencies.
FREQUENCY_PREFIX = "_"


class FrequencyType(str, Enum):
    """Where a category's root frequencies come from."""
    MODEL = "model"
    STATIONARY = "stationary"
    QSTAT = "qstat"


def missing_parameters(needed, values: Mapping[str, float]) -> None:
    """Raise RateError naming every needed parameter absent from ``values``."""
    missing = sorted(p for p in needed if p not in values)
    if missing:
        raise RateError(f"Parameters {', '.join(missing)} have not been passed")


class RateCategory:
    """
    Parameterized substitution process for one rate category.

    Parameters
    ----------
    rates : sequence of sequences
        Square matrix of entries. Each off-diagonal entry is a number, the
        name of a parameter, or an :class:`~pruneml.models.expressions.Expression`.
        Diagonal entries are ignored and replaced by minus the row sum.
    states : sequence of str or mapping
        Ordered state names, or a mapping from state name to index.
    freq : sequence, optional
        Root frequency entries. Required when ``freq_type`` is MODEL and
        forbidden otherwise. Values are normalized to sum to one.
    freq_type : FrequencyType
        MODEL uses ``freq``; STATIONARY and QSTAT derive the frequencies from
        the rate matrix.
    name : str, optional
        Label used in results and messages.

    Notes
    -----
    With MODEL frequencies, a parameter named ``_<state>`` in the rate matrix
    refers to this category's normalized frequency of that state. The
    frequencies are therefore computed before the matrix.

    Examples
    --------
    >>> cat = RateCategory([[0, "k"], ["k", 0]], ["a", "b"], freq=[1, 1])
    >>> cat.rate_matrix({"k": 2.0})
    array([[-2.,  2.],
           [ 2., -2.]])
    """

    def __init__(
        self,
        rates: Sequence[Sequence[Entry]],
        states: Union[Sequence[str], Mapping[str, int]],
        freq: Optional[Sequence[Entry]] = None,
        freq_type: FrequencyType = FrequencyType.MODEL,
        name: Optional[str] = None,
    ):
        freq_type = FrequencyType(freq_type)
        if freq_type is FrequencyType.MODEL and freq is None:
            raise RateError("Frequency type set to model, yet no frequency array given")
        if freq_type is not FrequencyType.MODEL and freq is not None:
            raise RateError("Frequency type not set to model, yet frequency array given")

        size = len(rates)
        if any(len(row) != size for row in rates):
            raise RateError("Rate matrix is not square")
        if freq is not None and len(freq) != size:
            raise RateError("Frequency array is not the same length as the rate matrix")

        if isinstance(states, Mapping):
            state_index = dict(states)
        else:
            state_index = {s: i for i, s in enumerate(states)}
        if len(state_index) != size or sorted(state_index.values()) != list(range(size)):
            raise RateError(
                f"State map with {len(state_index)} states does not match a {size}x{size} rate matrix"
            )

        self.rates = tuple(
            tuple(None if i == j else as_expression(rates[i][j]) for j in range(size))
            for i in range(size)
        )
        self.freq = None if freq is None else tuple(as_expression(f) for f in freq)
        self.freq_type = freq_type
        self.state_index = state_index
        self.states = tuple(sorted(state_index, key=state_index.get))
        self.name = name
        self._check_frequency_parameters()

    def _check_frequency_parameters(self) -> None:
        for p in self._rate_parameters():
            if p.startswith(FREQUENCY_PREFIX):
                if self.freq_type is not FrequencyType.MODEL:
                    raise RateError(
                        "Frequency parameters can not be used in matrix unless "
                        "frequency type is model"
                    )
                if p[len(FREQUENCY_PREFIX):] not in self.state_index:
                    raise RateError(f"Frequency parameter {p} refers to an undefined state")

    def _rate_parameters(self) -> set:
        needed = set()
        for row in self.rates:
            for entry in row:
                if entry is not None:
                    needed |= entry.parameters
        return needed

    def _is_frequency_parameter(self, name: str) -> bool:
        return (
            name.startswith(FREQUENCY_PREFIX)
            and name[len(FREQUENCY_PREFIX):] in self.state_index
        )

    @property
    def parameters(self) -> frozenset:
        """Names of the parameters needed to evaluate this category."""
        needed = {p for p in self._rate_parameters() if not self._is_frequency_parameter(p)}
        if self.freq is not None:
            for f in self.freq:
                needed |= f.parameters
        return frozenset(needed)

    @property
    def n_states(self) -> int:
        return len(self.states)

    def model_frequencies(
        self, values: Mapping[str, float], memo: Optional[MutableMapping] = None
    ) -> np.ndarray:
        """Normalized frequencies from the ``freq`` entries (MODEL only)."""
        if self.freq is None:
            raise RateError("Category has no model frequencies")
        missing_parameters(self.parameters, values)
        f = np.array([memo_evaluate(e, values, memo) for e in self.freq], dtype=np.float64)
        total = f.sum()
        if not total > 0.0 or np.any(f < 0.0):
            raise RateError(f"Invalid frequencies {f}")
        return f / total

    def rate_matrix(
        self,
        values: Mapping[str, float],
        memo: Optional[MutableMapping] = None,
        model_freq: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        """
        Numeric generator for the given parameter values.

        Parameters
        ----------
        values : mapping
            Parameter values.
        memo : dict, optional
            Expression memo shared across categories of one evaluation.
        model_freq : ndarray, optional
            Already computed model frequencies (MODEL only).

        Returns
        -------
        ndarray, shape (n, n)
            Generator whose diagonal is minus the off-diagonal row sum.

        Raises
        ------
        RateError
            If parameters are missing or an entry is not a finite number.
        """
        missing_parameters(self.parameters, values)
        own = {}
        if self.freq_type is FrequencyType.MODEL:
            if model_freq is None:
                model_freq = self.model_frequencies(values, memo)
            own = {
                FREQUENCY_PREFIX + s: float(model_freq[i])
                for s, i in self.state_index.items()
            }
        scope = {**values, **own} if own else values

        n = self.n_states
        rates = np.zeros((n, n))
        for i in range(n):
            for j in range(n):
                entry = self.rates[i][j]
                if entry is None:
                    continue
                # Entries reading this category's own frequencies differ
                # between categories and are kept out of the shared memo
                if own and any(self._is_frequency_parameter(p) for p in entry.parameters):
                    rates[i, j] = entry.evaluate(scope)
                else:
                    rates[i, j] = memo_evaluate(entry, scope, memo)
        if not np.all(np.isfinite(rates)):
            raise RateError(f"Rate matrix{self._label()} has non-finite entries")
        return generator_from_rates(rates)

    def frequencies(
        self,
        values: Mapping[str, float],
        R: Optional[np.ndarray] = None,
        method: DistributionMethod = DistributionMethod.EIGEN,
        memo: Optional[MutableMapping] = None,
    ) -> np.ndarray:
        """
        Root frequencies for the given parameter values.

        For STATIONARY and QSTAT categories ``R`` is the category's numeric
        generator (computed when not given).

        Raises
        ------
        RateError
            If the derived distribution cannot be calculated.
        """
        if self.freq_type is FrequencyType.MODEL:
            return self.model_frequencies(values, memo)
        if R is None:
            R = self.rate_matrix(values, memo)
        try:
            if self.freq_type is FrequencyType.STATIONARY:
                return stationary(R, method)
            return quasi_stationary(R, method)
        except DistributionError as e:
            raise RateError(f"Frequencies{self._label()}: {e}") from e

    def evaluate(
        self,
        values: Mapping[str, float],
        method: DistributionMethod = DistributionMethod.EIGEN,
        memo: Optional[MutableMapping] = None,
    ) -> tuple[np.ndarray, np.ndarray]:
        """Return ``(R, freq)``, computing them in dependency order."""
        if self.freq_type is FrequencyType.MODEL:
            freq = self.model_frequencies(values, memo)
            return self.rate_matrix(values, memo, model_freq=freq), freq
        R = self.rate_matrix(values, memo)
        return R, self.frequencies(values, R, method, memo)

    @staticmethod
    def total_rate(R: np.ndarray, freq: np.ndarray) -> float:
        """Expected substitution rate, sum over i != j of R[i,j] * freq[i]."""
        off = R - np.diag(R.diagonal())
        return float(freq @ off.sum(axis=1))

    def multiply_by(self, factor: Entry) -> "RateCategory":
        """Category with every rate multiplied by ``factor``."""
        factor = as_expression(factor)
        rates = [
            [0.0 if e is None else Product(factor, e) for e in row] for row in self.rates
        ]
        return self._copy(rates=rates)

    def with_name(self, name: str) -> "RateCategory":
        return self._copy(name=name)

    def _copy(self, **changes) -> "RateCategory":
        kwargs = dict(
            rates=[[0.0 if e is None else e for e in row] for row in self.rates],
            states=self.state_index,
            freq=self.freq,
            freq_type=self.freq_type,
            name=self.name,
        )
        kwargs.update(changes)
        return RateCategory(**kwargs)

    def _label(self) -> str:
        return f" of category {self.name}" if self.name else ""

    def __repr__(self) -> str:
        return (
            f"RateCategory(name={self.name!r}, states={list(self.states)}, "
            f"freq_type={self.freq_type.value})"
        )
