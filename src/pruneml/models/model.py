"""
Mixture of rate categories sharing one state space.
"""

from typing import Iterator, Mapping, MutableMapping, Optional, Sequence

import numpy as np

from ..config import DistributionMethod
from ..exceptions import ModelError, RateError
from .expressions import Entry, GammaRate, as_expression, memo_evaluate
from .rate_category import RateCategory, missing_parameters


class Model:
    """
    Substitution model made of one or more weighted rate categories.

    Parameters
    ----------
    categories : RateCategory or sequence of RateCategory
        The rate categories. All must share an identical state map.
    weights : sequence, optional
        Mixture weight entries, one per category (numbers, parameter names
        or expressions). Defaults to equal weights. Weights are normalized
        to sum to one when evaluated.
    rescale : bool, default=True
        If True, rates are scaled so that the weighted expected substitution
        rate is one, making branch lengths expected substitutions per site.

    Raises
    ------
    ModelError
        If the categories have different states or the weights do not match.
    """

    def __init__(
        self,
        categories,
        weights: Optional[Sequence[Entry]] = None,
        rescale: bool = True,
    ):
        if isinstance(categories, RateCategory):
            categories = [categories]
        categories = tuple(categories)
        if not categories:
            raise ModelError("A model needs at least one rate category")
        if weights is None:
            weights = [1.0] * len(categories)
        if len(weights) != len(categories):
            raise ModelError(
                f"{len(weights)} weights given for {len(categories)} rate categories"
            )
        state_index = categories[0].state_index
        for c in categories[1:]:
            if c.n_states != categories[0].n_states:
                raise ModelError("Rates have different number of states")
            if c.state_index != state_index:
                raise ModelError("Rates have different states")
        self.categories = categories
        self.weight_entries = tuple(as_expression(w) for w in weights)
        self.rescale = rescale

    def __iter__(self) -> Iterator[RateCategory]:
        return iter(self.categories)

    def __len__(self) -> int:
        return len(self.categories)

    def __getitem__(self, k: int) -> RateCategory:
        return self.categories[k]

    @property
    def has_single_rate(self) -> bool:
        return len(self.categories) == 1

    @property
    def states(self) -> tuple:
        return self.categories[0].states

    @property
    def state_index(self) -> dict:
        return self.categories[0].state_index

    @property
    def n_states(self) -> int:
        return self.categories[0].n_states

    @property
    def parameters(self) -> frozenset:
        needed = set()
        for c in self.categories:
            needed |= c.parameters
        for w in self.weight_entries:
            needed |= w.parameters
        return frozenset(needed)

    def weights(self, values: Mapping[str, float], memo: Optional[MutableMapping] = None) -> np.ndarray:
        """Normalized mixture weights."""
        missing_parameters(
            set().union(*(w.parameters for w in self.weight_entries)), values
        )
        w = np.array(
            [memo_evaluate(e, values, memo) for e in self.weight_entries], dtype=np.float64
        )
        total = w.sum()
        if not total > 0.0 or np.any(w < 0.0):
            raise ModelError(f"Invalid rate category weights {w}")
        return w / total

    def scale_for(self, matrices: Sequence[np.ndarray], freqs: Sequence[np.ndarray], weights: np.ndarray) -> float:
        """
        Rescaling factor for already evaluated categories.

        One over the weighted total rate when rescaling, else one.
        """
        if not self.rescale:
            return 1.0
        total = sum(
            w * RateCategory.total_rate(R, f) for R, f, w in zip(matrices, freqs, weights)
        )
        if not total > 0.0:
            raise RateError(f"Model total rate must be positive, got {total}")
        return 1.0 / total

    def scale(
        self,
        values: Mapping[str, float],
        method: DistributionMethod = DistributionMethod.EIGEN,
    ) -> float:
        """Rescaling factor at the given parameter values."""
        memo = {}
        evaluated = [c.evaluate(values, method, memo) for c in self.categories]
        return self.scale_for(
            [R for R, _ in evaluated], [f for _, f in evaluated], self.weights(values, memo)
        )

    @classmethod
    def gamma_rates(cls, category: RateCategory, alpha: str, n_categories: int, rescale: bool = True) -> "Model":
        """
        Discrete gamma rate heterogeneity around one category.

        Builds ``n_categories`` equally weighted copies of ``category`` whose
        rates are multiplied by the mean rate of each gamma category.

        Parameters
        ----------
        category : RateCategory
            Base category.
        alpha : str
            Name of the gamma shape parameter.
        n_categories : int
            Number of gamma categories.
        rescale : bool, default=True
            Passed to the model.

        Examples
        --------
        >>> base = RateCategory([[0, 1], [1, 0]], ["a", "b"], freq=[1, 1])
        >>> m = Model.gamma_rates(base, "g", 4)
        >>> [c.name for c in m][:2]
        ['Gamma Category 1', 'Gamma Category 2']
        """
        if n_categories < 1:
            raise ModelError(f"Need at least one gamma category, got {n_categories}")
        cats = [
            category.multiply_by(GammaRate(alpha, i, n_categories)).with_name(f"Gamma Category {i}")
            for i in range(1, n_categories + 1)
        ]
        return cls(cats, [1.0 / n_categories] * n_categories, rescale=rescale)

    @classmethod
    def single(cls, category: RateCategory, rescale: bool = True) -> "Model":
        return cls([category], rescale=rescale)

    @classmethod
    def with_gamma(
        cls,
        category: RateCategory,
        alpha: str,
        n_categories: Optional[int] = None,
        rescale: bool = True,
    ) -> "Model":
        """Single-category model, or gamma rates when ``n_categories`` is above one."""
        if n_categories is None or n_categories == 1:
            return cls.single(category, rescale)
        if n_categories < 1:
            raise ModelError("Models must have at least one category")
        return cls.gamma_rates(category, alpha, n_categories, rescale)

    def __repr__(self) -> str:
        names = [c.name or f"#{k}" for k, c in enumerate(self.categories)]
        return f"Model(categories={names}, rescale={self.rescale})"
