"""
Combination of the root partial likelihoods into a site likelihood.
"""

import numpy as np

from ..core.scalar import Real
from ..core.vectors import LikelihoodVector
from ..exceptions import LikelihoodError


class StandardRoot:
    """Weights each root state by the category's root frequency."""

    def calculate(self, root: LikelihoodVector, freq: np.ndarray) -> Real:
        """Return ``sum_s L[s] * freq[s]``."""
        return root.dot(freq)

    def get_freq(self, freq: np.ndarray, state: int) -> float:
        return float(freq[state])


class FitzJohnRoot:
    """
    Root weighting of FitzJohn et al. (2009).

    Each root state is weighted by its own conditional probability, so the
    site likelihood is ``sum L[s]^2 / sum L[s]`` and does not depend on the
    root frequencies.
    """

    def calculate(self, root: LikelihoodVector, freq: np.ndarray) -> Real:
        total = root.total()
        # an impossible site has likelihood zero whatever the weighting
        if total == 0:
            return total
        return root.multiply(root).total().divide(total)

    def get_freq(self, freq: np.ndarray, state: int) -> float:
        raise LikelihoodError("Frequency not independent of likelihood")
