"""
Result objects for likelihood calculations.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import numpy as np

from ..core.scalar import Real
from ..core.vectors import LikelihoodVector
from ..exceptions import LikelihoodError


@dataclass
class RateLikelihood:
    """
    Likelihood of one site under one rate category.

    Attributes
    ----------
    likelihood : Real
        Site likelihood conditional on the category.
    node_likelihoods : dict or None
        Partial likelihood vector per node name, or None when node results
        are not kept.
    """

    likelihood: Real
    node_likelihoods: Optional[Dict[str, LikelihoodVector]] = None

    def node_likelihood(self, node: str) -> LikelihoodVector:
        if self.node_likelihoods is None:
            raise LikelihoodError("Node results not kept to save memory")
        try:
            return self.node_likelihoods[node]
        except KeyError:
            raise LikelihoodError(f"No result for node: {node}") from None


@dataclass
class SiteLikelihood:
    """
    Likelihood of one site, mixed over rate categories.

    Attributes
    ----------
    rate_likelihoods : list of RateLikelihood
        One entry per rate category.
    weights : ndarray
        Mixture weights of the categories.
    likelihood : Real
        ``sum_k weights[k] * rate_likelihoods[k].likelihood``.
    """

    rate_likelihoods: list
    weights: np.ndarray
    likelihood: Real = field(init=False)

    def __post_init__(self):
        total = None
        for rl, w in zip(self.rate_likelihoods, self.weights):
            term = rl.likelihood.multiply(float(w))
            total = term if total is None else total.add(term)
        self.likelihood = total

    def rate_likelihood(self, category: int) -> RateLikelihood:
        try:
            return self.rate_likelihoods[category]
        except (IndexError, TypeError):
            raise LikelihoodError(f"No result for rate: {category}") from None

    def posterior(self, category: int) -> float:
        """
        Posterior probability that the site belongs to ``category``.

        Zero for every category when the site itself has likelihood zero.
        """
        rl = self.rate_likelihood(category)
        if self.likelihood == 0:
            return 0.0
        return rl.likelihood.multiply(float(self.weights[category])).divide(self.likelihood).to_float()

    def posteriors(self) -> np.ndarray:
        return np.array([self.posterior(k) for k in range(len(self.rate_likelihoods))])

    def most_probable_category(self) -> int:
        """Category with the highest posterior; ties go to the first."""
        best, best_p = 0, -1.0
        for k in range(len(self.rate_likelihoods)):
            p = self.posterior(k)
            if p > best_p:
                best, best_p = k, p
        return best

    @property
    def node_likelihoods(self) -> list:
        return [rl.node_likelihoods for rl in self.rate_likelihoods]

    def __str__(self) -> str:
        return str(self.likelihood)


@dataclass
class Likelihood:
    """
    Result of a whole-alignment likelihood calculation.

    Attributes
    ----------
    ln_likelihood : float
        Log-likelihood of the alignment, corrected for unobserved data when
        an unobserved alignment was given.
    site_likelihoods : dict
        :class:`SiteLikelihood` per unique observed site.
    missing_likelihoods : dict or None
        :class:`SiteLikelihood` per unobserved site.
    parameters : dict
        Parameter values the calculation used.

    Examples
    --------
    >>> result = Likelihood(-10.5, {}, None, {"k": 2.0})
    >>> result.ln_likelihood
    -10.5
    """

    ln_likelihood: float
    site_likelihoods: Dict[Any, SiteLikelihood]
    missing_likelihoods: Optional[Dict[Any, SiteLikelihood]]
    parameters: Dict[str, float]

    def site_likelihood(self, site) -> SiteLikelihood:
        try:
            return self.site_likelihoods[site]
        except KeyError:
            raise LikelihoodError(f"No result for site: {site}") from None

    def missing_likelihood(self, site) -> SiteLikelihood:
        if self.missing_likelihoods is None or site not in self.missing_likelihoods:
            raise LikelihoodError(f"No result for site: {site}")
        return self.missing_likelihoods[site]

    def rate_posteriors(self) -> dict:
        """Posterior probability of each rate category, per observed site."""
        return {site: sl.posteriors() for site, sl in self.site_likelihoods.items()}

    def __float__(self) -> float:
        return self.ln_likelihood

    def __str__(self) -> str:
        return str(self.ln_likelihood)