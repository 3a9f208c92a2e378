"""
Likelihood calculation by Felsenstein pruning.
"""

from pruneml.likelihood.calculator import Calculator, SiteCalculator, initial_likelihoods
from pruneml.likelihood.probabilities import Probabilities
from pruneml.likelihood.results import Likelihood, RateLikelihood, SiteLikelihood
from pruneml.likelihood.root import FitzJohnRoot, StandardRoot

__all__ = [
    "Calculator",
    "FitzJohnRoot",
    "Likelihood",
    "Probabilities",
    "RateLikelihood",
    "SiteCalculator",
    "SiteLikelihood",
    "StandardRoot",
    "initial_likelihoods",
]
