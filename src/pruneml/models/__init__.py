"""
Substitution models for likelihood calculation and reconstruction.

- **Expressions**: parameter-dependent matrix, frequency and weight entries
- **Rate categories**: one parameterized rate matrix with its frequencies
- **Models**: weighted mixtures of rate categories, including discrete gamma
- **Nucleotide factories**: JC, K80, F81, HKY, GTR and the two-state RY model
- **Duplication factories**: gene family size models (parsimony, BDI and birth-death)

Each model is evaluated at a parameter point to give numeric rate matrices,
root frequencies and mixture weights.
"""

from pruneml.models.distributions import quasi_stationary, stationary
from pruneml.models.expressions import (
    Constant,
    Expression,
    Function,
    GammaRate,
    Product,
    Variable,
    gamma_rates,
)
from pruneml.models.duplication import bd, bd_no_zero, bdi, parsimony
from pruneml.models.model import Model
from pruneml.models.nucleotide import (
    default_parameters,
    felsenstein81,
    gtr,
    hky,
    jukes_cantor,
    kimura,
    ry,
)
from pruneml.models.rate_category import FrequencyType, RateCategory

__all__ = [
    "Constant",
    "Expression",
    "Function",
    "FrequencyType",
    "GammaRate",
    "Model",
    "Product",
    "RateCategory",
    "Variable",
    "bd",
    "bd_no_zero",
    "bdi",
    "default_parameters",
    "felsenstein81",
    "gamma_rates",
    "gtr",
    "hky",
    "jukes_cantor",
    "kimura",
    "parsimony",
    "quasi_stationary",
    "ry",
    "stationary",
]
