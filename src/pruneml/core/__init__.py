"""
Numerical building blocks.

- **Scalars**: plain doubles and a mantissa/exponent type that cannot
  underflow
- **Vectors**: per-state partial likelihoods in either representation
- **Matrices**: transition probabilities from rate matrices by Taylor
  series or eigendecomposition
- **Parallel**: worker pool helpers

These are expert-level pieces; :mod:`pruneml.api` gives easier access.
"""

from pruneml.core.matrix import RateMatrix, matrix_exponential
from pruneml.core.parallel import make_pool, map_keyed
from pruneml.core.scalar import SmallDouble, StandardDouble
from pruneml.core.vectors import PlainVector, ScaledVector

__all__ = [
    "PlainVector",
    "RateMatrix",
    "ScaledVector",
    "SmallDouble",
    "StandardDouble",
    "make_pool",
    "map_keyed",
    "matrix_exponential",
]
