"""
Exception hierarchy for pruneml.

Every recoverable failure raised by the library derives from
:class:`PrunemlError` so callers (for example an outer optimizer) can catch
one type and decide whether to retry with different parameters.
:class:`UnexpectedError` is outside that hierarchy: it marks an
internal impossibility and should never be caught.
"""


class PrunemlError(Exception):
    """Base class for all catchable pruneml errors."""


class TreeError(PrunemlError):
    """Malformed tree, unknown node, or invalid branch length."""


class AlignmentError(PrunemlError):
    """Inconsistent sites, unknown taxa, or unmapped site classes."""


class RateError(PrunemlError):
    """Malformed rate category or failure evaluating it."""


class ModelError(PrunemlError):
    """Rate categories that cannot be combined into one model."""


class MatrixError(PrunemlError):
    """Numeric failure computing a matrix exponential."""


class DistributionError(PrunemlError):
    """Stationary or quasi-stationary distribution could not be found."""


class LikelihoodError(PrunemlError):
    """Invalid initial likelihoods or lookup of an absent result."""


class CalculatorError(PrunemlError):
    """Whole-alignment log-likelihood is positive or NaN."""


class AncestralError(PrunemlError):
    """Ancestral reconstruction could not be performed."""


class MultipleRatesError(AncestralError):
    """Dynamic programming reconstruction requested for a mixture model."""

    def __init__(self):
        super().__init__(
            "Joint ancestral reconstruction using the dynamic programming "
            "method only works with a single rate category"
        )


class UnexpectedError(RuntimeError):
    """A condition that should be unreachable was reached."""

    def __init__(self, detail: str = ""):
        message = "This condition wasn't expected to be reached."
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
