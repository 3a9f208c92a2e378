"""
pruneml: phylogenetic likelihood and ancestral reconstruction.

Felsenstein pruning over weighted mixtures of continuous-time Markov
models, with joint and marginal ancestral state reconstruction and an
underflow-free scalar type for very deep or wide trees.

Quick Start
-----------
Likelihood of a few nucleotide sequences:

>>> from pruneml import calculate_likelihood
>>> seqs = {"a": "ACGT", "b": "ACGA", "c": "ACTT"}
>>> edges = [("r", "a", 0.1), ("r", "b", 0.1), ("r", "c", 0.2)]
>>> result = calculate_likelihood("HKY", seqs, edges, {"k": 2.0})
>>> print(f"lnL = {result.ln_likelihood:.4f}")

Ancestral states:

>>> from pruneml import Alignment, reconstruct_joint, reconstruct_marginal
>>> aln = Alignment.from_sequences(seqs)
>>> joint = reconstruct_joint("JC", aln, edges)
>>> print(joint.site(0))
>>> marginal = reconstruct_marginal("JC", aln, edges, gamma_categories=4)
>>> marginal.site_result(aln.site(0)).distribution("r")

Examples
--------
>>> # Expert use: explicit objects and engine settings
>>> from pruneml import Calculator, EngineConfig, Tree, Alignment, hky
>>> config = EngineConfig(real_type="scaled", exp_method="eigen", n_threads=2)
>>> calc = Calculator(hky(), Alignment.from_sequences(seqs), Tree.from_edges(edges), config=config)
>>> calc.log_likelihood({"k": 2.0, "pT": 1, "pC": 1, "pA": 1, "pG": 1})
"""

__version__ = "0.1.0"

# High-level API (simple interface)
from .api import calculate_likelihood, reconstruct_joint, reconstruct_marginal

# Settings and errors
from .config import DEFAULT_CONFIG, DistributionMethod, EngineConfig, ExpMethod, RealType
from .exceptions import (
    AlignmentError,
    AncestralError,
    CalculatorError,
    DistributionError,
    LikelihoodError,
    MatrixError,
    ModelError,
    MultipleRatesError,
    PrunemlError,
    RateError,
    TreeError,
    UnexpectedError,
)

# Data and models
from .data import Alignment, Ambiguous, Branch, Site, Tree
from .models import (
    Model,
    RateCategory,
    bd,
    bd_no_zero,
    bdi,
    felsenstein81,
    gtr,
    hky,
    jukes_cantor,
    kimura,
    parsimony,
    ry,
)

# Engines (expert use)
from .likelihood import Calculator, Likelihood, SiteLikelihood
from .ancestral import (
    FixedConstraints,
    JointBB,
    JointDP,
    Marginal,
    MarginalResult,
    joint_reconstructor,
)

__all__ = [
    # Simple API - Start here!
    "calculate_likelihood",
    "reconstruct_joint",
    "reconstruct_marginal",

    # Settings
    "DEFAULT_CONFIG",
    "DistributionMethod",
    "EngineConfig",
    "ExpMethod",
    "RealType",

    # Errors
    "AlignmentError",
    "AncestralError",
    "CalculatorError",
    "DistributionError",
    "LikelihoodError",
    "MatrixError",
    "ModelError",
    "MultipleRatesError",
    "PrunemlError",
    "RateError",
    "TreeError",
    "UnexpectedError",

    # Data
    "Alignment",
    "Ambiguous",
    "Branch",
    "Site",
    "Tree",

    # Models
    "Model",
    "RateCategory",
    "bd",
    "bd_no_zero",
    "bdi",
    "felsenstein81",
    "gtr",
    "hky",
    "jukes_cantor",
    "kimura",
    "parsimony",
    "ry",

    # Engines (expert)
    "Calculator",
    "Likelihood",
    "SiteLikelihood",
    "FixedConstraints",
    "JointBB",
    "JointDP",
    "Marginal",
    "MarginalResult",
    "joint_reconstructor",

    # Version
    "__version__",
]
