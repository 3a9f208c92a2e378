"""
High-level API for pruneml.

This module provides a simplified interface for computing likelihoods and
reconstructing ancestral states of nucleotide data, accepting plain
sequences, edge lists and model names in place of the underlying objects.
"""

from typing import Any, Dict, Iterable, Mapping, Optional, Union

from .ancestral import FixedConstraints, Marginal, MarginalResult, joint_reconstructor
from .config import EngineConfig
from .data.alignment import Alignment, Ambiguous
from .data.tree import Tree
from .likelihood import Calculator, Likelihood
from .models.model import Model
from .models.nucleotide import (
    default_parameters,
    felsenstein81,
    gtr,
    hky,
    jukes_cantor,
    kimura,
)

NUCLEOTIDE_MODELS = {
    "JC": jukes_cantor,
    "K80": kimura,
    "F81": felsenstein81,
    "HKY": hky,
    "GTR": gtr,
}

AlignmentLike = Union[Alignment, Mapping[str, str]]
TreeLike = Union[Tree, Iterable[tuple]]
ModelLike = Union[Model, str]


def _model(model: ModelLike, gamma_categories: Optional[int]) -> Model:
    if isinstance(model, Model):
        return model
    try:
        factory = NUCLEOTIDE_MODELS[model.upper()]
    except KeyError:
        raise ValueError(
            f"Unknown model: {model}. Supported: {', '.join(NUCLEOTIDE_MODELS)}"
        ) from None
    return factory(gamma_categories)


def _alignment(alignment: AlignmentLike) -> Alignment:
    if isinstance(alignment, Alignment):
        return alignment
    return Alignment.from_sequences(alignment, ambiguous=Ambiguous.nucleotide())


def _tree(tree: TreeLike) -> Tree:
    if isinstance(tree, Tree):
        return tree
    return Tree.from_edges(tree)


def _values(model: Model, tree: Tree, values: Optional[Mapping[str, float]]) -> Dict[str, Any]:
    # Parameters default to one and branch lengths to the stored ones
    merged = default_parameters(model)
    merged.update(tree.branch_lengths())
    if values:
        merged.update(values)
    return merged


def calculate_likelihood(
    model: ModelLike,
    alignment: AlignmentLike,
    tree: TreeLike,
    values: Optional[Mapping[str, float]] = None,
    gamma_categories: Optional[int] = None,
    unobserved: Optional[AlignmentLike] = None,
    config: Optional[EngineConfig] = None,
) -> Likelihood:
    """
    Log-likelihood of an alignment under a model and tree.

    Parameters
    ----------
    model : str or Model
        Model name ('JC', 'K80', 'F81', 'HKY', 'GTR') or a Model.
    alignment : Alignment or dict
        Alignment, or equal-length sequences keyed by taxon (IUPAC codes
        allowed).
    tree : Tree or iterable of tuples
        Tree, or ``(parent, child, length)`` edges.
    values : dict, optional
        Parameter values. Missing model parameters default to 1.0 and
        missing branch lengths to those stored in the tree.
    gamma_categories : int, optional
        Number of discrete gamma categories when ``model`` is a name.
    unobserved : Alignment or dict, optional
        Site patterns that cannot be observed.
    config : EngineConfig, optional
        Engine settings.

    Returns
    -------
    Likelihood
        Total log-likelihood with per-site details.

    Examples
    --------
    >>> seqs = {"a": "ACGT", "b": "ACGA", "c": "ACTT"}
    >>> edges = [("r", "a", 0.1), ("r", "b", 0.1), ("r", "c", 0.2)]
    >>> result = calculate_likelihood("JC", seqs, edges)
    >>> result.ln_likelihood < 0
    True
    """
    model = _model(model, gamma_categories)
    tree = _tree(tree)
    calculator = Calculator(
        model,
        _alignment(alignment),
        tree,
        unobserved=None if unobserved is None else _alignment(unobserved),
        config=config,
    )
    return calculator.calculate(_values(model, tree, values))


def reconstruct_joint(
    model: ModelLike,
    alignment: AlignmentLike,
    tree: TreeLike,
    values: Optional[Mapping[str, float]] = None,
    gamma_categories: Optional[int] = None,
    config: Optional[EngineConfig] = None,
) -> Alignment:
    """
    Most likely joint assignment of states to every internal node.

    Dynamic programming is used for single-category models and branch and
    bound otherwise. Arguments are as for :func:`calculate_likelihood`.

    Returns
    -------
    Alignment
        Input sites extended with one character per internal node.
    """
    model = _model(model, gamma_categories)
    tree = _tree(tree)
    reconstructor = joint_reconstructor(model, _alignment(alignment), tree, config)
    return reconstructor.calculate(_values(model, tree, values))


def reconstruct_marginal(
    model: ModelLike,
    alignment: AlignmentLike,
    tree: TreeLike,
    values: Optional[Mapping[str, float]] = None,
    gamma_categories: Optional[int] = None,
    constraints: Optional[Mapping[str, Any]] = None,
    config: Optional[EngineConfig] = None,
) -> MarginalResult:
    """
    Posterior state distribution of every internal node.

    Parameters
    ----------
    constraints : dict, optional
        Internal node to the state, or set of states, it may take at every
        site.

    Other arguments are as for :func:`calculate_likelihood`.
    """
    model = _model(model, gamma_categories)
    tree = _tree(tree)
    constrainer = None
    if constraints:
        constrainer = FixedConstraints(model.states, constraints)
    marginal = Marginal(model, _alignment(alignment), tree, constrainer, config)
    return marginal.calculate(_values(model, tree, values))
