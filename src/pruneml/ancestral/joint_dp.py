"""
Joint ancestral reconstruction by dynamic programming (Pupko et al. 2000).

For every branch, visited leaves first, the method records for each state
of the parent the best achievable likelihood of the subtree below and the
child state that achieves it. A final maximization at the root followed by
a pass down the tree reads off the most likely joint assignment.

Only single-category models are supported; mixtures are reconstructed by
:class:`~pruneml.ancestral.joint_bb.JointBB`.
"""

from typing import Hashable, Mapping, Optional, Union

import numpy as np

from ..config import DEFAULT_CONFIG, EngineConfig
from ..data.alignment import Alignment, Site
from ..data.tree import Tree
from ..exceptions import AncestralError, MultipleRatesError
from ..likelihood.probabilities import Probabilities, check_parameter_names
from ..models.model import Model


def as_model_map(models: Union[Model, Mapping[Hashable, Model]], alignment: Alignment, tree: Tree) -> dict:
    """Model per site class, checked against the alignment and the tree's node names."""
    if isinstance(models, Model):
        models = {c: models for c in alignment.site_classes()}
    else:
        models = dict(models)
    alignment.check(models)
    for model in models.values():
        check_parameter_names(model, tree)
    return models


def probabilities_per_class(models: dict, tree: Tree, values: Mapping[str, float], config: EngineConfig) -> dict:
    """One Probabilities per site class, shared between classes with the same model."""
    built = {}
    per_class = {}
    for c, model in models.items():
        if id(model) not in built:
            built[id(model)] = Probabilities(model, tree, values, config)
        per_class[c] = built[id(model)]
    return per_class


def reconstructed_site(site: Site, tree: Tree, internal_states: Mapping[str, str]) -> Site:
    """Original leaf characters followed by the internal node states in tree order."""
    characters = {leaf: site.raw_character(leaf) for leaf in tree.leaves}
    for node in tree.internal:
        characters[node] = internal_states[node]
    return Site(characters, site.site_class, site.ambiguous, site.site_id)


def reconstructed_alignment(alignment: Alignment, done: Mapping[Site, Site]) -> Alignment:
    """
    Reconstructed sites in input order.

    ``done`` holds one result per distinct site; repeated columns share it
    but each keeps its own site id.
    """
    return Alignment(done[s].with_site_id(s.site_id) for s in alignment)


def _log(values: np.ndarray) -> np.ndarray:
    with np.errstate(divide="ignore"):
        return np.log(values)


class JointDP:
    """
    Most likely joint assignment of states to internal nodes.

    Parameters
    ----------
    models : Model or mapping
        A single-category model, or one per site class.
    alignment : Alignment
        Sites to reconstruct. Leaf characters must be unambiguous.
    tree : Tree
        Tree relating the taxa.
    config : EngineConfig, optional
        Engine settings.

    Raises
    ------
    MultipleRatesError
        If any model has more than one rate category.
    AlignmentError
        If a site class has no model.
    TreeError
        If a model parameter shares its name with a node.

    Notes
    -----
    Scores are accumulated as log probabilities. Ties between states are
    resolved in favour of the state that comes first in the model.
    """

    def __init__(
        self,
        models: Union[Model, Mapping[Hashable, Model]],
        alignment: Alignment,
        tree: Tree,
        config: Optional[EngineConfig] = None,
    ):
        self.models = as_model_map(models, alignment, tree)
        if not all(m.has_single_rate for m in self.models.values()):
            raise MultipleRatesError()
        self.alignment = alignment
        self.tree = tree
        self.config = config if config is not None else DEFAULT_CONFIG

    def probabilities(self, values: Mapping[str, float]) -> dict:
        return probabilities_per_class(self.models, self.tree, values, self.config)

    def calculate(self, values: Mapping[str, float]) -> Alignment:
        """
        Reconstruct every site.

        Returns
        -------
        Alignment
            One site per input site, in the input order, holding the leaf
            characters followed by the reconstructed internal states.
        """
        probs = self.probabilities(values)
        done = {}
        for us in self.alignment.unique_sites():
            site = us.site
            done[site] = self.calculate_site(site, probs[site.site_class])
        return reconstructed_alignment(self.alignment, done)

    def calculate_site(self, site: Site, probabilities: Probabilities, category: int = 0) -> Site:
        """Reconstruct one site; see :func:`dp_site`."""
        return dp_site(site, probabilities, category)


def dp_site(site: Site, probabilities: Probabilities, category: int = 0) -> Site:
    """
    Reconstruct one site under one rate category of ``probabilities``.

    Parameters
    ----------
    site : Site
        Observed leaf characters.
    probabilities : Probabilities
        Evaluated model; may hold several categories.
    category : int, default=0
        Category whose transition matrices and root frequencies are used.

    Raises
    ------
    AncestralError
        If a leaf character is ambiguous or not a model state.
    """
    tree = probabilities.tree
    states = probabilities.states
    matrices = probabilities.matrices[category]
    n = len(states)

    # score[c][i]: best log likelihood below node c given parent state i
    # choice[c][i]: the state of c achieving it
    score = {}
    choice = {}
    for b, branch in enumerate(tree.branches):
        child = tree.branch_child[b]
        log_p = _log(matrices[b])
        if tree.is_external(branch):
            s = _leaf_state(site, branch.child, probabilities)
            score[child] = log_p[:, s]
            choice[child] = np.full(n, s)
        else:
            total = log_p + _children_score(tree, child, score)[np.newaxis, :]
            best = np.argmax(total, axis=1)
            score[child] = total[np.arange(n), best]
            choice[child] = best

    root = tree.index[tree.root]
    at_root = _log(probabilities.frequencies[category]) + _children_score(tree, root, score)
    assigned = {root: int(np.argmax(at_root))}
    for b in reversed(range(tree.n_branches)):
        parent, child = tree.branch_parent[b], tree.branch_child[b]
        assigned[child] = int(choice[child][assigned[parent]])

    internal = {tree.names[i]: states[s] for i, s in assigned.items() if i >= tree.size}
    return reconstructed_site(site, tree, internal)


def _children_score(tree: Tree, node: int, score: dict) -> np.ndarray:
    total = 0.0
    for c in tree.children[node]:
        total = total + score[c]
    return total


def _leaf_state(site: Site, leaf: str, probabilities: Probabilities) -> int:
    possible = site.character(leaf)
    if len(possible) != 1:
        raise AncestralError(
            f"Can't deal with ambiguous characters ({site.raw_character(leaf)} at {leaf})"
        )
    (state,) = possible
    try:
        return probabilities.state_index[state]
    except KeyError:
        raise AncestralError(f"Character {state} at {leaf} is not a model state") from None
