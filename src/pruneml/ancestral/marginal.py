"""
Marginal ancestral reconstruction.

For each internal node the posterior distribution of its state given the
leaf data is found by rooting the likelihood computation at that node:
branches off the path to the root are pruned as usual, the true root vector
is multiplied by the root frequencies, and the branches on the path are then
walked from the root down to the node, each carrying its parent's vector
backwards through the transition matrix:

    child[e] *= sum_s parent[s] * P[s, e]

The node's vector then holds ``P(data, node = e)`` for every state e.
Categories are mixed by weight and the result normalized.
"""

from dataclasses import dataclass
from typing import Hashable, Mapping, Optional, Union

import numpy as np
from scipy.special import logsumexp

from ..config import DEFAULT_CONFIG, EngineConfig
from ..core.parallel import make_pool, map_keyed
from ..data.alignment import Alignment, Site
from ..data.tree import Tree
from ..exceptions import AncestralError
from ..likelihood.calculator import initial_likelihoods
from ..likelihood.probabilities import Probabilities
from ..models.model import Model
from .constraints import NoConstraints
from .joint_dp import as_model_map, probabilities_per_class, reconstructed_alignment, reconstructed_site


@dataclass
class MarginalSiteResult:
    """
    Posterior state distributions at the internal nodes for one site.

    Attributes
    ----------
    site : Site
        Leaf characters followed by the most probable state of each internal
        node.
    states : tuple of str
        Model states, the order of every distribution.
    distributions : dict
        Internal node name to posterior probabilities over ``states``.
    """

    site: Site
    states: tuple
    distributions: dict

    def distribution(self, node: str) -> dict:
        """Posterior probability of every state at ``node``."""
        try:
            values = self.distributions[node]
        except KeyError:
            raise AncestralError(f"No marginal distribution for node {node}") from None
        return dict(zip(self.states, values.tolist()))

    def probability(self, node: str, state: str) -> float:
        found = self.distribution(node)
        try:
            return found[state]
        except KeyError:
            raise AncestralError(f"State {state} is not a model state") from None


@dataclass
class MarginalResult:
    """
    Marginal reconstruction of a whole alignment.

    Attributes
    ----------
    alignment : Alignment
        One reconstructed site per input site, in the input order.
    site_results : dict
        Input site to its :class:`MarginalSiteResult`.
    """

    alignment: Alignment
    site_results: dict

    def site_result(self, site: Site) -> MarginalSiteResult:
        try:
            return self.site_results[site]
        except KeyError:
            raise AncestralError(f"No marginal result for site {site}") from None


def node_distribution(probabilities: Probabilities, initial: list, node: str) -> np.ndarray:
    """
    Posterior distribution over states at ``node``.

    Parameters
    ----------
    probabilities : Probabilities
        Evaluated model and tree.
    initial : list
        Starting vectors from :func:`~pruneml.likelihood.initial_likelihoods`,
        possibly carrying constraints.
    node : str
        Internal node, or the root.

    Raises
    ------
    AncestralError
        If every state of ``node`` has zero probability.
    """
    tree = probabilities.tree
    path = tree.path_to_root(node)
    on_path = set(path)
    target = tree.index[node]
    root = tree.index[tree.root]

    per_category = []
    for k in range(probabilities.n_categories):
        matrices = probabilities.matrices[k]
        vectors = list(initial)
        for b, branch in enumerate(tree.branches):
            if branch in on_path:
                continue
            p, c = tree.branch_parent[b], tree.branch_child[b]
            vectors[p] = vectors[p].multiply(vectors[c].transition(matrices[b]))
        vectors[root] = vectors[root].scale(probabilities.frequencies[k])
        for branch in reversed(path):
            b = tree.branches.index(branch)
            p, c = tree.branch_parent[b], tree.branch_child[b]
            vectors[c] = vectors[c].multiply(vectors[p].reverse_transition(matrices[b]))
        with np.errstate(divide="ignore"):
            log_weight = np.log(probabilities.weights[k])
        per_category.append(vectors[target].log_values() + log_weight)

    with np.errstate(divide="ignore"):
        joint = logsumexp(np.vstack(per_category), axis=0)
        total = logsumexp(joint)
    if not np.isfinite(total):
        raise AncestralError(f"All states at node {node} have zero probability")
    return np.exp(joint - total)


class Marginal:
    """
    Most probable state of every internal node, one node at a time.

    Parameters
    ----------
    models : Model or mapping
        Model, or one per site class. Any number of rate categories.
    alignment : Alignment
        Sites to reconstruct. Ambiguous leaves are allowed.
    tree : Tree
        Tree relating the taxa.
    constrainer : NoConstraints or FixedConstraints, optional
        Supplies allowed internal states per site; unconstrained by default.
    config : EngineConfig, optional
        Engine settings.

    Notes
    -----
    Categories are combined in log space, so the posteriors are accurate even
    when ``real_type`` is SCALED and the site likelihood underflows a double.
    The chosen state is the most probable one, the first in state order on a
    tie.
    """

    def __init__(
        self,
        models: Union[Model, Mapping[Hashable, Model]],
        alignment: Alignment,
        tree: Tree,
        constrainer=None,
        config: Optional[EngineConfig] = None,
    ):
        self.models = as_model_map(models, alignment, tree)
        self.alignment = alignment
        self.tree = tree
        self.constrainer = constrainer
        self.config = config if config is not None else DEFAULT_CONFIG

    def _constraints(self, site: Site, model: Model):
        constrainer = self.constrainer
        if constrainer is None:
            constrainer = NoConstraints(model.states)
        return constrainer.get_constraints(self.tree, site)

    def calculate_site(self, site: Site, probabilities: Probabilities) -> MarginalSiteResult:
        tree = probabilities.tree
        model = probabilities.model
        initial = initial_likelihoods(
            tree, site, model, self.config, constraints=self._constraints(site, model)
        )
        distributions = {}
        chosen = {}
        for node in tree.internal:
            dist = node_distribution(probabilities, initial, node)
            distributions[node] = dist
            chosen[node] = probabilities.states[int(np.argmax(dist))]
        return MarginalSiteResult(
            reconstructed_site(site, tree, chosen), probabilities.states, distributions
        )

    def calculate(self, values: Mapping[str, float]) -> MarginalResult:
        """
        Reconstruct every site at ``values``.

        Raises
        ------
        AncestralError
            If a node has zero probability for every state; the message names
            the site.
        """
        probs = probabilities_per_class(self.models, self.tree, values, self.config)

        def task(site: Site) -> MarginalSiteResult:
            try:
                return self.calculate_site(site, probs[site.site_class])
            except AncestralError as e:
                raise AncestralError(f"{e} at site {site}") from e

        with make_pool(self.config.n_threads) as pool:
            unique = [us.site for us in self.alignment.unique_sites()]
            results = map_keyed(task, unique, pool)
        done = {s: r.site for s, r in results.items()}
        return MarginalResult(reconstructed_alignment(self.alignment, done), results)
