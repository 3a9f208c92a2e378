"""
Joint ancestral reconstruction by branch and bound (after Pupko et al. 2002).

Internal nodes are assigned one at a time in a depth-first search. The
likelihood summed over all states of the still unassigned nodes is an upper
bound on every completion of a partial assignment, so a branch of the
search is abandoned as soon as that bound cannot beat the best complete
assignment found so far. The search is seeded with the dynamic programming
reconstruction under the site's dominant rate category, which is usually
close to optimal and so makes the bound effective early.
"""

import math
from dataclasses import dataclass
from typing import Hashable, Mapping, Optional, Union

import numpy as np

from ..config import DEFAULT_CONFIG, EngineConfig
from ..core.vectors import vector_from_array
from ..data.alignment import Alignment, Site
from ..data.tree import Tree
from ..exceptions import AncestralError, UnexpectedError
from ..likelihood.calculator import SiteCalculator, initial_likelihoods
from ..likelihood.probabilities import Probabilities
from ..models.model import Model
from .constraints import SiteConstraints
from .joint_dp import (
    as_model_map,
    dp_site,
    probabilities_per_class,
    reconstructed_alignment,
    reconstructed_site,
)


@dataclass
class _Best:
    assign: Optional[SiteConstraints]
    score: float


class JointBB:
    """
    Most likely joint assignment of states to internal nodes for mixtures.

    Parameters
    ----------
    models : Model or mapping
        Model, or one per site class. Any number of rate categories.
    alignment : Alignment
        Sites to reconstruct.
    tree : Tree
        Tree relating the taxa.
    config : EngineConfig, optional
        Engine settings.

    Raises
    ------
    AlignmentError
        If a site class has no model.

    Notes
    -----
    Likelihoods are compared as natural logs computed from the configured
    scalar type, so deep trees do not underflow when ``real_type`` is
    SCALED. Only the first bound of Pupko et al. (2002) is used.
    """

    def __init__(
        self,
        models: Union[Model, Mapping[Hashable, Model]],
        alignment: Alignment,
        tree: Tree,
        config: Optional[EngineConfig] = None,
    ):
        self.models = as_model_map(models, alignment, tree)
        self.alignment = alignment
        self.tree = tree
        self.config = config if config is not None else DEFAULT_CONFIG

    def probabilities(self, values: Mapping[str, float]) -> dict:
        return probabilities_per_class(self.models, self.tree, values, self.config)

    def calculate(self, values: Mapping[str, float]) -> Alignment:
        """
        Reconstruct every site.

        Raises
        ------
        AncestralError
            If a site cannot be reconstructed; the message names the site.
        """
        probs = self.probabilities(values)
        done = {}
        for us in self.alignment.unique_sites():
            site = us.site
            try:
                done[site] = self.calculate_site(site, probs[site.site_class])
            except AncestralError as e:
                raise AncestralError(f"{e} at site {site}") from e
        return reconstructed_alignment(self.alignment, done)

    def calculate_site(self, site: Site, probabilities: Probabilities) -> Site:
        tree = probabilities.tree
        base = initial_likelihoods(tree, site, probabilities.model, self.config)

        unconstrained = SiteCalculator(probabilities, base, keep_node_likelihoods=False).calculate()
        dominant = 0
        best_rate = unconstrained.rate_likelihoods[0].likelihood
        for k, rl in enumerate(unconstrained.rate_likelihoods[1:], start=1):
            if rl.likelihood.greater_than(best_rate):
                dominant, best_rate = k, rl.likelihood
        seed = dp_site(site, probabilities, dominant)

        best = self._search(
            SiteConstraints(probabilities.states), _Best(None, -math.inf), probabilities, base, seed
        )
        if best.assign is None:
            # Every assignment has zero likelihood; nothing beats the seed
            return seed
        internal = {}
        for node in tree.internal:
            allowed = best.assign.get_constraint(node)
            if len(allowed) != 1:
                raise UnexpectedError(f"search ended with node {node} in states {sorted(allowed)}")
            (internal[node],) = allowed
        return reconstructed_site(site, tree, internal)

    def _score(self, probabilities: Probabilities, base: list, assign: SiteConstraints) -> float:
        tree = probabilities.tree
        states = probabilities.states
        vectors = list(base)
        for node in tree.internal:
            if assign.node_is_constrained(node):
                allowed = assign.get_constraint(node)
                values = np.array([1.0 if s in allowed else 0.0 for s in states])
                vectors[tree.index[node]] = vector_from_array(values, self.config.real_type)
        result = SiteCalculator(probabilities, vectors, keep_node_likelihoods=False).calculate()
        return result.likelihood.ln()

    def _search(
        self,
        assign: SiteConstraints,
        best: _Best,
        probabilities: Probabilities,
        base: list,
        seed: Site,
    ) -> _Best:
        tree = probabilities.tree
        node = next((n for n in tree.internal if not assign.node_is_constrained(n)), None)
        if node is None:
            score = self._score(probabilities, base, assign)
            if score > best.score:
                return _Best(assign, score)
            return best

        bound = self._score(probabilities, base, assign)
        if bound <= best.score:
            return best

        first = seed.raw_character(node)
        order = [first] + [s for s in probabilities.states if s != first]
        for state in order:
            extended = assign.copy()
            extended.add_constraint(node, state)
            best = self._search(extended, best, probabilities, base, seed)
        return best
