"""
Felsenstein pruning over an alignment.

For every distinct site the partial likelihood vectors of the leaves are
initialized from the observed characters and propagated towards the root
along the tree's postorder branch list:

    parent[e] *= sum_s P[e, s] * child[s]

The root vector is then combined into the site likelihood by a root rule
(:class:`~pruneml.likelihood.root.StandardRoot` by default). Rate categories
are mixed by their weights, and the alignment log-likelihood is the sum of
``count * ln(L)`` over distinct sites.

Sites are independent, so one task per distinct site is dispatched to a
thread pool. Results are stored by site, never by completion order.
"""

import math
from typing import Hashable, Mapping, Optional, Union

import numpy as np

from ..config import DEFAULT_CONFIG, EngineConfig
from ..core.parallel import make_pool, map_keyed
from ..core.vectors import vector_from_array, vector_ones
from ..data.alignment import Alignment, Site
from ..data.tree import Tree
from ..exceptions import CalculatorError, LikelihoodError
from ..models.model import Model
from .probabilities import Probabilities, check_parameter_names
from .results import Likelihood, RateLikelihood, SiteLikelihood
from .root import StandardRoot


def initial_likelihoods(tree: Tree, site: Site, model: Model, config: EngineConfig = DEFAULT_CONFIG, constraints=None) -> list:
    """
    Starting partial likelihood vector for every node of ``tree``.

    Parameters
    ----------
    tree : Tree
        Tree whose leaves are taxa of ``site``.
    site : Site
        Observed characters.
    model : Model
        Supplies the state order.
    config : EngineConfig, optional
        Selects the vector representation.
    constraints : SiteConstraints, optional
        Allowed states per internal node; unconstrained nodes allow every
        state.

    Returns
    -------
    list
        One vector per node, indexed like ``tree.names``.

    Raises
    ------
    LikelihoodError
        If a leaf's character matches no state of the model.
    AlignmentError
        If a leaf is not a taxon of the site.
    """
    states = model.states
    n = len(states)
    vectors = []
    for name in tree.names[: tree.size]:
        possible = site.character(name)
        values = np.array([1.0 if s in possible else 0.0 for s in states])
        if not values.any():
            raise LikelihoodError(
                "No non-zero probabilities at leaves - alignment state not in model?"
            )
        vectors.append(vector_from_array(values, config.real_type))
    for name in tree.internal:
        if constraints is not None and constraints.node_is_constrained(name):
            allowed = constraints.get_constraint(name)
            values = np.array([1.0 if s in allowed else 0.0 for s in states])
            vectors.append(vector_from_array(values, config.real_type))
        else:
            vectors.append(vector_ones(n, config.real_type))
    return vectors


class SiteCalculator:
    """
    Pruning for a single site.

    Parameters
    ----------
    probabilities : Probabilities
        Transition matrices, frequencies and weights for this evaluation.
    initial : list
        Starting vectors from :func:`initial_likelihoods`.
    root : StandardRoot or FitzJohnRoot, optional
        Rule combining the root vector into a likelihood.
    keep_node_likelihoods : bool, default=True
        Whether the per-node vectors are kept in the result.
    """

    def __init__(self, probabilities: Probabilities, initial: list, root=None, keep_node_likelihoods: bool = True):
        self.probabilities = probabilities
        self.initial = initial
        self.root = root if root is not None else StandardRoot()
        self.keep_node_likelihoods = keep_node_likelihoods

    def rate_vectors(self, k: int) -> list:
        """Partial likelihood vectors of every node under category ``k``."""
        tree = self.probabilities.tree
        matrices = self.probabilities.matrices[k]
        vectors = list(self.initial)
        for b in range(tree.n_branches):
            p, c = tree.branch_parent[b], tree.branch_child[b]
            vectors[p] = vectors[p].multiply(vectors[c].transition(matrices[b]))
        return vectors

    def calculate(self) -> SiteLikelihood:
        probs = self.probabilities
        tree = probs.tree
        root_index = tree.index[tree.root]
        rates = []
        for k in range(probs.n_categories):
            vectors = self.rate_vectors(k)
            likelihood = self.root.calculate(vectors[root_index], probs.frequencies[k])
            nodes = None
            if self.keep_node_likelihoods:
                nodes = dict(zip(tree.names, vectors))
            rates.append(RateLikelihood(likelihood, nodes))
        return SiteLikelihood(rates, probs.weights)


def _per_class(value, kind, classes: set) -> dict:
    if isinstance(value, kind):
        return {c: value for c in classes}
    return dict(value)


class Calculator:
    """
    Likelihood of an alignment under a model and tree.

    Parameters
    ----------
    models : Model or mapping
        One model for every site, or a model per site class.
    alignment : Alignment
        Observed sites.
    trees : Tree or mapping
        One tree for every site, or a tree per site class.
    unobserved : Alignment, optional
        Site patterns that cannot be observed. The log-likelihood is
        corrected for them (Felsenstein 1992).
    root : StandardRoot or FitzJohnRoot, optional
        Root rule; StandardRoot by default.
    config : EngineConfig, optional
        Engine settings.

    Raises
    ------
    AlignmentError
        If a site class has no model or no tree.
    TreeError
        If a model parameter shares its name with a node of the tree.
    LikelihoodError
        If an observed character matches no model state.

    Examples
    --------
    >>> from pruneml.models.nucleotide import jukes_cantor
    >>> tree = Tree.from_edges([("r", "a", 0.1), ("r", "b", 0.2)])
    >>> aln = Alignment.from_sequences({"a": "AC", "b": "AC"})
    >>> calc = Calculator(jukes_cantor(), aln, tree)
    >>> calc.log_likelihood({"a": 0.1, "b": 0.2}) < 0
    True
    """

    def __init__(
        self,
        models: Union[Model, Mapping[Hashable, Model]],
        alignment: Alignment,
        trees: Union[Tree, Mapping[Hashable, Tree]],
        unobserved: Optional[Alignment] = None,
        root=None,
        config: Optional[EngineConfig] = None,
    ):
        self.config = config if config is not None else DEFAULT_CONFIG
        self.alignment = alignment
        self.unobserved = unobserved
        self.root = root if root is not None else StandardRoot()

        classes = alignment.site_classes()
        if unobserved is not None:
            classes |= unobserved.site_classes()
        self.models = _per_class(models, Model, classes)
        self.trees = _per_class(trees, Tree, classes)
        alignment.check(self.models)
        alignment.check(self.trees)
        if unobserved is not None:
            unobserved.check(self.models)
            unobserved.check(self.trees)
        for c in classes:
            check_parameter_names(self.models[c], self.trees[c])

        self._initial = {}
        sources = [alignment] if unobserved is None else [alignment, unobserved]
        for source in sources:
            for us in source.unique_sites():
                site = us.site
                if site not in self._initial:
                    self._initial[site] = initial_likelihoods(
                        self.trees[site.site_class],
                        site,
                        self.models[site.site_class],
                        self.config,
                    )
        self._previous = {}

    def probabilities(self, values: Mapping[str, float], executor=None) -> dict:
        """One :class:`Probabilities` per site class (shared where possible)."""
        built = {}
        per_class = {}
        for c, model in self.models.items():
            tree = self.trees[c]
            key = (id(model), id(tree))
            if key not in built:
                built[key] = Probabilities(
                    model, tree, values, self.config,
                    previous=self._previous.get(key), executor=executor,
                )
            per_class[c] = built[key]
        self._previous = built
        return per_class

    def calculate_sites(self, values: Mapping[str, float]) -> dict:
        """:class:`SiteLikelihood` for every distinct observed and unobserved site."""
        with make_pool(self.config.n_threads) as pool:
            probs = self.probabilities(values, pool)

            def task(site: Site) -> SiteLikelihood:
                return SiteCalculator(
                    probs[site.site_class],
                    self._initial[site],
                    self.root,
                    self.config.keep_node_likelihoods,
                ).calculate()

            return map_keyed(task, self._initial, pool)

    def calculate(self, values: Mapping[str, float]) -> Likelihood:
        """
        Log-likelihood of the alignment at ``values``.

        Raises
        ------
        CalculatorError
            If the log-likelihood is positive or NaN.
        """
        sites = self.calculate_sites(values)

        ln_l = 0.0
        observed = {}
        for us in self.alignment.unique_sites():
            sl = sites[us.site]
            observed[us.site] = sl
            ln_l += us.count * sl.likelihood.ln()

        missing = None
        if self.unobserved is not None:
            missing = {}
            totals = {}
            for us in self.unobserved.unique_sites():
                sl = sites[us.site]
                missing[us.site] = sl
                c = us.site.site_class
                totals[c] = sl.likelihood if c not in totals else totals[c].add(sl.likelihood)
            for c, total in totals.items():
                ln_l -= self.alignment.class_size(c) * total.ln1m()

        if ln_l > 0:
            raise CalculatorError(f"Positive Log Likelihood ({ln_l})")
        if math.isnan(ln_l):
            raise CalculatorError("NaN Log Likelihood")
        return Likelihood(ln_l, observed, missing, dict(values))

    def log_likelihood(self, values: Mapping[str, float]) -> float:
        return self.calculate(values).ln_likelihood
