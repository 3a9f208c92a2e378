"""
Transition probabilities for one model, tree and parameter point.
"""

from concurrent.futures import Executor
from typing import Mapping, Optional, Union

import numpy as np

from ..config import DEFAULT_CONFIG, EngineConfig
from ..core.matrix import RateMatrix
from ..data.tree import Branch, Tree
from ..exceptions import MatrixError, RateError, TreeError
from ..models.model import Model
from ..models.rate_category import RateCategory


def check_parameter_names(model: Model, tree: Tree) -> None:
    """
    Check that no model parameter is named like a branch length.

    Branch lengths are read from the parameter values by child node name,
    so a parameter sharing that name would set both.

    Raises
    ------
    TreeError
        If a model parameter is also the name of a non-root node.
    """
    clash = sorted(model.parameters & {b.child for b in tree.branches})
    if clash:
        raise TreeError(
            f"Model parameters {', '.join(clash)} are also node names "
            "and would be read as branch lengths; rename the nodes"
        )


class Probabilities:
    """
    Everything the pruning algorithm needs from a model at one parameter point.

    Built once per evaluation: every rate category is evaluated to a numeric
    generator (each expression computed at most once), scaled by the model's
    rescaling factor and exponentiated for every branch of the tree.

    Parameters
    ----------
    model : Model
        Substitution model.
    tree : Tree
        Tree whose branch lengths are overridden by ``values``.
    values : mapping
        Parameter values, including branch lengths keyed by child node.
    config : EngineConfig, optional
        Engine settings.
    previous : Probabilities, optional
        Earlier evaluation of the same model. Its matrix engines, and with
        them their cached P matrices, are reused for categories whose scaled
        generator is unchanged.
    executor : Executor, optional
        Pool for row-parallel products on large state spaces.

    Raises
    ------
    TreeError
        If a branch has no length or a negative one, or a model parameter
        is named like a node.
    RateError
        If a category cannot be evaluated or exponentiated.

    Attributes
    ----------
    matrices : ndarray, shape (n_categories, n_branches, n_states, n_states)
        ``matrices[k, b, i, j]`` is the probability of going from state i at
        the parent to state j at the child of branch b in category k.
    """

    def __init__(
        self,
        model: Model,
        tree: Tree,
        values: Mapping[str, float],
        config: EngineConfig = DEFAULT_CONFIG,
        previous: Optional["Probabilities"] = None,
        executor: Optional[Executor] = None,
    ):
        check_parameter_names(model, tree)
        self.model = model
        self.tree = tree.with_lengths(values)
        self.config = config

        memo = {}
        self.weights = model.weights(values, memo)
        evaluated = [c.evaluate(values, config.distribution_method, memo) for c in model]
        self.frequencies = np.array([f for _, f in evaluated])
        self.scale = model.scale_for(
            [R for R, _ in evaluated], self.frequencies, self.weights
        )

        reuse = previous is not None and previous.model is model
        self.engines = []
        n = model.n_states
        self.matrices = np.empty((len(model), self.tree.n_branches, n, n))
        for k, (R, _) in enumerate(evaluated):
            scaled = R * self.scale
            engine = None
            if reuse and previous.engines[k].same_generator(scaled):
                engine = previous.engines[k]
                # the previous evaluation's pool has been shut down
                engine.executor = executor
            if engine is None:
                engine = RateMatrix(scaled, config, executor)
            self.engines.append(engine)
            for b, branch in enumerate(self.tree.branches):
                try:
                    self.matrices[k, b] = engine.exp(branch.length)
                except MatrixError as e:
                    raise RateError(
                        f"Cannot calculate P matrix for category {self._name(k)} "
                        f"on branch {branch}: {e}"
                    ) from e
        self.matrices.setflags(write=False)
        self._branch_index = {b.child: i for i, b in enumerate(self.tree.branches)}

    def _name(self, k: int) -> str:
        return self.model[k].name or str(k)

    def _category(self, category: Union[int, RateCategory]) -> int:
        if isinstance(category, RateCategory):
            for k, c in enumerate(self.model):
                if c is category:
                    return k
            raise RateError(f"Category {category.name} is not part of this model")
        return category

    def _branch(self, branch: Union[int, Branch, str]) -> int:
        if isinstance(branch, Branch):
            return self._branch_index[branch.child]
        if isinstance(branch, str):
            return self._branch_index[branch]
        return branch

    @property
    def categories(self) -> tuple:
        return self.model.categories

    @property
    def n_categories(self) -> int:
        return len(self.model)

    @property
    def states(self) -> tuple:
        return self.model.states

    @property
    def state_index(self) -> dict:
        return self.model.state_index

    @property
    def n_states(self) -> int:
        return self.model.n_states

    def p(self, category, branch) -> np.ndarray:
        """P matrix of ``branch`` (index, Branch or child name) in ``category``."""
        return self.matrices[self._category(category), self._branch(branch)]

    def p_entry(self, category, branch, start: str, end: str) -> float:
        """Probability of going from ``start`` at the parent to ``end`` at the child."""
        idx = self.state_index
        return float(self.p(category, branch)[idx[start], idx[end]])

    def freq(self, category) -> np.ndarray:
        return self.frequencies[self._category(category)]

    def freq_of(self, category, state: str) -> float:
        return float(self.freq(category)[self.state_index[state]])

    def weight(self, category) -> float:
        return float(self.weights[self._category(category)])

    def __repr__(self) -> str:
        return (
            f"Probabilities(categories={self.n_categories}, "
            f"branches={self.tree.n_branches}, states={self.n_states})"
        )
