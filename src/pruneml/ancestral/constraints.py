"""
Constraints on the states internal nodes may take.

A :class:`SiteConstraints` lists, for some nodes, the states they are
allowed to have at one site. Constrainers produce the constraints for each
site of an alignment.
"""

from typing import Iterable, Mapping, Union

from ..data.alignment import Site
from ..data.tree import Tree


class SiteConstraints:
    """
    Allowed states per node for one site.

    Parameters
    ----------
    states : iterable of str
        All model states; the default for unconstrained nodes.

    Examples
    --------
    >>> sc = SiteConstraints(["A", "C", "G", "T"])
    >>> sc.add_constraint("n1", "A")
    >>> sc.get_constraint("n1"), sc.node_is_constrained("n2")
    ({'A'}, False)
    """

    def __init__(self, states: Iterable[str]):
        self.states = tuple(states)
        self._constraints: dict[str, set] = {}

    def add_constraint(self, node: str, allowed: Union[str, Iterable[str]]) -> None:
        if isinstance(allowed, str):
            allowed = {allowed}
        self._constraints[node] = set(allowed)

    def get_constraint(self, node: str) -> set:
        """Allowed states for ``node``; every state when unconstrained."""
        found = self._constraints.get(node)
        if found is None:
            return set(self.states)
        return found

    def node_is_constrained(self, node: str) -> bool:
        return node in self._constraints

    def meets_constraints(self, site: Site) -> bool:
        """True if every constrained node's possible states in ``site`` are allowed."""
        return all(
            allowed.issuperset(site.character(node))
            for node, allowed in self._constraints.items()
        )

    def copy(self) -> "SiteConstraints":
        clone = SiteConstraints(self.states)
        for node, allowed in self._constraints.items():
            clone.add_constraint(node, set(allowed))
        return clone

    def __repr__(self) -> str:
        return f"SiteConstraints({self._constraints!r})"


class NoConstraints:
    """Constrainer that leaves every node free at every site."""

    def __init__(self, states: Iterable[str]):
        self._default = SiteConstraints(states)

    def get_constraints(self, tree: Tree, site: Site) -> SiteConstraints:
        return self._default


class FixedConstraints:
    """
    Constrainer applying the same constraints to every site.

    Parameters
    ----------
    states : iterable of str
        All model states.
    constraints : mapping
        Node name to an allowed state or set of states.
    """

    def __init__(self, states: Iterable[str], constraints: Mapping[str, Union[str, Iterable[str]]]):
        self._constraints = SiteConstraints(states)
        for node, allowed in constraints.items():
            self._constraints.add_constraint(node, allowed)

    def get_constraints(self, tree: Tree, site: Site) -> SiteConstraints:
        return self._constraints.copy()
