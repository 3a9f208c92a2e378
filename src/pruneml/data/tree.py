"""
Rooted phylogenetic trees stored as an arena of indexed nodes.

A tree is built from a list of parent to child branches. Construction
validates the topology and orders the branches so that every branch comes
after all branches below its child; iterating a tree therefore visits the
branches in postorder, which is the order the pruning algorithm needs.
"""

import warnings
from collections import deque
from dataclasses import dataclass, replace
from typing import Iterable, Iterator, Mapping, Optional

import numpy as np

from ..exceptions import TreeError


@dataclass(frozen=True)
class Branch:
    """
    Directed branch of a tree.

    Attributes
    ----------
    parent : str
        Name of the node nearer the root.
    child : str
        Name of the node further from the root. Also names the branch's
        length parameter.
    length : float or None
        Branch length, if known.
    """

    parent: str
    child: str
    length: Optional[float] = None

    def reversed(self) -> "Branch":
        return Branch(self.child, self.parent, self.length)

    def __str__(self) -> str:
        if self.length is None:
            return f"{self.parent} -> {self.child}"
        return f"{self.parent} -> {self.child} ({self.length})"


class Tree:
    """
    Rooted tree.

    Parameters
    ----------
    branches : iterable of Branch
        Branches in any order.

    Raises
    ------
    TreeError
        If the branches do not form a single rooted tree or node names are
        reused.

    Attributes
    ----------
    root : str
        Name of the root node.
    branches : tuple of Branch
        Branches in postorder.
    internal : tuple of str
        Internal node names, root last.
    leaves : tuple of str
        Leaf names in order of first appearance.
    names : tuple of str
        All node names; leaves first, then internal nodes. Node indices
        refer to positions in this tuple.
    index : dict
        Node name to node index.
    parent_index : ndarray
        Parent node index per node (-1 for the root).
    children : tuple of tuples
        Child node indices per node.
    postorder, preorder : ndarray
        Node indices with children before (postorder) or after (preorder)
        their parents.
    branch_parent, branch_child : ndarray
        Parent and child node index per branch, aligned with ``branches``.

    Examples
    --------
    >>> t = Tree.from_edges([("r", "a", 0.1), ("r", "n", 0.2), ("n", "b", 0.3), ("n", "c", 0.4)])
    >>> t.root, t.leaves, t.internal
    ('r', ('a', 'b', 'c'), ('n', 'r'))
    >>> [b.child for b in t]
    ['c', 'b', 'n', 'a']
    """

    def __init__(self, branches: Iterable[Branch]):
        branches = list(branches)
        if not branches:
            raise TreeError("Tree has no branches")

        parents = {b.parent for b in branches}
        children = [b.child for b in branches]
        candidates = parents - set(children)
        if len(candidates) != 1:
            raise TreeError("Tree appears to be disjoint or a network")
        root = candidates.pop()

        by_parent: dict[str, list[Branch]] = {}
        for b in branches:
            by_parent.setdefault(b.parent, []).append(b)

        ordered = []
        internal = []
        seen = {root}
        todo = deque([root])
        while todo:
            current = todo.popleft()
            for b in by_parent.get(current, ()):
                ordered.append(b)
                if b.parent not in internal:
                    internal.append(b.parent)
                if b.child in seen:
                    raise TreeError(f"Tree contains more than one node named {b.child}")
                seen.add(b.child)
                todo.append(b.child)
        if len(ordered) != len(branches):
            raise TreeError("Tree appears to be disjoint or a network")

        ordered.reverse()
        internal.reverse()
        leaves = []
        for c in children:
            if c not in parents and c not in leaves:
                leaves.append(c)

        self.root = root
        self.branches = tuple(ordered)
        self.internal = tuple(internal)
        self.leaves = tuple(leaves)
        self._build_arena()

    def _build_arena(self) -> None:
        self.names = self.leaves + self.internal
        self.index = {name: i for i, name in enumerate(self.names)}
        n = len(self.names)
        parent_index = np.full(n, -1, dtype=np.int64)
        kids: list[list[int]] = [[] for _ in range(n)]
        self.branch_parent = np.empty(len(self.branches), dtype=np.int64)
        self.branch_child = np.empty(len(self.branches), dtype=np.int64)
        self._by_child = {}
        for k, b in enumerate(self.branches):
            p, c = self.index[b.parent], self.index[b.child]
            parent_index[c] = p
            kids[p].append(c)
            self.branch_parent[k] = p
            self.branch_child[k] = c
            self._by_child[b.child] = b
        self.parent_index = parent_index
        self.children = tuple(tuple(k) for k in kids)
        self.postorder = np.append(self.branch_child, self.index[self.root])
        self.preorder = self.postorder[::-1].copy()

    @classmethod
    def from_edges(cls, edges: Iterable[tuple]) -> "Tree":
        """Build a tree from ``(parent, child)`` or ``(parent, child, length)`` tuples."""
        return cls(Branch(*e) for e in edges)

    @property
    def nodes(self) -> tuple:
        return self.names

    @property
    def n_branches(self) -> int:
        return len(self.branches)

    @property
    def size(self) -> int:
        """Number of leaves."""
        return len(self.leaves)

    def __iter__(self) -> Iterator[Branch]:
        return iter(self.branches)

    def __len__(self) -> int:
        return len(self.branches)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Tree):
            return NotImplemented
        return self.root == other.root and set(self.branches) == set(other.branches)

    def __hash__(self) -> int:
        return hash((self.root, frozenset(self.branches)))

    def is_external(self, branch: Branch) -> bool:
        """True if the branch ends in a leaf."""
        return self.is_leaf(branch.child)

    def is_leaf(self, name: str) -> bool:
        return self._node(name) < len(self.leaves)

    def _node(self, name: str) -> int:
        try:
            return self.index[name]
        except KeyError:
            raise TreeError(f"Node {name} does not exist") from None

    def branch_by_child(self, child: str) -> Branch:
        if child == self.root:
            raise TreeError("The root node is not a child on any branch")
        try:
            return self._by_child[child]
        except KeyError:
            raise TreeError(f"Node {child} does not exist") from None

    def branches_by_parent(self, parent: str) -> tuple:
        node = self._node(parent)
        if not self.children[node]:
            raise TreeError(f"Node {parent} is a leaf")
        return tuple(self._by_child[self.names[c]] for c in self.children[node])

    def parent(self, child: str) -> str:
        return self.branch_by_child(child).parent

    def path_to_root(self, name: str) -> list:
        """Branches from ``name`` up to the root, nearest first."""
        node = self._node(name)
        path = []
        while self.parent_index[node] >= 0:
            path.append(self._by_child[self.names[node]])
            node = self.parent_index[node]
        return path

    def branches_reversed(self) -> list:
        """Branches in preorder (parents before children)."""
        return list(reversed(self.branches))

    def length(self) -> float:
        """Total branch length."""
        missing = [b.child for b in self.branches if b.length is None]
        if missing:
            raise TreeError(f"Branches to {', '.join(missing)} have no length")
        return float(sum(b.length for b in self.branches))

    def branch_lengths(self) -> dict:
        """Branch lengths keyed by child name, usable as parameter values."""
        return {b.child: b.length for b in self.branches if b.length is not None}

    def with_lengths(self, values: Mapping[str, float]) -> "Tree":
        """
        Copy with lengths taken from ``values`` by child name.

        Branches whose child is not in ``values`` keep their stored length,
        with a warning.

        Raises
        ------
        TreeError
            If a branch has no length from either source or a length is
            negative.
        """
        branches = []
        fallback = []
        for b in self.branches:
            if b.child in values:
                length = float(values[b.child])
            elif b.length is not None:
                length = b.length
                fallback.append(b.child)
            else:
                raise TreeError(f"No length given for branch {b}")
            if not length >= 0.0:
                raise TreeError(f"Branch {b.parent} -> {b.child} has negative length {length}")
            branches.append(replace(b, length=length))
        if fallback:
            warnings.warn(
                f"No length parameters for branches to {', '.join(fallback)}; "
                "using stored tree lengths",
                UserWarning,
                stacklevel=2,
            )
        return self._same_shape(branches)

    def _same_shape(self, branches: list) -> "Tree":
        # Lengths changed only; the topology and ordering are reused.
        tree = object.__new__(Tree)
        tree.root = self.root
        tree.branches = tuple(branches)
        tree.internal = self.internal
        tree.leaves = self.leaves
        tree._build_arena()
        return tree

    def scaled_to(self, total: float) -> "Tree":
        """Copy with all lengths multiplied so they sum to ``total``."""
        factor = total / self.length()
        return self._same_shape([replace(b, length=b.length * factor) for b in self.branches])

    def rerooted(self, node: str) -> "Tree":
        """
        The same unrooted tree rooted at internal node ``node``.

        Branches on the path from ``node`` to the current root are reversed.
        If the old root is left with exactly one child its two branches are
        merged into one, summing their lengths.

        Raises
        ------
        TreeError
            If ``node`` is unknown or a leaf.
        """
        if self.is_leaf(node):
            raise TreeError(f"Cannot root the tree at leaf {node}")
        if node == self.root:
            return self
        on_path = set(self.path_to_root(node))
        branches = [b.reversed() if b in on_path else b for b in self.branches]

        old = self.root
        into = [b for b in branches if b.child == old]
        out = [b for b in branches if b.parent == old]
        if len(into) == 1 and len(out) == 1:
            a, b = into[0], out[0]
            length = None if a.length is None or b.length is None else a.length + b.length
            branches = [x for x in branches if x not in (a, b)]
            branches.append(Branch(a.parent, b.child, length))
        return Tree(branches)

    def __repr__(self) -> str:
        return f"Tree(root={self.root!r}, leaves={len(self.leaves)}, branches={len(self.branches)})"
