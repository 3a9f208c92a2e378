"""
Unit tests for trees, sites and alignments.
"""

import numpy as np
import pytest

from pruneml.data.alignment import Alignment, Ambiguous, Site
from pruneml.data.tree import Branch, Tree
from pruneml.exceptions import AlignmentError, TreeError


class TestTree:
    """Test the tree arena."""

    def test_postorder_branches(self, four_taxon_tree):
        """Test every child branch comes before its parent's branch."""
        position = {b.child: i for i, b in enumerate(four_taxon_tree)}
        for b in four_taxon_tree:
            if b.parent != four_taxon_tree.root:
                assert position[b.child] < position[b.parent]

    def test_node_order(self, four_taxon_tree):
        """Test leaves come first and the root is the last internal node."""
        t = four_taxon_tree
        assert set(t.leaves) == {"a", "b", "c", "d"}
        assert t.internal[-1] == "r"
        assert t.names == t.leaves + t.internal
        assert t.size == 4
        assert len(t) == t.n_branches == 6

    def test_arena_indices(self, four_taxon_tree):
        """Test branch index arrays agree with the branches."""
        t = four_taxon_tree
        for k, b in enumerate(t.branches):
            assert t.names[t.branch_parent[k]] == b.parent
            assert t.names[t.branch_child[k]] == b.child
        assert t.parent_index[t.index["r"]] == -1
        assert t.postorder[-1] == t.index["r"]
        assert t.preorder[0] == t.index["r"]

    def test_lookups(self, four_taxon_tree):
        """Test parent, child and leaf lookups."""
        t = four_taxon_tree
        assert t.parent("a") == "n1"
        assert t.branch_by_child("c") == Branch("n2", "c", 0.3)
        assert {b.child for b in t.branches_by_parent("r")} == {"n1", "n2"}
        assert t.is_leaf("a") and not t.is_leaf("n1")
        assert t.is_external(t.branch_by_child("d"))
        assert [b.child for b in t.path_to_root("a")] == ["a", "n1"]
        assert t.path_to_root("r") == []

    def test_unknown_nodes(self, four_taxon_tree):
        """Test lookups of absent nodes raise TreeError."""
        with pytest.raises(TreeError, match="does not exist"):
            four_taxon_tree.parent("zz")
        with pytest.raises(TreeError, match="root"):
            four_taxon_tree.branch_by_child("r")
        with pytest.raises(TreeError, match="leaf"):
            four_taxon_tree.branches_by_parent("a")

    def test_disjoint_rejected(self):
        """Test two roots raise TreeError."""
        with pytest.raises(TreeError, match="disjoint"):
            Tree.from_edges([("r", "a"), ("s", "b")])

    def test_duplicate_names_rejected(self):
        """Test a node reachable twice raises TreeError."""
        with pytest.raises(TreeError):
            Tree.from_edges([("r", "n"), ("r", "m"), ("n", "a"), ("m", "a")])

    def test_length(self, four_taxon_tree):
        """Test total and scaled lengths."""
        np.testing.assert_allclose(four_taxon_tree.length(), 0.92)
        np.testing.assert_allclose(four_taxon_tree.scaled_to(1.84).length(), 1.84)
        with pytest.raises(TreeError, match="no length"):
            Tree.from_edges([("r", "a"), ("r", "b", 0.1)]).length()

    def test_with_lengths(self, four_taxon_tree):
        """Test parameter lengths override stored ones."""
        values = four_taxon_tree.branch_lengths()
        values["a"] = 0.5
        t = four_taxon_tree.with_lengths(values)
        assert t.branch_by_child("a").length == 0.5
        assert t.branches[0].child == four_taxon_tree.branches[0].child

    def test_with_lengths_fallback_warns(self, four_taxon_tree):
        """Test missing length parameters fall back to stored lengths with a warning."""
        with pytest.warns(UserWarning, match="using stored tree lengths"):
            t = four_taxon_tree.with_lengths({"a": 0.5})
        assert t.branch_by_child("b").length == 0.2

    def test_with_lengths_errors(self):
        """Test negative or missing lengths raise TreeError."""
        t = Tree.from_edges([("r", "a"), ("r", "b")])
        with pytest.raises(TreeError, match="No length"):
            t.with_lengths({"a": 0.1})
        with pytest.raises(TreeError, match="negative"):
            t.with_lengths({"a": -0.1, "b": 0.1})

    def test_rerooted(self, four_taxon_tree):
        """Test re-rooting merges the old degree-two root."""
        t = four_taxon_tree.rerooted("n1")
        assert t.root == "n1"
        assert "r" not in t.names
        merged = t.branch_by_child("n2")
        assert merged.parent == "n1"
        np.testing.assert_allclose(merged.length, 0.2)
        np.testing.assert_allclose(t.length(), four_taxon_tree.length())

    def test_rerooted_at_leaf_rejected(self, four_taxon_tree):
        """Test rooting at a leaf raises TreeError."""
        with pytest.raises(TreeError, match="leaf"):
            four_taxon_tree.rerooted("a")

    def test_equality(self, four_taxon_tree):
        """Test trees compare by branches and root."""
        shuffled = Tree(reversed(four_taxon_tree.branches))
        assert shuffled == four_taxon_tree
        assert hash(shuffled) == hash(four_taxon_tree)


class TestSite:
    """Test single alignment columns."""

    def test_ambiguity(self):
        """Test IUPAC codes resolve to state sets."""
        site = Site({"a": "R", "b": "A"}, ambiguous=Ambiguous.nucleotide())
        assert site.character("a") == frozenset("AG")
        assert site.character("b") == frozenset("A")
        assert site.raw_character("a") == "R"

    def test_unknown_taxon(self):
        """Test lookups of absent taxa raise AlignmentError."""
        with pytest.raises(AlignmentError, match="No such taxa: z"):
            Site({"a": "A"}).raw_character("z")

    def test_equality_ignores_site_id(self):
        """Test sites compare by characters and class only."""
        assert Site({"a": "A"}, site_id="1") == Site({"a": "A"}, site_id="2")
        assert Site({"a": "A"}, "x") != Site({"a": "A"}, "y")

    def test_recode_and_limit(self):
        """Test recoding and taxon restriction."""
        site = Site({"a": "A", "b": "C", "c": "G"})
        assert site.recode({"A": "G"}).raw_character("a") == "G"
        assert site.limit_to_taxa(["a", "c"]).taxa == ("a", "c")
        assert site.with_characters({"n": "T"}).taxa == ("a", "b", "c", "n")
        assert str(site) == "ACG"


class TestAlignment:
    """Test alignments and site deduplication."""

    def test_unique_sites(self, four_taxon_alignment):
        """Test identical columns collapse with counts in first-seen order."""
        unique = four_taxon_alignment.unique_sites()
        assert sum(u.count for u in unique) == len(four_taxon_alignment)
        assert len(unique) == 6
        counts = {str(u.site): u.count for u in unique}
        assert counts["AAGG"] == 2

    def test_invalid_alignments(self):
        """Test inconsistent alignments raise AlignmentError."""
        with pytest.raises(AlignmentError, match="no sites"):
            Alignment([])
        with pytest.raises(AlignmentError, match="different taxa"):
            Alignment([Site({"a": "A"}), Site({"b": "A"})])
        with pytest.raises(AlignmentError, match="class"):
            Alignment([Site({"a": "A"}, "x"), Site({"a": "A"})])
        with pytest.raises(AlignmentError, match="different lengths"):
            Alignment.from_sequences({"a": "AC", "b": "A"})

    def test_classes(self):
        """Test site classes and missing mappings."""
        aln = Alignment([Site({"a": "A"}, "x"), Site({"a": "C"}, "y"), Site({"a": "G"}, "x")])
        assert aln.site_classes() == {"x", "y"}
        assert aln.class_size("x") == 2
        aln.check({"x": 1, "y": 2})
        with pytest.raises(AlignmentError, match="y"):
            aln.check({"x": 1})

    def test_frequencies(self):
        """Test raw character frequency and average length."""
        aln = Alignment.from_sequences({"a": "AC-", "b": "AAT"})
        np.testing.assert_allclose(aln.raw_freq("A"), 0.5)
        np.testing.assert_allclose(aln.average_length(), 2.5)
