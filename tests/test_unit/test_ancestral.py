"""
Unit tests for joint and marginal ancestral reconstruction.
"""

import numpy as np
import pytest

from pruneml.ancestral import (
    FixedConstraints,
    JointBB,
    JointDP,
    Marginal,
    NoConstraints,
    SiteConstraints,
    joint_reconstructor,
)
from pruneml.ancestral.joint_dp import dp_site
from pruneml.config import EngineConfig
from pruneml.data.alignment import Alignment, Ambiguous, Site
from pruneml.data.tree import Tree
from pruneml.exceptions import AlignmentError, AncestralError, MultipleRatesError, TreeError
from pruneml.likelihood import Calculator, SiteCalculator, initial_likelihoods
from pruneml.models.duplication import bdi
from pruneml.models.nucleotide import gtr


class TestConstraints:
    """Test per-site state constraints."""

    def test_site_constraints(self):
        """Test adding, reading and copying constraints."""
        sc = SiteConstraints("TCAG")
        assert sc.get_constraint("n") == {"T", "C", "A", "G"}
        sc.add_constraint("n", "A")
        assert sc.node_is_constrained("n")
        assert sc.get_constraint("n") == {"A"}

        clone = sc.copy()
        clone.add_constraint("n", {"C", "G"})
        assert sc.get_constraint("n") == {"A"}

    def test_unconstrained_is_a_copy(self):
        """Test the default set can be changed without affecting the constraints."""
        sc = SiteConstraints("AB")
        sc.get_constraint("n").clear()
        assert sc.get_constraint("n") == {"A", "B"}

    def test_meets_constraints(self):
        """Test a reconstructed site against its constraints."""
        sc = SiteConstraints("TCAG")
        sc.add_constraint("n", {"A", "G"})
        assert sc.meets_constraints(Site({"a": "C", "n": "G"}))
        assert not sc.meets_constraints(Site({"a": "C", "n": "T"}))

    def test_constrainers(self, star_tree):
        """Test the no-op and fixed constrainers."""
        site = Site({"a": "A", "b": "A", "c": "A"})
        none = NoConstraints("TCAG")
        assert none.get_constraints(star_tree, site) is none.get_constraints(star_tree, site)
        assert not none.get_constraints(star_tree, site).node_is_constrained("r")

        fixed = FixedConstraints("TCAG", {"r": "C"})
        first = fixed.get_constraints(star_tree, site)
        assert first.get_constraint("r") == {"C"}
        first.add_constraint("r", "G")
        assert fixed.get_constraints(star_tree, site).get_constraint("r") == {"C"}


class TestJointDP:
    """Test dynamic programming reconstruction."""

    def test_star_tree_majority(self, jc, star_tree):
        """Test a JC star tree reconstructs the majority state at the root."""
        aln = Alignment.from_sequences({"a": "AC", "b": "AG", "c": "TG"})
        result = JointDP(jc, aln, star_tree).calculate(star_tree.branch_lengths())
        assert [s.raw_character("r") for s in result] == ["A", "G"]

    def test_output_layout(self, jc, four_taxon_tree, four_taxon_alignment):
        """Test leaves keep raw characters and internal nodes follow in tree order."""
        result = JointDP(jc, four_taxon_alignment, four_taxon_tree).calculate(
            four_taxon_tree.branch_lengths()
        )
        assert len(result) == len(four_taxon_alignment)
        for original, site in zip(four_taxon_alignment, result):
            assert site.taxa == four_taxon_tree.leaves + four_taxon_tree.internal
            for taxon in original.taxa:
                assert site.raw_character(taxon) == original.raw_character(taxon)
            assert site.site_id == original.site_id

    def test_identical_leaves(self, hky_model, hky_values, four_taxon_tree):
        """Test identical leaves give the same state everywhere."""
        aln = Alignment.from_sequences({x: "G" for x in "abcd"})
        values = {**hky_values, **four_taxon_tree.branch_lengths()}
        site = JointDP(hky_model, aln, four_taxon_tree).calculate(values).site(0)
        assert {site.raw_character(n) for n in four_taxon_tree.internal} == {"G"}

    def test_site_classes(self, jc, hky_model, hky_values):
        """Test each site class is reconstructed under its own model."""
        tree = Tree.from_edges([("r", "a", 0.1), ("r", "b", 0.1)])
        sites = [
            Site({"a": "A", "b": "G"}, "jc"),
            Site({"a": "A", "b": "G"}, "hky"),
        ]
        values = {**hky_values, **tree.branch_lengths()}
        result = JointDP({"jc": jc, "hky": hky_model}, Alignment(sites), tree).calculate(values)
        # pG exceeds pA under the HKY frequencies
        assert result.site(1).raw_character("r") == "G"
        assert result.site(0).raw_character("r") in {"A", "G"}

    def test_multiple_rates_rejected(self, jc_gamma, star_tree):
        """Test mixtures are rejected."""
        aln = Alignment.from_sequences({"a": "A", "b": "A", "c": "A"})
        with pytest.raises(MultipleRatesError, match="single rate category"):
            JointDP(jc_gamma, aln, star_tree)

    def test_ambiguous_leaf_rejected(self, jc, star_tree):
        """Test ambiguous leaves raise AncestralError."""
        aln = Alignment.from_sequences(
            {"a": "R", "b": "A", "c": "A"}, ambiguous=Ambiguous.nucleotide()
        )
        with pytest.raises(AncestralError, match="ambiguous"):
            JointDP(jc, aln, star_tree).calculate(star_tree.branch_lengths())

    def test_unknown_class(self, jc, star_tree):
        """Test a site class without a model raises AlignmentError."""
        aln = Alignment.from_sequences({"a": "A", "b": "A", "c": "A"}, site_class="x")
        with pytest.raises(AlignmentError):
            JointDP({"y": jc}, aln, star_tree)

    def test_parameter_named_like_node(self, star_tree):
        """Test taxa named like model parameters are rejected up front."""
        aln = Alignment.from_sequences({"a": "A", "b": "C", "c": "G"})
        with pytest.raises(TreeError, match="a, b, c"):
            JointDP(gtr(), aln, star_tree)
        with pytest.raises(TreeError, match="a, b, c"):
            Marginal(gtr(), aln, star_tree)

    def test_family_sizes(self):
        """Test short branches reconstruct the shared family size."""
        tree = Tree.from_edges([("r", "x", 0.05), ("r", "y", 0.05), ("r", "z", 0.05)])
        aln = Alignment.from_sequences({"x": "20", "y": "21", "z": "31"})
        values = {"b": 1.0, "d": 1.0, "i": 0.5, **tree.branch_lengths()}
        result = JointDP(bdi(4), aln, tree).calculate(values)
        assert [s.raw_character("r") for s in result] == ["2", "1"]


class TestJointBB:
    """Test branch and bound reconstruction."""

    def test_single_rate_matches_dp(self, hky_model, hky_values, four_taxon_tree, four_taxon_alignment):
        """Test branch and bound agrees with dynamic programming for one category."""
        values = {**hky_values, **four_taxon_tree.branch_lengths()}
        dp = JointDP(hky_model, four_taxon_alignment, four_taxon_tree).calculate(values)
        bb = JointBB(hky_model, four_taxon_alignment, four_taxon_tree).calculate(values)
        assert list(dp) == list(bb)

    def test_not_worse_than_seed(self, jc_gamma, four_taxon_tree, four_taxon_alignment):
        """Test the result scores at least as well as its DP seed."""
        values = {"g": 0.3, **four_taxon_tree.branch_lengths()}
        bb = JointBB(jc_gamma, four_taxon_alignment, four_taxon_tree)
        probs = bb.probabilities(values)[None]
        for site, result in zip(four_taxon_alignment, bb.calculate(values)):
            seed = _seed(bb, site, probs)
            assert _joint_ln(bb, probs, site, result) >= _joint_ln(bb, probs, site, seed) - 1e-12

    def test_scaled_matches_standard(self, jc_gamma, four_taxon_tree, four_taxon_alignment):
        """Test the scalar type does not change the reconstruction."""
        values = {"g": 0.3, **four_taxon_tree.branch_lengths()}
        standard = JointBB(jc_gamma, four_taxon_alignment, four_taxon_tree).calculate(values)
        scaled = JointBB(
            jc_gamma, four_taxon_alignment, four_taxon_tree, EngineConfig(real_type="scaled")
        ).calculate(values)
        assert list(standard) == list(scaled)

    def test_error_names_site(self, jc_gamma, star_tree):
        """Test failures name the offending site."""
        aln = Alignment.from_sequences(
            {"a": "R", "b": "A", "c": "A"}, ambiguous=Ambiguous.nucleotide()
        )
        with pytest.raises(AncestralError, match="at site RAA"):
            JointBB(jc_gamma, aln, star_tree).calculate({"g": 0.5, **star_tree.branch_lengths()})

    def test_site_ids_kept(self, jc_gamma, four_taxon_tree, four_taxon_alignment):
        """Test repeated columns keep their own site ids."""
        values = {"g": 0.3, **four_taxon_tree.branch_lengths()}
        result = JointBB(jc_gamma, four_taxon_alignment, four_taxon_tree).calculate(values)
        assert [s.site_id for s in result] == [s.site_id for s in four_taxon_alignment]
        assert [s.site_id for s in result] == [str(i) for i in range(1, 9)]


class TestJointFactory:
    """Test the choice of joint reconstructor."""

    def test_single_rate_uses_dp(self, jc, star_tree):
        """Test single-category models get dynamic programming."""
        aln = Alignment.from_sequences({"a": "A", "b": "A", "c": "A"})
        assert isinstance(joint_reconstructor(jc, aln, star_tree), JointDP)

    def test_mixture_uses_bb(self, jc_gamma, star_tree):
        """Test mixtures fall back to branch and bound."""
        aln = Alignment.from_sequences({"a": "A", "b": "A", "c": "A"})
        assert isinstance(joint_reconstructor(jc_gamma, aln, star_tree), JointBB)


class TestMarginal:
    """Test marginal reconstruction."""

    def test_site_ids_kept(self, jc, four_taxon_tree, four_taxon_alignment):
        """Test repeated columns keep their own site ids."""
        result = Marginal(jc, four_taxon_alignment, four_taxon_tree).calculate(
            four_taxon_tree.branch_lengths()
        )
        assert [s.site_id for s in result.alignment] == [str(i) for i in range(1, 9)]
        # The repeated columns 7 and 8 share one reconstruction
        assert result.alignment.site(6) == result.alignment.site(7)

    def test_posteriors_sum_to_one(self, jc_gamma, four_taxon_tree, four_taxon_alignment):
        """Test every node's distribution sums to one."""
        values = {"g": 0.5, **four_taxon_tree.branch_lengths()}
        result = Marginal(jc_gamma, four_taxon_alignment, four_taxon_tree).calculate(values)
        for site in four_taxon_alignment:
            sr = result.site_result(site)
            for node in four_taxon_tree.internal:
                dist = sr.distribution(node)
                np.testing.assert_allclose(sum(dist.values()), 1.0, rtol=1e-12)
                best = max(dist, key=dist.get)
                assert sr.site.raw_character(node) == best
                assert sr.probability(node, best) == dist[best]

    def test_root_matches_pruning(self, hky_model, hky_values, star_tree):
        """Test the root posterior is the normalized root vector times frequencies."""
        aln = Alignment.from_sequences({"a": "A", "b": "A", "c": "G"})
        values = {**hky_values, **star_tree.branch_lengths()}
        root = (
            Calculator(hky_model, aln, star_tree)
            .calculate(values)
            .site_likelihood(aln.site(0))
            .rate_likelihood(0)
            .node_likelihood("r")
            .to_array()
        )
        expected = root * np.array([0.1, 0.2, 0.3, 0.4])
        expected /= expected.sum()
        sr = Marginal(hky_model, aln, star_tree).calculate(values).site_result(aln.site(0))
        np.testing.assert_allclose(
            [sr.probability("r", s) for s in "TCAG"], expected, rtol=1e-10
        )

    def test_constraints(self, jc, four_taxon_tree, four_taxon_alignment):
        """Test constrained nodes only take allowed states."""
        values = four_taxon_tree.branch_lengths()
        constrainer = FixedConstraints(jc.states, {"n1": {"T", "C"}})
        result = Marginal(jc, four_taxon_alignment, four_taxon_tree, constrainer).calculate(values)
        for site in result.alignment:
            assert site.raw_character("n1") in {"T", "C"}
        dist = result.site_result(four_taxon_alignment.site(0)).distribution("n1")
        assert dist["A"] == 0.0 and dist["G"] == 0.0

    def test_ambiguous_leaves_allowed(self, jc, star_tree):
        """Test ambiguous leaves are marginalized over."""
        aln = Alignment.from_sequences(
            {"a": "R", "b": "A", "c": "A"}, ambiguous=Ambiguous.nucleotide()
        )
        result = Marginal(jc, aln, star_tree).calculate(star_tree.branch_lengths())
        assert result.alignment.site(0).raw_character("r") == "A"

    def test_missing_entries(self, jc, star_tree):
        """Test lookups of absent sites, nodes and states raise AncestralError."""
        aln = Alignment.from_sequences({"a": "A", "b": "A", "c": "A"})
        result = Marginal(jc, aln, star_tree).calculate(star_tree.branch_lengths())
        with pytest.raises(AncestralError, match="No marginal result"):
            result.site_result(Site({"a": "C", "b": "C", "c": "C"}))
        sr = result.site_result(aln.site(0))
        with pytest.raises(AncestralError, match="No marginal distribution"):
            sr.distribution("a")
        with pytest.raises(AncestralError, match="not a model state"):
            sr.probability("r", "X")

    def test_impossible_constraint(self, jc, star_tree):
        """Test a node with no possible state raises AncestralError naming the site."""
        aln = Alignment.from_sequences({"a": "A", "b": "A", "c": "A"})
        constrainer = FixedConstraints(jc.states, {"r": set()})
        with pytest.raises(AncestralError, match="at site AAA"):
            Marginal(jc, aln, star_tree, constrainer).calculate(star_tree.branch_lengths())


def _seed(bb, site, probs):
    base = initial_likelihoods(bb.tree, site, probs.model)
    unconstrained = SiteCalculator(probs, base).calculate()
    dominant = int(np.argmax([rl.likelihood.to_float() for rl in unconstrained.rate_likelihoods]))
    return dp_site(site, probs, dominant)


def _joint_ln(bb, probs, site, reconstructed):
    sc = SiteConstraints(probs.states)
    for node in bb.tree.internal:
        sc.add_constraint(node, reconstructed.raw_character(node))
    base = initial_likelihoods(bb.tree, site, probs.model)
    return bb._score(probs, base, sc)
