"""
Unit tests for model expressions, rate categories and mixtures.
"""

import numpy as np
import pytest

from pruneml.config import DistributionMethod
from pruneml.exceptions import DistributionError, ModelError, RateError
from pruneml.models import (
    Constant,
    FrequencyType,
    Function,
    GammaRate,
    Model,
    RateCategory,
    Variable,
    bd,
    bd_no_zero,
    bdi,
    default_parameters,
    gamma_rates,
    gtr,
    hky,
    jukes_cantor,
    kimura,
    parsimony,
    quasi_stationary,
    ry,
    stationary,
)
from pruneml.models.expressions import as_expression, memo_evaluate


class TestExpressions:
    """Test parameter-dependent entries."""

    def test_as_expression(self):
        """Test numbers, names and expressions are converted."""
        assert as_expression(2) == Constant(2.0)
        assert as_expression("k") == Variable("k")
        with pytest.raises(TypeError):
            as_expression([1.0])

    def test_product_parameters(self):
        """Test products report and evaluate both operands."""
        e = Variable("k") * 2.0
        assert e.parameters == frozenset(["k"])
        assert e.evaluate({"k": 3.0}) == 6.0

    def test_function(self):
        """Test arbitrary functions of named parameters."""
        e = Function(lambda a, b: a - b, ("a", "b"))
        assert e.parameters == frozenset(["a", "b"])
        assert e.evaluate({"a": 3.0, "b": 1.0}) == 2.0

    def test_memo_evaluates_once(self):
        """Test a memo computes each distinct expression once."""
        calls = []
        e = Function(lambda k: calls.append(k) or k, ("k",))
        memo = {}
        memo_evaluate(e, {"k": 1.0}, memo)
        memo_evaluate(e, {"k": 1.0}, memo)
        assert len(calls) == 1


class TestGammaRates:
    """Test discrete gamma rate categories."""

    @pytest.mark.parametrize("alpha", [0.2, 0.5, 1.0, 4.0])
    @pytest.mark.parametrize("k", [2, 4, 8])
    def test_mean_one(self, alpha, k):
        """Test category rates average to one."""
        rates = gamma_rates(alpha, k)
        np.testing.assert_allclose(rates.mean(), 1.0, rtol=1e-10)
        assert np.all(np.diff(rates) > 0)

    def test_single_category(self):
        """Test one category has rate one."""
        np.testing.assert_array_equal(gamma_rates(0.5, 1), [1.0])

    def test_invalid_shape(self):
        """Test non-positive shapes are rejected."""
        with pytest.raises(ValueError, match="positive"):
            gamma_rates(0.0, 4)

    def test_expression(self):
        """Test the gamma rate expression reads its shape parameter."""
        e = GammaRate("g", 2, 4)
        np.testing.assert_allclose(e.evaluate({"g": 0.5}), gamma_rates(0.5, 4)[1])


class TestDistributions:
    """Test stationary and quasi-stationary solvers."""

    R = np.array(
        [
            [-0.9, 0.3, 0.4, 0.2],
            [0.5, -1.0, 0.1, 0.4],
            [0.2, 0.2, -0.6, 0.2],
            [0.3, 0.6, 0.3, -1.2],
        ]
    )

    @pytest.mark.parametrize("method", list(DistributionMethod))
    def test_stationary(self, method):
        """Test pi R = 0 and pi sums to one."""
        pi = stationary(self.R, method)
        np.testing.assert_allclose(pi.sum(), 1.0)
        np.testing.assert_allclose(pi @ self.R, 0.0, atol=1e-8)

    def test_methods_agree(self):
        """Test both stationary solvers give the same answer."""
        np.testing.assert_allclose(
            stationary(self.R, "eigen"), stationary(self.R, "repeat"), atol=1e-8
        )

    @pytest.mark.parametrize("method", list(DistributionMethod))
    def test_quasi_stationary(self, method):
        """Test the sink has zero mass and the transient part is invariant."""
        R = self.R.copy()
        R[0] = 0.0
        q = quasi_stationary(R, method)
        assert q[0] == 0.0
        np.testing.assert_allclose(q[1:].sum(), 1.0)
        # Conditioned on survival the transient block is an eigenvector
        block = q[1:] @ R[1:, 1:]
        np.testing.assert_allclose(block / block.sum(), q[1:], atol=1e-7)

    def test_repeat_absorbing_warns(self):
        """Test the repeat solver warns about absorbing states."""
        R = np.array([[0.0, 0.0], [1.0, -1.0]])
        with pytest.warns(UserWarning, match="absorbing"):
            pi = stationary(R, "repeat")
        np.testing.assert_allclose(pi, [1.0, 0.0], atol=1e-8)

    def test_degenerate(self):
        """Test a zero matrix cannot give a repeat distribution."""
        with pytest.raises(DistributionError, match="zero rate matrix"):
            stationary(np.zeros((2, 2)), "repeat")
        with pytest.raises(DistributionError, match="two states"):
            quasi_stationary(np.zeros((1, 1)))


class TestRateCategory:
    """Test single parameterized rate categories."""

    def test_rate_matrix(self):
        """Test the generator diagonal is minus the row sum."""
        cat = RateCategory([[0, "k", 1], [1, 0, "k"], ["k", 1, 0]], "xyz", freq=[1, 1, 1])
        R = cat.rate_matrix({"k": 2.0})
        np.testing.assert_allclose(R.sum(axis=1), 0.0)
        assert R[0, 1] == 2.0
        assert cat.parameters == frozenset(["k"])

    def test_own_frequencies(self):
        """Test _state parameters read the category's normalized frequencies."""
        cat = RateCategory([[0, "_b"], ["_a", 0]], ["a", "b"], freq=["p", 3.0])
        R, f = cat.evaluate({"p": 1.0})
        np.testing.assert_allclose(f, [0.25, 0.75])
        np.testing.assert_allclose(R[0, 1], 0.75)
        np.testing.assert_allclose(R[1, 0], 0.25)
        assert cat.parameters == frozenset(["p"])

    def test_stationary_frequencies(self):
        """Test derived frequencies for stationary categories."""
        cat = RateCategory([[0, 1.0], [3.0, 0]], ["a", "b"], freq_type="stationary")
        _, f = cat.evaluate({})
        np.testing.assert_allclose(f, [0.75, 0.25])

    def test_invalid_categories(self):
        """Test malformed categories raise RateError."""
        with pytest.raises(RateError, match="no frequency array"):
            RateCategory([[0, 1], [1, 0]], "ab")
        with pytest.raises(RateError, match="yet frequency array given"):
            RateCategory([[0, 1], [1, 0]], "ab", freq=[1, 1], freq_type=FrequencyType.QSTAT)
        with pytest.raises(RateError, match="not square"):
            RateCategory([[0, 1], [1]], "ab", freq=[1, 1])
        with pytest.raises(RateError, match="same length"):
            RateCategory([[0, 1], [1, 0]], "ab", freq=[1, 1, 1])
        with pytest.raises(RateError, match="unless frequency type is model"):
            RateCategory([[0, "_a"], [1, 0]], "ab", freq_type="stationary")
        with pytest.raises(RateError, match="undefined state"):
            RateCategory([[0, "_z"], [1, 0]], "ab", freq=[1, 1])

    def test_missing_parameters(self):
        """Test every missing parameter is named."""
        cat = RateCategory([[0, "x"], ["y", 0]], "ab", freq=[1, 1])
        with pytest.raises(RateError, match="Parameters x, y have not been passed"):
            cat.rate_matrix({})

    def test_total_rate(self):
        """Test the expected substitution rate."""
        R = np.array([[-1.0, 1.0], [3.0, -3.0]])
        np.testing.assert_allclose(RateCategory.total_rate(R, np.array([0.75, 0.25])), 1.5)

    def test_multiply_by(self):
        """Test scaling a category by a factor expression."""
        cat = RateCategory([[0, 1], [2, 0]], "ab", freq=[1, 1])
        R = cat.multiply_by("s").rate_matrix({"s": 3.0})
        np.testing.assert_allclose(R, [[-3.0, 3.0], [6.0, -6.0]])


class TestModel:
    """Test mixtures of rate categories."""

    def test_weights_normalized(self):
        """Test weights sum to one."""
        cat = RateCategory([[0, 1], [1, 0]], "ab", freq=[1, 1])
        m = Model([cat, cat.multiply_by(2.0)], weights=["w", 3.0])
        np.testing.assert_allclose(m.weights({"w": 1.0}), [0.25, 0.75])
        assert not m.has_single_rate
        with pytest.raises(ModelError, match="Invalid"):
            m.weights({"w": -5.0})

    def test_scale(self):
        """Test rescaling makes the weighted rate one."""
        cat = RateCategory([[0, 2], [2, 0]], "ab", freq=[1, 1])
        np.testing.assert_allclose(Model(cat).scale({}), 0.5)
        assert Model(cat, rescale=False).scale({}) == 1.0

    def test_mismatched_states(self):
        """Test categories must share states."""
        a = RateCategory([[0, 1], [1, 0]], "ab", freq=[1, 1])
        b = RateCategory([[0, 1], [1, 0]], "ba", freq=[1, 1])
        c = RateCategory([[0, 1, 1], [1, 0, 1], [1, 1, 0]], "abc", freq=[1, 1, 1])
        with pytest.raises(ModelError, match="different states"):
            Model([a, b])
        with pytest.raises(ModelError, match="number of states"):
            Model([a, c])
        with pytest.raises(ModelError, match="weights"):
            Model([a, a], weights=[1.0])

    def test_gamma_model(self):
        """Test gamma categories are named and equally weighted."""
        m = jukes_cantor(gamma_categories=4)
        assert len(m) == 4
        assert [c.name for c in m] == [f"Gamma Category {i}" for i in range(1, 5)]
        np.testing.assert_allclose(m.weights({"g": 0.5}), 0.25)
        assert m.parameters == frozenset(["g"])

    def test_with_gamma(self):
        """Test gamma rates are only added for more than one category."""
        base = RateCategory([[0, 1], [1, 0]], "ab", freq=[1, 1])
        assert Model.with_gamma(base, "g").has_single_rate
        assert Model.with_gamma(base, "g", 1).parameters == frozenset()
        gamma = Model.with_gamma(base, "g", 3, rescale=False)
        assert len(gamma) == 3
        assert not gamma.rescale
        with pytest.raises(ModelError, match="at least one category"):
            Model.with_gamma(base, "g", 0)


class TestNucleotideModels:
    """Test the standard nucleotide model factories."""

    def test_parameters(self):
        """Test each factory exposes its parameters."""
        assert jukes_cantor().parameters == frozenset()
        assert kimura().parameters == frozenset(["k"])
        assert hky().parameters == frozenset(["k", "pT", "pC", "pA", "pG"])
        assert gtr().parameters == frozenset("abcdef") | frozenset(["pT", "pC", "pA", "pG"])

    def test_hky_reversible(self, hky_model, hky_values):
        """Test HKY satisfies detailed balance with its frequencies."""
        R, f = hky_model[0].evaluate(hky_values)
        flux = f[:, np.newaxis] * R
        np.testing.assert_allclose(flux, flux.T, atol=1e-12)
        np.testing.assert_allclose(f, [0.1, 0.2, 0.3, 0.4])
        # T->C is a transition, T->A a transversion
        np.testing.assert_allclose(R[0, 1] / R[0, 2], 3.0 * 0.2 / 0.3)

    def test_default_parameters(self):
        """Test every parameter starts at one."""
        assert default_parameters(hky(gamma_categories=2)) == {
            "g": 1.0, "k": 1.0, "pA": 1.0, "pC": 1.0, "pG": 1.0, "pT": 1.0,
        }

    def test_ry(self):
        """Test the purine/pyrimidine model has two states and F81 rates."""
        m = ry(gamma_categories=2)
        assert m.states == ("R", "Y")
        assert m.parameters == frozenset(["pR", "pY", "g"])
        R, f = m[0].evaluate({"pR": 3.0, "pY": 1.0, "g": 1.0})
        np.testing.assert_allclose(f, [0.75, 0.25])
        np.testing.assert_allclose(R[0, 1] / R[1, 0], 0.25 / 0.75)


class TestDuplicationModels:
    """Test the gene family size model factories."""

    values = {"r": 1.0, "b": 0.8, "d": 1.2, "i": 0.3}

    def test_states_and_parameters(self):
        """Test state spaces run over family sizes."""
        assert parsimony(2).states == ("0", "1", "2")
        assert parsimony(2).parameters == frozenset(["r"])
        assert bdi(4).states == ("0", "1", "2", "3", "4")
        assert bd_no_zero(3).states == ("1", "2", "3")
        assert bd_no_zero(3).parameters == frozenset(["b", "d"])
        assert bd(2).parameters == frozenset(["b", "d"])

    def test_bdi_rates(self):
        """Test only single-copy changes have rates."""
        R = bdi(3)[0].rate_matrix(self.values)
        assert R[0, 1] == 0.3
        assert R[1, 2] == 0.8
        assert R[2, 1] == 1.2
        assert R[1, 0] == 1.2
        assert R[0, 2] == 0.0
        assert R[3, 1] == 0.0
        np.testing.assert_allclose(R.sum(axis=1), 0.0, atol=1e-12)

    @pytest.mark.parametrize("factory", [parsimony, bdi, bd_no_zero])
    def test_stationary_frequencies(self, factory):
        """Test root frequencies are stationary under the rates."""
        R, f = factory(4)[0].evaluate(self.values)
        np.testing.assert_allclose(f.sum(), 1.0)
        np.testing.assert_allclose(f @ R, 0.0, atol=1e-10)

    def test_absorbing_loss(self):
        """Test losing the family is absorbing and the root is quasi-stationary."""
        m = bd(3)
        R, f = m[0].evaluate(self.values)
        np.testing.assert_array_equal(R[0], 0.0)
        assert m[0].freq_type is FrequencyType.QSTAT
        assert f[0] == 0.0
        np.testing.assert_allclose(f[1:].sum(), 1.0)
        block = f[1:] @ R[1:, 1:]
        np.testing.assert_allclose(block / block.sum(), f[1:], atol=1e-8)

    def test_gamma_and_rescale(self):
        """Test gamma categories and absolute rates pass through."""
        m = bdi(3, gamma_categories=4, rescale=False)
        assert len(m) == 4
        assert m.parameters == frozenset(["b", "d", "i", "g"])
        assert m.scale({**self.values, "g": 0.5}) == 1.0
        assert bd(2, gamma_categories=2).rescale

    def test_invalid_size(self):
        """Test state spaces need at least two sizes."""
        with pytest.raises(ModelError, match="at least 1"):
            bdi(0)
        with pytest.raises(ModelError, match="at least 2"):
            bd_no_zero(1)
