"""
Unit tests for engine configuration.
"""

import dataclasses

import pytest

from pruneml.config import DEFAULT_CONFIG, DistributionMethod, EngineConfig, ExpMethod, RealType


class TestEngineConfig:
    """Test EngineConfig defaults and validation."""

    def test_defaults(self):
        """Test the default settings."""
        assert DEFAULT_CONFIG.exp_method is ExpMethod.TAYLOR
        assert DEFAULT_CONFIG.real_type is RealType.STANDARD
        assert DEFAULT_CONFIG.distribution_method is DistributionMethod.EIGEN
        assert DEFAULT_CONFIG.keep_node_likelihoods
        assert DEFAULT_CONFIG.n_threads >= 1

    def test_strings_converted(self):
        """Test plain strings are accepted for the enum fields."""
        config = EngineConfig(exp_method="eigen", real_type="scaled", distribution_method="repeat")
        assert config.exp_method is ExpMethod.EIGEN
        assert config.real_type is RealType.SCALED
        assert config.distribution_method is DistributionMethod.REPEAT

    @pytest.mark.parametrize(
        "changes, match",
        [
            ({"n_threads": 0}, "n_threads"),
            ({"force_squarings": -1}, "force_squarings"),
            ({"taylor_terms": 1}, "taylor_terms"),
            ({"parallel_threshold": 0}, "parallel_threshold"),
        ],
    )
    def test_invalid_numbers(self, changes, match):
        """Test out-of-range settings raise ValueError."""
        with pytest.raises(ValueError, match=match):
            EngineConfig(**changes)

    def test_invalid_enum(self):
        """Test unknown method names raise ValueError."""
        with pytest.raises(ValueError):
            EngineConfig(exp_method="pade")

    def test_frozen(self):
        """Test settings cannot be changed in place."""
        with pytest.raises(dataclasses.FrozenInstanceError):
            DEFAULT_CONFIG.n_threads = 3

    def test_replace(self):
        """Test replace returns a validated copy."""
        config = EngineConfig(n_threads=1)
        changed = config.replace(real_type="scaled")
        assert changed.real_type is RealType.SCALED
        assert config.real_type is RealType.STANDARD
        assert changed.n_threads == 1
        with pytest.raises(ValueError):
            config.replace(n_threads=-2)
