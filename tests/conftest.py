"""
Pytest configuration and shared fixtures.
"""

import pytest

from pruneml.config import EngineConfig
from pruneml.data.alignment import Alignment
from pruneml.data.tree import Tree
from pruneml.models.nucleotide import hky, jukes_cantor


@pytest.fixture
def star_tree():
    """Three leaves joined directly at the root."""
    return Tree.from_edges([("r", "a", 0.1), ("r", "b", 0.2), ("r", "c", 0.3)])


@pytest.fixture
def four_taxon_tree():
    """((a,b)n1,(c,d)n2)r with distinct branch lengths."""
    return Tree.from_edges(
        [
            ("r", "n1", 0.05),
            ("r", "n2", 0.15),
            ("n1", "a", 0.1),
            ("n1", "b", 0.2),
            ("n2", "c", 0.3),
            ("n2", "d", 0.12),
        ]
    )


@pytest.fixture
def four_taxon_alignment():
    """Eight columns over a, b, c, d with two repeated columns."""
    return Alignment.from_sequences(
        {
            "a": "ACGTAACC",
            "b": "ACGAAACC",
            "c": "ATGTGGCC",
            "d": "GTGTGGCC",
        }
    )


@pytest.fixture
def jc():
    return jukes_cantor()


@pytest.fixture
def jc_gamma():
    """Jukes-Cantor with four discrete gamma categories."""
    return jukes_cantor(gamma_categories=4)


@pytest.fixture
def hky_model():
    return hky()


@pytest.fixture
def hky_values():
    """Unequal frequencies and a transition bias."""
    return {"k": 3.0, "pT": 0.1, "pC": 0.2, "pA": 0.3, "pG": 0.4}


@pytest.fixture
def serial_config():
    """Engine settings with a single worker thread."""
    return EngineConfig(n_threads=1)


@pytest.fixture
def scaled_config():
    """Engine settings using the underflow-free scalar type."""
    return EngineConfig(real_type="scaled", n_threads=2)
