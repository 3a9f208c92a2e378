"""
Trees and alignments held in memory.
"""

from pruneml.data.alignment import Alignment, Ambiguous, Site, UniqueSite
from pruneml.data.tree import Branch, Tree

__all__ = [
    "Alignment",
    "Ambiguous",
    "Branch",
    "Site",
    "Tree",
    "UniqueSite",
]
