"""
Ancestral state reconstruction.

- **Joint**: the single most likely assignment of states to all internal
  nodes, by dynamic programming (one rate category) or branch and bound
  (mixtures)
- **Marginal**: the posterior state distribution of each internal node
- **Constraints**: restrict the states internal nodes may take
"""

from pruneml.ancestral.constraints import FixedConstraints, NoConstraints, SiteConstraints
from pruneml.ancestral.joint import joint_reconstructor
from pruneml.ancestral.joint_bb import JointBB
from pruneml.ancestral.joint_dp import JointDP
from pruneml.ancestral.marginal import Marginal, MarginalResult, MarginalSiteResult

__all__ = [
    "FixedConstraints",
    "JointBB",
    "JointDP",
    "Marginal",
    "MarginalResult",
    "MarginalSiteResult",
    "NoConstraints",
    "SiteConstraints",
    "joint_reconstructor",
]
