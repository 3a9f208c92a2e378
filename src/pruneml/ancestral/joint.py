"""
Choice of joint reconstruction method.
"""

from typing import Hashable, Mapping, Optional, Union

from ..config import EngineConfig
from ..data.alignment import Alignment
from ..data.tree import Tree
from ..exceptions import MultipleRatesError
from ..models.model import Model
from .joint_bb import JointBB
from .joint_dp import JointDP


def joint_reconstructor(
    models: Union[Model, Mapping[Hashable, Model]],
    alignment: Alignment,
    tree: Tree,
    config: Optional[EngineConfig] = None,
) -> Union[JointDP, JointBB]:
    """
    Fastest joint reconstructor that supports ``models``.

    Dynamic programming is exact only for a single rate category; mixtures
    fall back to branch and bound.
    """
    try:
        return JointDP(models, alignment, tree, config)
    except MultipleRatesError:
        return JointBB(models, alignment, tree, config)
