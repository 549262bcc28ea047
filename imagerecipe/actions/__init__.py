"""Recipe actions.

Importing this package registers every built-in action kind.
"""

from imagerecipe.actions.base import (
    ACTION_REGISTRY,
    Action,
    ActionConfigError,
    ActionRunError,
    UnknownActionError,
    action_from_dict,
    register_action,
    registered_actions,
)
from imagerecipe.actions.bootstrap import BootstrapAction
from imagerecipe.actions.image import DeployImageAction, SetupImageAction
from imagerecipe.actions.ostree import OstreeCommitAction, OstreeDeployAction
from imagerecipe.actions.overlay import OverlayAction
from imagerecipe.actions.pack import PackAction
from imagerecipe.actions.run import RunAction
from imagerecipe.actions.unpack import UnpackAction

__all__ = [
    "ACTION_REGISTRY",
    "Action",
    "ActionConfigError",
    "ActionRunError",
    "BootstrapAction",
    "DeployImageAction",
    "OstreeCommitAction",
    "OstreeDeployAction",
    "OverlayAction",
    "PackAction",
    "RunAction",
    "SetupImageAction",
    "UnknownActionError",
    "UnpackAction",
    "action_from_dict",
    "register_action",
    "registered_actions",
]
