"""Action base class and registry.

Every recipe step is an Action: a pydantic model holding the step's fields
plus five lifecycle hooks, all no-ops by default:

- verify(): on the host, before any sandbox exists
- pre_machine(): on the host, to request volumes/images and forward args
- run(): inside the sandbox, the step's actual effect
- cleanup(): inside the sandbox, after every run() completed
- post_machine(): on the host, after the sandbox exited

Concrete actions register under one or more discriminator strings; the
``action`` key of a recipe record selects the class at parse time.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from imagerecipe.context import BuildContext
    from imagerecipe.sandbox.machine import Machine

logger = logging.getLogger(__name__)


class UnknownActionError(Exception):
    """Raised when a recipe record names no registered action."""

    def __init__(self, kind: object, code: str = "unknown_action") -> None:
        super().__init__(f"Unknown action: {kind!r}")
        self.kind = kind
        self.code = code


class ActionConfigError(Exception):
    """Raised by verify() when an action is misconfigured."""

    def __init__(self, message: str, code: str = "invalid_action") -> None:
        super().__init__(message)
        self.code = code


class ActionRunError(Exception):
    """Raised when an action cannot perform its effect."""

    def __init__(self, message: str, code: str = "action_failed") -> None:
        super().__init__(message)
        self.code = code


def _kebab(name: str) -> str:
    return name.replace("_", "-")


class Action(BaseModel):
    """Base class of all recipe actions.

    Attributes:
        action: Discriminator the action was selected by.
        description: Optional human readable description for logs.
    """

    model_config = ConfigDict(
        extra="forbid",
        alias_generator=_kebab,
        populate_by_name=True,
    )

    action: str = Field(description="Action discriminator")
    description: str | None = Field(default=None, description="Description")

    @property
    def display_name(self) -> str:
        """Name used for this action in logs."""
        return self.description or self.action

    def verify(self, context: BuildContext) -> None:
        """Validate fields against the context; must not change state."""

    def pre_machine(
        self, context: BuildContext, machine: Machine, args: list[str]
    ) -> None:
        """Register sandbox requirements and forwarded arguments."""

    def run(self, context: BuildContext) -> None:
        """Perform the action inside the sandbox."""

    def cleanup(self, context: BuildContext) -> None:
        """Tear down what run() set up."""

    def post_machine(self, context: BuildContext) -> None:
        """Host side bookkeeping after the sandbox exited."""


ActionT = TypeVar("ActionT", bound=type[Action])

# discriminator -> action class
ACTION_REGISTRY: dict[str, type[Action]] = {}


def register_action(*kinds: str) -> Callable[[ActionT], ActionT]:
    """Class decorator registering an action under discriminator strings."""

    def decorator(cls: ActionT) -> ActionT:
        for kind in kinds:
            if kind in ACTION_REGISTRY:
                raise ValueError(f"Action {kind!r} is already registered")
            ACTION_REGISTRY[kind] = cls
        return cls

    return decorator


def registered_actions() -> list[str]:
    """Sorted list of known discriminators."""
    return sorted(ACTION_REGISTRY)


def action_from_dict(data: dict[str, Any]) -> Action:
    """Build the concrete action for a recipe record.

    Raises:
        UnknownActionError: If the discriminator is missing or unknown.
        pydantic.ValidationError: If the fields do not match the action.
    """
    kind = data.get("action")
    if not isinstance(kind, str) or kind not in ACTION_REGISTRY:
        raise UnknownActionError(kind)
    return ACTION_REGISTRY[kind].model_validate(data)


__all__ = [
    "ACTION_REGISTRY",
    "Action",
    "ActionConfigError",
    "ActionRunError",
    "UnknownActionError",
    "action_from_dict",
    "register_action",
    "registered_actions",
]
