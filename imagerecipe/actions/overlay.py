"""Overlay a directory from the recipe onto the root directory."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import Field

from imagerecipe.actions.base import Action, ActionConfigError, register_action
from imagerecipe.builds.overlay import copy_tree

if TYPE_CHECKING:
    from imagerecipe.context import BuildContext


@register_action("overlay")
class OverlayAction(Action):
    """Copy ``source`` (relative to the recipe) to ``destination`` in the root.

    Files already present in the root are replaced; directories are kept.
    """

    source: str = Field(min_length=1, description="Directory relative to recipe")
    destination: str = Field(default="/", description="Absolute path in the root")

    def source_path(self, context: BuildContext) -> Path:
        return context.recipe_directory / self.source

    def verify(self, context: BuildContext) -> None:
        source = self.source_path(context)
        if not source.is_dir():
            raise ActionConfigError(f"overlay: source is not a directory: {source}")
        if not self.destination.startswith("/"):
            raise ActionConfigError(
                f"overlay: destination must be absolute, got '{self.destination}'"
            )

    def run(self, context: BuildContext) -> None:
        target = context.root_directory / self.destination.lstrip("/")
        target.parent.mkdir(parents=True, exist_ok=True)
        copy_tree(self.source_path(context), target)
