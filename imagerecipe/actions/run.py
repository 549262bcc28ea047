"""Run a shell snippet, by default chrooted into the root directory."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field

from imagerecipe.actions.base import Action, ActionConfigError, register_action
from imagerecipe.builds.chroot import host_architecture, interpreter_for, run_in_chroot
from imagerecipe.builds.runner import run_command

if TYPE_CHECKING:
    from imagerecipe.context import BuildContext


@register_action("run")
class RunAction(Action):
    """Run ``script`` with ``sh -c``.

    With ``chroot: false`` the script runs on the build machine instead, from
    the recipe directory, with ROOTDIR, ARTIFACTDIR and RECIPEDIR exported.
    """

    script: str = Field(description="Shell snippet to run")
    chroot: bool = Field(default=True)

    @property
    def display_name(self) -> str:
        return self.description or self.script

    def verify(self, context: BuildContext) -> None:
        if not self.script.strip():
            raise ActionConfigError("run: script must not be empty")
        if self.chroot:
            interpreter_for(
                context.architecture,
                host_architecture(context.settings.host_architecture),
            )

    def run(self, context: BuildContext) -> None:
        if self.chroot:
            run_in_chroot(context, self.display_name, "sh", "-c", self.script)
            return

        run_command(
            self.display_name,
            ["sh", "-c", self.script],
            cwd=context.recipe_directory,
            env={
                "ROOTDIR": str(context.root_directory),
                "ARTIFACTDIR": str(context.artifact_directory),
                "RECIPEDIR": str(context.recipe_directory),
            },
        )
