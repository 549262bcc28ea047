"""Bootstrap a minimal Debian-style root filesystem with debootstrap."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field

from imagerecipe.actions.base import Action, register_action
from imagerecipe.builds.chroot import (
    host_architecture,
    interpreter_for,
    needs_interpreter,
    run_in_chroot,
)
from imagerecipe.builds.runner import run_command

if TYPE_CHECKING:
    from imagerecipe.context import BuildContext

DEFAULT_MIRROR = "http://deb.debian.org/debian"


@register_action("bootstrap", "debootstrap")
class BootstrapAction(Action):
    """Install ``suite`` from ``mirror`` into the root directory.

    Foreign architectures are bootstrapped in two stages: the first unpacks
    packages on the host, the second configures them inside the chroot.
    """

    suite: str = Field(min_length=1)
    mirror: str = Field(default=DEFAULT_MIRROR)
    variant: str = Field(default="minbase")
    components: list[str] = Field(default_factory=lambda: ["main"], min_length=1)

    def verify(self, context: BuildContext) -> None:
        interpreter_for(
            context.architecture,
            host_architecture(context.settings.host_architecture),
        )

    def command(self, context: BuildContext, foreign: bool) -> list[str]:
        cmd = [
            "debootstrap",
            f"--arch={context.architecture}",
            f"--components={','.join(self.components)}",
        ]
        if self.variant:
            cmd.append(f"--variant={self.variant}")
        if foreign:
            cmd.append("--foreign")
        cmd += [self.suite, str(context.root_directory), self.mirror]
        return cmd

    def run(self, context: BuildContext) -> None:
        foreign = needs_interpreter(context)
        context.root_directory.mkdir(parents=True, exist_ok=True)
        run_command("debootstrap", self.command(context, foreign))
        if foreign:
            run_in_chroot(
                context,
                "debootstrap (second stage)",
                "/debootstrap/debootstrap",
                "--second-stage",
            )
