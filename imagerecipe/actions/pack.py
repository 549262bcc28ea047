"""Pack the root directory into a tarball in the artifact directory."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field

from imagerecipe.actions.base import Action, register_action
from imagerecipe.builds.runner import run_command
from imagerecipe.types import TAR_COMPRESSION_FLAGS, Compression

if TYPE_CHECKING:
    from imagerecipe.context import BuildContext


@register_action("pack")
class PackAction(Action):
    file: str = Field(min_length=1, description="Archive to create")
    compression: Compression = Field(default=Compression.GZ)

    def run(self, context: BuildContext) -> None:
        output = context.artifact_directory / self.file
        run_command(
            "pack",
            [
                "tar",
                "-c",
                *TAR_COMPRESSION_FLAGS[self.compression],
                "-f",
                output,
                "-C",
                context.root_directory,
                ".",
            ],
        )
