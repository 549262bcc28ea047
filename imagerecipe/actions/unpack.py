"""Unpack a tarball from the artifact directory into the root directory."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import Field

from imagerecipe.actions.base import Action, ActionConfigError, register_action
from imagerecipe.builds.runner import run_command
from imagerecipe.types import TAR_COMPRESSION_FLAGS, Compression

if TYPE_CHECKING:
    from imagerecipe.context import BuildContext


@register_action("unpack")
class UnpackAction(Action):
    """Extract ``file`` (relative to the artifact directory) into the root.

    Without ``compression`` tar detects the format itself.
    """

    file: str = Field(min_length=1, description="Archive in the artifact directory")
    compression: Compression | None = Field(default=None)

    def archive_path(self, context: BuildContext) -> Path:
        return context.artifact_directory / self.file

    def verify(self, context: BuildContext) -> None:
        archive = self.archive_path(context)
        if not archive.is_file():
            raise ActionConfigError(f"unpack: archive not found: {archive}")

    def run(self, context: BuildContext) -> None:
        context.root_directory.mkdir(parents=True, exist_ok=True)
        flags = TAR_COMPRESSION_FLAGS[self.compression] if self.compression else []
        run_command(
            "unpack",
            [
                "tar",
                "-x",
                *flags,
                "-f",
                self.archive_path(context),
                "-C",
                context.root_directory,
            ],
        )
