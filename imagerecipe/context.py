"""Build context shared by every action of a recipe run.

The context is created once at startup and handed to each lifecycle phase
in turn. Actions mutate it as the pipeline advances, e.g. deploy-image
promotes the image mount point to be the new root directory.
"""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from imagerecipe.config import Settings, get_settings
from imagerecipe.store.gobject import GObjectStore

if TYPE_CHECKING:
    from imagerecipe.store.base import StoreBackend


@dataclass
class BuildContext:
    """Mutable state threaded through the action pipeline.

    Attributes:
        architecture: Target CPU architecture (Debian naming).
        root_directory: Working tree the actions populate.
        artifact_directory: Location of inputs and outputs.
        recipe_directory: Directory holding the recipe file.
        scratch_directory: Sandbox-local scratch space.
        image: In-machine path of a prepared image device, if any.
        image_mount_directory: Mount point of the image once set up.
        image_fstab: fstab lines collected while preparing the image.
        image_kernel_root: Kernel root= argument for the prepared image.
        store: Backend used to open OSTree repositories and sysroots.
        settings: Effective configuration.
    """

    architecture: str
    root_directory: Path
    artifact_directory: Path
    recipe_directory: Path
    scratch_directory: Path
    image: str | None = None
    image_mount_directory: Path | None = None
    image_fstab: io.StringIO = field(default_factory=io.StringIO)
    image_kernel_root: str | None = None
    store: StoreBackend = field(default_factory=GObjectStore)
    settings: Settings = field(default_factory=get_settings)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        architecture: str,
        artifact_directory: Path,
        recipe_directory: Path,
        image: str | None = None,
    ) -> BuildContext:
        """Create a context rooted in the configured scratch directory."""
        return cls(
            architecture=architecture,
            root_directory=settings.root_dir,
            artifact_directory=artifact_directory,
            recipe_directory=recipe_directory,
            scratch_directory=settings.scratch_dir,
            image=image,
            settings=settings,
        )


__all__ = ["BuildContext"]
