"""Commit the root directory to OSTree and deploy it into the image."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from pydantic import Field

from imagerecipe.actions.base import Action, register_action
from imagerecipe.actions.image import copy_root_to_image
from imagerecipe.store.deploy import (
    DeployRequest,
    commit_tree,
    compose_kernel_args,
    deploy_revision,
)

if TYPE_CHECKING:
    from imagerecipe.context import BuildContext

logger = logging.getLogger(__name__)


def _clear_directory(directory: Path) -> None:
    if not directory.is_dir():
        return
    for child in directory.iterdir():
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink()


@register_action("ostree-commit")
class OstreeCommitAction(Action):
    """Commit the root directory to ``branch`` of ``repository``.

    The repository lives in the artifact directory and is created if it
    does not exist yet. Device nodes in /dev cannot be committed, so the
    directory is emptied first.
    """

    repository: str = Field(min_length=1)
    branch: str = Field(min_length=1)
    subject: str = Field(default="")
    mode: Literal["archive", "bare", "bare-user", "bare-user-only"] = Field(
        default="archive", description="Mode used when creating the repository"
    )

    def run(self, context: BuildContext) -> None:
        _clear_directory(context.root_directory / "dev")
        commit_tree(
            context.store,
            context.artifact_directory / self.repository,
            context.root_directory,
            self.branch,
            self.subject,
            create_mode=self.mode,
        )


@register_action("ostree-deploy")
class OstreeDeployAction(Action):
    """Deploy ``branch`` from ``repository`` into the mounted image.

    The current root directory is first copied onto the image so that it can
    seed e.g. bootloader configuration.

    Attributes:
        repository: Repository in the artifact directory to pull from.
        remote_repository: URL recorded as the image's update remote.
        branch: Branch to deploy.
        os_name: OS name of the deployment (recipe key ``os``).
        setup_fstab: Write the prepared fstab into the deployment.
        setup_kernel_cmdline: Pass the image root= argument to the kernel.
        append_kernel_cmdline: Extra kernel arguments.
    """

    repository: str = Field(min_length=1)
    remote_repository: str = Field(min_length=1)
    branch: str = Field(min_length=1)
    os_name: str = Field(alias="os", min_length=1)
    setup_fstab: bool = Field(default=True)
    setup_kernel_cmdline: bool = Field(default=True)
    append_kernel_cmdline: str | None = Field(default=None)
    remote_name: str = Field(default="origin", min_length=1)
    # TODO: default to True once commits are signed by ostree-commit
    gpg_verify: bool = Field(default=False)

    def request(self, context: BuildContext) -> DeployRequest:
        """Deploy parameters for the current context."""
        source = (context.artifact_directory / self.repository).resolve()
        return DeployRequest(
            os_name=self.os_name,
            branch=self.branch,
            source_url=f"file://{source}",
            remote_url=self.remote_repository,
            remote_name=self.remote_name,
            gpg_verify=self.gpg_verify,
            kernel_args=compose_kernel_args(
                context.image_kernel_root,
                self.setup_kernel_cmdline,
                self.append_kernel_cmdline,
            ),
            fstab=context.image_fstab.getvalue() if self.setup_fstab else None,
        )

    def run(self, context: BuildContext) -> None:
        mount_point = copy_root_to_image(context)
        deploy_revision(context.store, mount_point, self.request(context))
