"""Prepare a disk image and deploy the root directory onto it.

setup-image creates a filesystem on a fresh disk image and mounts it;
deploy-image copies the finished root directory onto that mount. Inside
fakemachine the image is attached by the host and handed over as
``--internal-image``; without a sandbox a loop device is set up here.
"""

from __future__ import annotations

import logging
import re
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from pydantic import Field, PrivateAttr

from imagerecipe.actions.base import (
    Action,
    ActionConfigError,
    ActionRunError,
    register_action,
)
from imagerecipe.builds.runner import CommandExecutionError, run_command
from imagerecipe.store.deploy import write_fstab

if TYPE_CHECKING:
    from imagerecipe.context import BuildContext
    from imagerecipe.sandbox.machine import Machine

logger = logging.getLogger(__name__)

Filesystem = Literal["ext2", "ext3", "ext4", "xfs", "btrfs", "vfat"]

_SIZE_PATTERN = re.compile(r"^\s*(\d+)\s*([kmgt]?)(?:i?b)?\s*$", re.IGNORECASE)
_SIZE_UNITS = {"": 1, "k": 1 << 10, "m": 1 << 20, "g": 1 << 30, "t": 1 << 40}

# Longest filesystem label each mkfs accepts
LABEL_MAX_LENGTH: dict[str, int] = {
    "ext2": 16,
    "ext3": 16,
    "ext4": 16,
    "xfs": 12,
    "btrfs": 255,
    "vfat": 11,
}

# Options forcing mkfs to use a device without asking
MKFS_FORCE_FLAGS: dict[str, list[str]] = {
    "ext2": ["-F"],
    "ext3": ["-F"],
    "ext4": ["-F"],
    "xfs": ["-f"],
    "btrfs": ["-f"],
    "vfat": [],
}


def parse_size(value: str) -> int:
    """Parse a size such as '4G', '512MiB' or '1048576' into bytes.

    Raises:
        ValueError: If the size is malformed or zero.
    """
    match = _SIZE_PATTERN.match(value)
    if not match:
        raise ValueError(f"Invalid size: '{value}'")
    size = int(match.group(1)) * _SIZE_UNITS[match.group(2).lower()]
    if size <= 0:
        raise ValueError(f"Size must be positive: '{value}'")
    return size


def mkfs_command(filesystem: str, label: str, device: str) -> list[str]:
    """Compose the mkfs invocation for filesystem."""
    label_flag = "-n" if filesystem == "vfat" else "-L"
    return [
        f"mkfs.{filesystem}",
        *MKFS_FORCE_FLAGS[filesystem],
        label_flag,
        label,
        device,
    ]


def _attach_loop_device(image: Path) -> str:
    try:
        result = subprocess.run(
            ["losetup", "--find", "--show", str(image)],
            capture_output=True,
            text=True,
            check=True,
        )
    except subprocess.CalledProcessError as e:
        raise CommandExecutionError(
            f"losetup failed: {e.stderr.strip()}",
            label="losetup",
            exit_code=e.returncode,
        ) from e
    except OSError as e:
        raise CommandExecutionError(
            f"Failed to run losetup: {e}",
            label="losetup",
            code="execution_error",
        ) from e
    return result.stdout.strip()


@register_action("setup-image")
class SetupImageAction(Action):
    """Create, format and mount the target disk image.

    Attributes:
        imagename: Image file in the artifact directory.
        imagesize: Image size, e.g. '4G'.
        filesystem: Filesystem created on the image.
        label: Filesystem label, also used for fstab and root=.
    """

    imagename: str = Field(min_length=1)
    imagesize: str = Field(min_length=1)
    filesystem: Filesystem = Field(default="ext4")
    label: str = Field(default="root", min_length=1)

    _loop_device: str | None = PrivateAttr(default=None)
    _mount_point: Path | None = PrivateAttr(default=None)

    def image_path(self, context: BuildContext) -> Path:
        return context.artifact_directory / self.imagename

    def verify(self, context: BuildContext) -> None:
        try:
            parse_size(self.imagesize)
        except ValueError as e:
            raise ActionConfigError(f"setup-image: {e}") from None
        limit = LABEL_MAX_LENGTH[self.filesystem]
        if len(self.label) > limit:
            raise ActionConfigError(
                f"setup-image: {self.filesystem} labels are at most {limit} "
                f"characters, got '{self.label}'"
            )

    def pre_machine(
        self, context: BuildContext, machine: Machine, args: list[str]
    ) -> None:
        device = machine.create_image(
            self.image_path(context), parse_size(self.imagesize)
        )
        if device is not None:
            args += ["--internal-image", device]

    def _prepare_device(self, context: BuildContext) -> str:
        if context.image is not None:
            return context.image

        image = self.image_path(context)
        logger.info("Creating %s (%s)", image, self.imagesize)
        with image.open("wb") as f:
            f.truncate(parse_size(self.imagesize))
        self._loop_device = _attach_loop_device(image)
        return self._loop_device

    def run(self, context: BuildContext) -> None:
        device = self._prepare_device(context)
        mount_point = context.settings.mount_dir
        try:
            run_command("mkfs", mkfs_command(self.filesystem, self.label, device))
            mount_point.mkdir(parents=True, exist_ok=True)
            run_command("mount", ["mount", device, mount_point])
        except BaseException:
            # The orchestrator only cleans up actions whose run completed
            self._release(context)
            raise
        self._mount_point = mount_point

        context.image_mount_directory = mount_point
        context.image_fstab.write(
            f"LABEL={self.label}\t/\t{self.filesystem}\tdefaults\t0\t1\n"
        )
        context.image_kernel_root = f"root=LABEL={self.label}"

    def _release(self, context: BuildContext) -> None:
        try:
            self.cleanup(context)
        except CommandExecutionError as e:
            logger.warning("Failed to release %s: %s", self.imagename, e)

    def cleanup(self, context: BuildContext) -> None:
        if self._mount_point is not None:
            run_command("umount", ["umount", self._mount_point])
            self._mount_point = None
        if self._loop_device is not None:
            run_command("losetup", ["losetup", "-d", self._loop_device])
            self._loop_device = None


def copy_root_to_image(context: BuildContext) -> Path:
    """Copy the root directory onto the image mount and make it the root.

    Returns:
        The image mount point.

    Raises:
        ActionRunError: If no image has been set up.
    """
    mount_point = context.image_mount_directory
    if mount_point is None:
        raise ActionRunError("No image mounted; add a setup-image action first")

    if context.root_directory.resolve() != mount_point.resolve():
        run_command(
            "Deploy to image",
            ["cp", "-a", f"{context.root_directory}/.", mount_point],
        )
        context.root_directory = mount_point
    return mount_point


@register_action("deploy-image")
class DeployImageAction(Action):
    """Copy the root directory onto the mounted image."""

    setup_fstab: bool = Field(default=True)

    def run(self, context: BuildContext) -> None:
        mount_point = copy_root_to_image(context)
        fstab = context.image_fstab.getvalue()
        if self.setup_fstab and fstab:
            write_fstab(mount_point, fstab)
