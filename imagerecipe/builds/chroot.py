"""Run commands inside a target root filesystem.

This module handles:
- Mapping target architectures to static QEMU interpreters
- Injecting the interpreter into the target tree for foreign roots
- Executing commands with systemd-nspawn or chroot

The interpreter is copied to the same absolute path it has on the host so
binfmt_misc finds it from inside the chroot. It is removed again afterwards,
unless the root already shipped it, in which case it is used as is.
"""

from __future__ import annotations

import logging
import os
import platform
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from imagerecipe.builds.overlay import copy_file
from imagerecipe.builds.runner import run_command
from imagerecipe.types import CommandResult

if TYPE_CHECKING:
    from imagerecipe.context import BuildContext

logger = logging.getLogger(__name__)

# Static interpreter per target architecture (Debian naming)
QEMU_INTERPRETERS: dict[str, str] = {
    "armhf": "/usr/bin/qemu-arm-static",
    "armel": "/usr/bin/qemu-arm-static",
    "arm": "/usr/bin/qemu-arm-static",
    "arm64": "/usr/bin/qemu-aarch64-static",
    "amd64": "/usr/bin/qemu-x86_64-static",
    "i386": "/usr/bin/qemu-i386-static",
}

# platform.machine() -> Debian architecture
HOST_ARCHITECTURES: dict[str, str] = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "i686": "i386",
    "i386": "i386",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "armhf",
    "armv6l": "armel",
}


class UnsupportedArchitectureError(Exception):
    """Raised when no interpreter is known for a target architecture."""

    def __init__(
        self, architecture: str, code: str = "unsupported_architecture"
    ) -> None:
        super().__init__(f"Don't know qemu for architecture {architecture}")
        self.architecture = architecture
        self.code = code


@dataclass(frozen=True)
class QemuBridge:
    """Interpreter injected into a target tree.

    Attributes:
        source: Interpreter path on the host.
        target: Path of the copy inside the target tree.
    """

    source: Path
    target: Path


def host_architecture(override: str | None = None) -> str:
    """Return the host architecture in Debian naming."""
    if override:
        return override
    machine = platform.machine()
    return HOST_ARCHITECTURES.get(machine, machine)


def interpreter_for(architecture: str, host: str) -> Path | None:
    """Resolve the interpreter needed to run architecture code on host.

    Returns:
        Interpreter path, or None when the architectures match.

    Raises:
        UnsupportedArchitectureError: If architecture is not in the table.
    """
    if architecture not in QEMU_INTERPRETERS:
        raise UnsupportedArchitectureError(architecture)
    if architecture == host:
        return None
    return Path(QEMU_INTERPRETERS[architecture])


def needs_interpreter(context: BuildContext) -> bool:
    """Whether code for the context's architecture needs translation."""
    host = host_architecture(context.settings.host_architecture)
    return interpreter_for(context.architecture, host) is not None


@contextmanager
def qemu_bridge(context: BuildContext) -> Iterator[QemuBridge | None]:
    """Inject the interpreter for the target root for the duration of a block.

    Yields:
        The QemuBridge, or None if no interpreter is needed.

    Raises:
        UnsupportedArchitectureError: Before anything is copied.
        OverlayError: If the interpreter cannot be copied.
    """
    host = host_architecture(context.settings.host_architecture)
    interpreter = interpreter_for(context.architecture, host)
    if interpreter is None:
        yield None
        return

    bridge = QemuBridge(
        source=interpreter,
        target=context.root_directory / interpreter.relative_to("/"),
    )
    if os.path.lexists(bridge.target):
        logger.debug("Using %s shipped in the target root", bridge.target)
        yield bridge
        return

    logger.debug("Injecting %s into %s", bridge.source, bridge.target)
    try:
        bridge.target.parent.mkdir(parents=True, exist_ok=True)
        copy_file(bridge.source, bridge.target)
        yield bridge
    finally:
        try:
            bridge.target.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Failed to remove %s: %s", bridge.target, e)


def chroot_command(context: BuildContext, command: str, *args: str) -> list[str]:
    """Compose the isolation command line for the configured backend."""
    root = str(context.root_directory)
    if context.settings.chroot_backend == "chroot":
        return ["chroot", root, command, *args]
    return ["systemd-nspawn", "--quiet", "-D", root, command, *args]


def run_in_chroot(
    context: BuildContext, label: str, command: str, *args: str
) -> CommandResult:
    """Run command with the context's root directory as filesystem root.

    Raises:
        UnsupportedArchitectureError: If the target cannot be executed.
        CommandExecutionError: If the command exits non-zero.
    """
    with qemu_bridge(context):
        return run_command(label, chroot_command(context, command, *args))


__all__ = [
    "HOST_ARCHITECTURES",
    "QEMU_INTERPRETERS",
    "QemuBridge",
    "UnsupportedArchitectureError",
    "chroot_command",
    "host_architecture",
    "interpreter_for",
    "needs_interpreter",
    "qemu_bridge",
    "run_in_chroot",
]
