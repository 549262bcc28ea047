"""Sandbox providers.

This module handles:
- Detecting whether the process already runs inside the sandbox
- Collecting volumes and disk images requested by actions
- Launching fakemachine to re-invoke the build inside a throwaway VM

See the fakemachine documentation for the meaning of its -v/-i/-e flags.
"""

from __future__ import annotations

import logging
import os
import string
import subprocess
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from imagerecipe.config import ENV_PREFIX

if TYPE_CHECKING:
    from imagerecipe.config import Settings

logger = logging.getLogger(__name__)

# Set by fakemachine for processes running inside the VM
IN_MACHINE_ENV = "IN_FAKE_MACHINE"


class SandboxError(Exception):
    """Raised when the sandbox cannot be launched."""

    def __init__(self, message: str, code: str = "sandbox_error") -> None:
        super().__init__(message)
        self.code = code


class Machine(Protocol):
    """Sandbox the orchestrator launches and re-enters."""

    def in_machine(self) -> bool: ...

    def add_volume(self, path: Path) -> None: ...

    def create_image(self, path: Path, size: int) -> str | None:
        """Request a disk image; returns its device path inside the sandbox."""
        ...

    def run(self, args: list[str]) -> int:
        """Re-invoke the build command inside the sandbox with args."""
        ...


def worker_command() -> list[str]:
    """Command line re-invoking the build inside the sandbox."""
    return [sys.executable, "-m", "imagerecipe", "build"]


class FakeMachine:
    """Sandbox backed by the fakemachine CLI.

    Attributes:
        binary: fakemachine executable.
        memory: VM memory in MiB, or None for the default.
        cpus: VM CPU count, or None for the default.
        volumes: Host paths shared with the VM.
        images: Disk images (path, size in bytes) attached to the VM.
    """

    def __init__(
        self,
        binary: str = "fakemachine",
        memory: int | None = None,
        cpus: int | None = None,
    ) -> None:
        self.binary = binary
        self.memory = memory
        self.cpus = cpus
        self.volumes: list[Path] = []
        self.images: list[tuple[Path, int]] = []

    def in_machine(self) -> bool:
        return IN_MACHINE_ENV in os.environ

    def add_volume(self, path: Path) -> None:
        if path not in self.volumes:
            self.volumes.append(path)

    def create_image(self, path: Path, size: int) -> str | None:
        if len(self.images) >= len(string.ascii_lowercase):
            raise SandboxError("Too many images attached to the sandbox")
        device = f"/dev/vd{string.ascii_lowercase[len(self.images)]}"
        self.images.append((path, size))
        return device

    def _forwarded_environment(self) -> list[str]:
        args: list[str] = []
        for key in sorted(os.environ):
            if key.startswith(ENV_PREFIX):
                args += ["-e", f"{key}:{os.environ[key]}"]
        return args

    def command(self, args: list[str]) -> list[str]:
        """Compose the fakemachine command line for args."""
        cmd = [self.binary]
        for volume in self.volumes:
            cmd += ["-v", str(volume)]
        for path, size in self.images:
            cmd += ["-i", f"{path}:{size}"]
        if self.memory is not None:
            cmd += ["-m", str(self.memory)]
        if self.cpus is not None:
            cmd += ["-c", str(self.cpus)]
        cmd += self._forwarded_environment()
        cmd += worker_command()
        cmd += args
        return cmd

    def run(self, args: list[str]) -> int:
        # The worker needs the interpreter environment and this package
        self.add_volume(Path(sys.prefix))
        self.add_volume(Path(__file__).resolve().parents[2])

        cmd = self.command(args)
        logger.info("Launching sandbox: %s", " ".join(cmd))
        try:
            result = subprocess.run(cmd, check=False)
        except OSError as e:
            raise SandboxError(f"Failed to launch {self.binary}: {e}") from e
        logger.info("Sandbox exited with code %d", result.returncode)
        return result.returncode


class NullMachine:
    """No sandbox: every phase runs directly in this process."""

    def in_machine(self) -> bool:
        return True

    def add_volume(self, path: Path) -> None:
        logger.debug("No sandbox, volume %s is used in place", path)

    def create_image(self, path: Path, size: int) -> str | None:
        return None

    def run(self, args: list[str]) -> int:
        raise SandboxError("No sandbox configured to run in")


def get_machine(settings: Settings) -> Machine:
    """Return the sandbox provider selected in settings."""
    if settings.sandbox == "none":
        return NullMachine()
    return FakeMachine(
        binary=settings.fakemachine_binary,
        memory=settings.sandbox_memory,
        cpus=settings.sandbox_cpus,
    )


__all__ = [
    "IN_MACHINE_ENV",
    "FakeMachine",
    "Machine",
    "NullMachine",
    "SandboxError",
    "get_machine",
    "worker_command",
]
