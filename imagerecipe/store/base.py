"""Backend-neutral interfaces to an OSTree repository and sysroot."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol


class StoreError(Exception):
    """Raised when a content store operation fails."""

    def __init__(self, message: str, code: str = "store_error") -> None:
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class Deployment:
    """A deployed revision inside a sysroot.

    Attributes:
        os_name: Operating system name the deployment belongs to.
        checksum: Content hash of the deployed commit.
        serial: Deploy serial distinguishing deployments of one commit.
        handle: Backend object for the deployment, if any.
    """

    os_name: str
    checksum: str
    serial: int
    handle: Any = field(default=None, compare=False, repr=False)

    def relative_path(self) -> Path:
        """Deployment directory relative to the sysroot."""
        return (
            Path("ostree/deploy")
            / self.os_name
            / "deploy"
            / f"{self.checksum}.{self.serial}"
        )

    def directory(self, sysroot: Path) -> Path:
        """Deployment directory below sysroot."""
        return sysroot / self.relative_path()


class Repository(Protocol):
    """An opened OSTree repository."""

    def prepare_transaction(self) -> None: ...

    def write_commit(self, tree: Path, branch: str, subject: str) -> str:
        """Commit tree and point branch at it within the open transaction."""
        ...

    def commit_transaction(self) -> None: ...

    def abort_transaction(self) -> None: ...

    def remote_add(self, name: str, url: str, gpg_verify: bool = False) -> None:
        """Register a remote; an existing remote of that name is kept."""
        ...

    def pull(self, source: str, remote_name: str, refs: list[str]) -> None: ...

    def resolve_rev(self, ref: str) -> str | None: ...


class Sysroot(Protocol):
    """An OSTree sysroot, i.e. the root of a bootable image."""

    def initialize_fs(self) -> None: ...

    def init_osname(self, os_name: str) -> None: ...

    def load(self) -> None: ...

    def deploy_tree(
        self,
        os_name: str,
        revision: str,
        origin_refspec: str,
        kernel_args: list[str],
    ) -> Deployment: ...

    def simple_write_deployment(self, os_name: str, deployment: Deployment) -> None:
        """Make deployment the active one for os_name."""
        ...


class StoreBackend(Protocol):
    """Factory for repositories and sysroots."""

    def open_repository(
        self, path: Path, create_mode: str | None = None
    ) -> Repository: ...

    def open_sysroot(self, path: Path) -> Sysroot: ...


__all__ = [
    "Deployment",
    "Repository",
    "StoreBackend",
    "StoreError",
    "Sysroot",
]
