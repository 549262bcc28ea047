"""Atomic commit and deployment protocol.

This module handles:
- Committing a tree into a repository inside a single transaction
- Pulling a branch into an image sysroot and deploying it
- Composing kernel arguments for the new deployment

Commits become visible only once their transaction completes. A deployment
becomes active only at the final simple_write_deployment() call; any
earlier failure leaves the previously active deployment in place. Steps
that already ran (a registered remote, a pulled ref) are not rolled back.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from imagerecipe.store.base import Deployment, StoreBackend, StoreError

logger = logging.getLogger(__name__)

FSTAB_MODE = 0o644


class DeploymentError(Exception):
    """Raised when a commit or deploy step fails.

    Attributes:
        step: Name of the protocol step that failed.
    """

    def __init__(self, message: str, step: str, code: str = "deploy_failed") -> None:
        super().__init__(message)
        self.step = step
        self.code = code


@contextmanager
def _step(name: str) -> Iterator[None]:
    try:
        yield
    except (StoreError, OSError) as e:
        raise DeploymentError(f"{name} failed: {e}", step=name) from e


@dataclass
class DeployRequest:
    """Parameters of a pull + deploy into an image sysroot.

    Attributes:
        os_name: OS name to deploy under.
        branch: Branch to pull and deploy.
        source_url: URL the branch is pulled from (e.g. file:///...).
        remote_url: URL recorded for the remote in the image.
        remote_name: Name of the remote in the image repository.
        gpg_verify: Whether the remote requires signed commits.
        kernel_args: Kernel arguments of the deployment.
        fstab: Content of etc/fstab for the deployment, or None.
    """

    os_name: str
    branch: str
    source_url: str
    remote_url: str
    remote_name: str = "origin"
    gpg_verify: bool = False
    kernel_args: list[str] | None = None
    fstab: str | None = None


def compose_kernel_args(
    root_arg: str | None,
    setup_kernel_cmdline: bool,
    append: str | None = None,
) -> list[str]:
    """Compose deployment kernel arguments.

    Args:
        root_arg: Root device argument, e.g. 'root=/dev/sda1'.
        setup_kernel_cmdline: Whether to include root_arg.
        append: Extra arguments, split on whitespace.

    Returns:
        Ordered list of kernel arguments.
    """
    kargs: list[str] = []
    if setup_kernel_cmdline:
        if root_arg:
            kargs.append(root_arg)
        else:
            logger.warning("No root device argument known; kernel root= not set")
    if append:
        kargs.extend(append.split())
    return kargs


def commit_tree(
    store: StoreBackend,
    repository: Path,
    tree: Path,
    branch: str,
    subject: str = "",
    create_mode: str | None = None,
) -> str:
    """Commit tree to branch of repository in one transaction.

    On failure after the transaction started, the transaction is aborted so
    the branch head stays at its previous revision.

    Returns:
        Checksum of the new commit.

    Raises:
        DeploymentError: Naming the failed step.
    """
    with _step("open repository"):
        repo = store.open_repository(repository, create_mode=create_mode)

    with _step("prepare transaction"):
        repo.prepare_transaction()

    try:
        with _step("write commit"):
            checksum = repo.write_commit(tree, branch, subject)
        with _step("commit transaction"):
            repo.commit_transaction()
    except DeploymentError:
        try:
            repo.abort_transaction()
        except StoreError as e:
            logger.warning("Failed to abort transaction on %s: %s", repository, e)
        raise

    logger.info("Commit: %s", checksum)
    return checksum


def write_fstab(root: Path, content: str) -> None:
    """Write content to root/etc/fstab with mode 0644."""
    etc = root / "etc"
    etc.mkdir(mode=0o755, exist_ok=True)
    fstab = etc / "fstab"
    fstab.write_text(content, encoding="utf-8")
    os.chmod(fstab, FSTAB_MODE)


def deploy_revision(
    store: StoreBackend,
    sysroot_path: Path,
    request: DeployRequest,
) -> Deployment:
    """Pull request.branch into the sysroot and make it the active deployment.

    Args:
        store: Backend used to open the sysroot and its repository.
        sysroot_path: Root of the image (already seeded with the tree).
        request: Deployment parameters.

    Returns:
        The new, active deployment.

    Raises:
        DeploymentError: Naming the failed step.
    """
    sysroot = store.open_sysroot(sysroot_path)

    with _step("initialize sysroot"):
        sysroot.initialize_fs()
        if not (sysroot_path / "ostree" / "deploy" / request.os_name).is_dir():
            sysroot.init_osname(request.os_name)

    # Open the image repository by path; going through the sysroot mixes up
    # repo-local and system-wide remote configuration.
    with _step("open image repository"):
        repo = store.open_repository(sysroot_path / "ostree" / "repo")

    with _step("add remote"):
        repo.remote_add(request.remote_name, request.remote_url, request.gpg_verify)

    with _step("pull"):
        repo.pull(request.source_url, request.remote_name, [request.branch])

    with _step("load sysroot"):
        sysroot.load()

    with _step("resolve revision"):
        revision = repo.resolve_rev(request.branch)
        if revision is None:
            raise StoreError(f"Branch {request.branch} not found after pull")

    with _step("deploy tree"):
        deployment = sysroot.deploy_tree(
            request.os_name,
            revision,
            f"{request.remote_name}:{request.branch}",
            list(request.kernel_args or []),
        )

    if request.fstab is not None:
        with _step("setup fstab"):
            write_fstab(deployment.directory(sysroot_path), request.fstab)

    with _step("write deployment"):
        sysroot.simple_write_deployment(request.os_name, deployment)

    logger.info(
        "Deployed %s (%s.%d) for %s",
        request.branch,
        deployment.checksum,
        deployment.serial,
        request.os_name,
    )
    return deployment


__all__ = [
    "FSTAB_MODE",
    "DeployRequest",
    "DeploymentError",
    "commit_tree",
    "compose_kernel_args",
    "deploy_revision",
    "write_fstab",
]
