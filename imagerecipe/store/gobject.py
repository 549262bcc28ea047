"""libostree backend, accessed through PyGObject introspection.

gi is imported on first use so that recipes without OSTree actions (and the
test-suite) do not require libostree to be installed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from functools import lru_cache
from pathlib import Path
from typing import Any

from imagerecipe.store.base import Deployment, StoreError

logger = logging.getLogger(__name__)

# Repository modes accepted when creating a repository
REPO_MODES: dict[str, str] = {
    "archive": "ARCHIVE_Z2",
    "bare": "BARE",
    "bare-user": "BARE_USER",
    "bare-user-only": "BARE_USER_ONLY",
}


@lru_cache(maxsize=1)
def _introspection() -> tuple[Any, Any, Any]:
    """Return the (GLib, Gio, OSTree) introspection modules."""
    try:
        import gi

        gi.require_version("OSTree", "1.0")
        from gi.repository import Gio, GLib, OSTree
    except (ImportError, ValueError) as e:
        raise StoreError(
            f"libostree introspection data is not available: {e}",
            code="store_unavailable",
        ) from e
    return GLib, Gio, OSTree


@contextmanager
def _glib_errors(operation: str) -> Iterator[None]:
    glib, _, _ = _introspection()
    try:
        yield
    except glib.Error as e:
        raise StoreError(f"{operation} failed: {e.message}") from e


def _file(path: Path) -> Any:
    _, gio, _ = _introspection()
    return gio.File.new_for_path(str(path))


class GObjectRepository:
    """Repository implemented on OSTree.Repo."""

    def __init__(self, repo: Any) -> None:
        self._repo = repo

    def prepare_transaction(self) -> None:
        with _glib_errors("prepare transaction"):
            self._repo.prepare_transaction(None)

    def write_commit(self, tree: Path, branch: str, subject: str) -> str:
        _, _, ostree = _introspection()
        with _glib_errors(f"commit {tree} to {branch}"):
            mtree = ostree.MutableTree.new()
            self._repo.write_directory_to_mtree(_file(tree), mtree, None, None)
            _, root = self._repo.write_mtree(mtree, None)
            _, parent = self._repo.resolve_rev(branch, True)
            _, checksum = self._repo.write_commit(
                parent, subject, None, None, root, None
            )
            self._repo.transaction_set_ref(None, branch, checksum)
        return checksum

    def commit_transaction(self) -> None:
        with _glib_errors("commit transaction"):
            self._repo.commit_transaction(None)

    def abort_transaction(self) -> None:
        with _glib_errors("abort transaction"):
            self._repo.abort_transaction(None)

    def remote_add(self, name: str, url: str, gpg_verify: bool = False) -> None:
        glib, _, ostree = _introspection()
        options = glib.Variant("a{sv}", {"gpg-verify": glib.Variant("b", gpg_verify)})
        with _glib_errors(f"add remote {name}"):
            self._repo.remote_change(
                None,
                ostree.RepoRemoteChange.ADD_IF_NOT_EXISTS,
                name,
                url,
                options,
                None,
            )

    def pull(self, source: str, remote_name: str, refs: list[str]) -> None:
        glib, _, _ = _introspection()
        options = glib.Variant(
            "a{sv}",
            {
                "refs": glib.Variant("as", refs),
                "override-remote-name": glib.Variant("s", remote_name),
            },
        )
        with _glib_errors(f"pull {', '.join(refs)} from {source}"):
            self._repo.pull_with_options(source, options, None, None)

    def resolve_rev(self, ref: str) -> str | None:
        with _glib_errors(f"resolve {ref}"):
            _, revision = self._repo.resolve_rev(ref, True)
        return revision


class GObjectSysroot:
    """Sysroot implemented on OSTree.Sysroot."""

    def __init__(self, sysroot: Any) -> None:
        self._sysroot = sysroot

    def initialize_fs(self) -> None:
        with _glib_errors("initialize sysroot"):
            self._sysroot.ensure_initialized(None)

    def init_osname(self, os_name: str) -> None:
        with _glib_errors(f"init osname {os_name}"):
            self._sysroot.init_osname(os_name, None)

    def load(self) -> None:
        with _glib_errors("load sysroot"):
            self._sysroot.load(None)

    def deploy_tree(
        self,
        os_name: str,
        revision: str,
        origin_refspec: str,
        kernel_args: list[str],
    ) -> Deployment:
        with _glib_errors(f"deploy {revision}"):
            origin = self._sysroot.origin_new_from_refspec(origin_refspec)
            _, deployment = self._sysroot.deploy_tree(
                os_name, revision, origin, None, kernel_args, None
            )
        return Deployment(
            os_name=deployment.get_osname(),
            checksum=deployment.get_csum(),
            serial=deployment.get_deployserial(),
            handle=deployment,
        )

    def simple_write_deployment(self, os_name: str, deployment: Deployment) -> None:
        _, _, ostree = _introspection()
        with _glib_errors(f"write deployment for {os_name}"):
            self._sysroot.simple_write_deployment(
                os_name,
                deployment.handle,
                None,
                ostree.SysrootSimpleWriteDeploymentFlags.NONE,
                None,
            )


class GObjectStore:
    """StoreBackend opening repositories and sysroots through libostree."""

    def open_repository(
        self, path: Path, create_mode: str | None = None
    ) -> GObjectRepository:
        _, _, ostree = _introspection()
        repo = ostree.Repo.new(_file(path))
        if create_mode is not None and not path.exists():
            if create_mode not in REPO_MODES:
                raise StoreError(f"Unknown repository mode: {create_mode}")
            logger.info("Creating %s repository at %s", create_mode, path)
            with _glib_errors(f"create repository {path}"):
                repo.create(getattr(ostree.RepoMode, REPO_MODES[create_mode]), None)
        with _glib_errors(f"open repository {path}"):
            repo.open(None)
        return GObjectRepository(repo)

    def open_sysroot(self, path: Path) -> GObjectSysroot:
        _, _, ostree = _introspection()
        return GObjectSysroot(ostree.Sysroot.new(_file(path)))


__all__ = [
    "REPO_MODES",
    "GObjectRepository",
    "GObjectStore",
    "GObjectSysroot",
]
