"""Tests for store/gobject.py module.

The introspection modules are replaced with mocks; libostree itself is
not required.
"""

import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from imagerecipe.store import gobject
from imagerecipe.store.base import Deployment, StoreError
from imagerecipe.store.gobject import GObjectRepository, GObjectStore, GObjectSysroot


class FakeGLibError(Exception):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


@pytest.fixture
def modules():
    """Mocked (GLib, Gio, OSTree) returned by _introspection()."""
    glib, gio, ostree = MagicMock(), MagicMock(), MagicMock()
    glib.Error = FakeGLibError
    with patch.object(gobject, "_introspection", return_value=(glib, gio, ostree)):
        yield glib, gio, ostree


class TestIntrospection:
    """Tests for lazy loading of the bindings."""

    def test_unavailable(self):
        """Missing bindings surface as StoreError."""
        gobject._introspection.cache_clear()
        try:
            with patch.dict(sys.modules, {"gi": None}):
                with pytest.raises(StoreError) as exc_info:
                    GObjectStore().open_sysroot(Path("/sysroot"))
        finally:
            gobject._introspection.cache_clear()

        assert exc_info.value.code == "store_unavailable"


class TestGObjectRepository:
    """Tests for GObjectRepository class."""

    def test_write_commit_sets_ref(self, modules):
        repo = MagicMock()
        repo.write_mtree.return_value = (True, "root")
        repo.resolve_rev.return_value = (True, "parent")
        repo.write_commit.return_value = (True, "abc123")

        checksum = GObjectRepository(repo).write_commit(Path("/tree"), "main", "msg")

        assert checksum == "abc123"
        repo.write_commit.assert_called_once_with(
            "parent", "msg", None, None, "root", None
        )
        repo.transaction_set_ref.assert_called_once_with(None, "main", "abc123")

    def test_glib_error_becomes_store_error(self, modules):
        repo = MagicMock()
        repo.commit_transaction.side_effect = FakeGLibError("no space left")

        with pytest.raises(StoreError, match="commit transaction failed: no space"):
            GObjectRepository(repo).commit_transaction()

    def test_remote_add_keeps_existing(self, modules):
        _, _, ostree = modules
        repo = MagicMock()

        GObjectRepository(repo).remote_add("origin", "https://example.com/repo")

        args = repo.remote_change.call_args.args
        assert args[1] is ostree.RepoRemoteChange.ADD_IF_NOT_EXISTS
        assert args[2:4] == ("origin", "https://example.com/repo")

    def test_resolve_missing_ref(self, modules):
        repo = MagicMock()
        repo.resolve_rev.return_value = (True, None)

        assert GObjectRepository(repo).resolve_rev("main") is None


class TestGObjectSysroot:
    """Tests for GObjectSysroot class."""

    def test_deploy_tree(self, modules):
        sysroot = MagicMock()
        handle = MagicMock()
        handle.get_osname.return_value = "debian"
        handle.get_csum.return_value = "abc123"
        handle.get_deployserial.return_value = 0
        sysroot.deploy_tree.return_value = (True, handle)

        deployment = GObjectSysroot(sysroot).deploy_tree(
            "debian", "abc123", "origin:main", ["quiet"]
        )

        assert deployment == Deployment("debian", "abc123", 0)
        assert deployment.handle is handle
        sysroot.origin_new_from_refspec.assert_called_once_with("origin:main")

    def test_simple_write_uses_handle(self, modules):
        sysroot = MagicMock()
        handle = object()

        GObjectSysroot(sysroot).simple_write_deployment(
            "debian", Deployment("debian", "abc", 0, handle=handle)
        )

        args = sysroot.simple_write_deployment.call_args.args
        assert args[:3] == ("debian", handle, None)


class TestGObjectStore:
    """Tests for GObjectStore class."""

    def test_creates_missing_repository(self, modules, tmp_path):
        _, _, ostree = modules
        repo = ostree.Repo.new.return_value

        GObjectStore().open_repository(tmp_path / "repo", create_mode="bare")

        repo.create.assert_called_once_with(ostree.RepoMode.BARE, None)
        repo.open.assert_called_once_with(None)

    def test_unknown_mode(self, modules, tmp_path):
        with pytest.raises(StoreError, match="Unknown repository mode"):
            GObjectStore().open_repository(tmp_path / "repo", create_mode="zip")

    def test_existing_repository_not_created(self, modules, tmp_path):
        _, _, ostree = modules
        repo = ostree.Repo.new.return_value

        GObjectStore().open_repository(tmp_path, create_mode="archive")

        repo.create.assert_not_called()
