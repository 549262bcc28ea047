"""Shared fixtures: in-memory OSTree store and sandbox doubles."""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from imagerecipe.config import Settings
from imagerecipe.context import BuildContext
from imagerecipe.store.base import Deployment, StoreError


class FakeStore:
    """StoreBackend keeping repositories and sysroots in memory.

    Attributes:
        calls: Names of every store operation, in call order.
        fail_on: Operation names that raise StoreError when called.
    """

    def __init__(self) -> None:
        self.repositories: dict[Path, FakeRepository] = {}
        self.sysroots: dict[Path, FakeSysroot] = {}
        self.calls: list[str] = []
        self.fail_on: set[str] = set()

    def record(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail_on:
            raise StoreError(f"{name} failed (injected)")

    def open_repository(
        self, path: Path, create_mode: str | None = None
    ) -> FakeRepository:
        self.record("open_repository")
        if path not in self.repositories:
            self.repositories[path] = FakeRepository(self, path, create_mode)
        return self.repositories[path]

    def open_sysroot(self, path: Path) -> FakeSysroot:
        if path not in self.sysroots:
            self.sysroots[path] = FakeSysroot(self, path)
        return self.sysroots[path]


class FakeRepository:
    def __init__(self, store: FakeStore, path: Path, mode: str | None) -> None:
        self.store = store
        self.path = path
        self.mode = mode
        self.refs: dict[str, str] = {}
        self.remotes: dict[str, tuple[str, bool]] = {}
        self.pending: dict[str, str] | None = None
        self.commits = 0

    def prepare_transaction(self) -> None:
        self.store.record("prepare_transaction")
        self.pending = {}

    def write_commit(self, tree: Path, branch: str, subject: str) -> str:
        self.store.record("write_commit")
        assert self.pending is not None, "write_commit outside a transaction"
        self.commits += 1
        checksum = hashlib.sha256(
            f"{tree}:{subject}:{self.commits}".encode()
        ).hexdigest()
        self.pending[branch] = checksum
        return checksum

    def commit_transaction(self) -> None:
        self.store.record("commit_transaction")
        assert self.pending is not None
        self.refs.update(self.pending)
        self.pending = None

    def abort_transaction(self) -> None:
        self.store.record("abort_transaction")
        self.pending = None

    def remote_add(self, name: str, url: str, gpg_verify: bool = False) -> None:
        self.store.record("remote_add")
        self.remotes.setdefault(name, (url, gpg_verify))

    def pull(self, source: str, remote_name: str, refs: list[str]) -> None:
        self.store.record("pull")
        source_path = Path(source.removeprefix("file://"))
        origin = self.store.repositories.get(source_path)
        if origin is None:
            raise StoreError(f"No repository at {source}")
        for ref in refs:
            if ref in origin.refs:
                self.refs[ref] = origin.refs[ref]

    def resolve_rev(self, ref: str) -> str | None:
        self.store.record("resolve_rev")
        return self.refs.get(ref)


class FakeSysroot:
    def __init__(self, store: FakeStore, path: Path) -> None:
        self.store = store
        self.path = path
        self.active: dict[str, Deployment] = {}
        self.deployments: list[tuple[Deployment, str, list[str]]] = []

    def initialize_fs(self) -> None:
        self.store.record("initialize_fs")
        (self.path / "ostree" / "repo").mkdir(parents=True, exist_ok=True)

    def init_osname(self, os_name: str) -> None:
        self.store.record("init_osname")
        (self.path / "ostree" / "deploy" / os_name).mkdir(parents=True)

    def load(self) -> None:
        self.store.record("load")

    def deploy_tree(
        self,
        os_name: str,
        revision: str,
        origin_refspec: str,
        kernel_args: list[str],
    ) -> Deployment:
        self.store.record("deploy_tree")
        deployment = Deployment(os_name, revision, len(self.deployments))
        deployment.directory(self.path).mkdir(parents=True)
        self.deployments.append((deployment, origin_refspec, kernel_args))
        return deployment

    def simple_write_deployment(self, os_name: str, deployment: Deployment) -> None:
        self.store.record("simple_write_deployment")
        self.active[os_name] = deployment


class RecordingMachine:
    """Sandbox double recording what the orchestrator asks of it."""

    def __init__(self, inside: bool = False, exit_code: int = 0, log=None) -> None:
        self.inside = inside
        self.exit_code = exit_code
        self.volumes: list[Path] = []
        self.images: list[tuple[Path, int]] = []
        self.run_args: list[str] | None = None
        self.log = log if log is not None else []

    def in_machine(self) -> bool:
        return self.inside

    def add_volume(self, path: Path) -> None:
        self.volumes.append(path)

    def create_image(self, path: Path, size: int) -> str | None:
        self.images.append((path, size))
        return f"/dev/vd{'abcdefgh'[len(self.images) - 1]}"

    def run(self, args: list[str]) -> int:
        self.log.append(("machine", "run"))
        self.run_args = list(args)
        return self.exit_code


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings for in-process builds below tmp_path."""
    return Settings(
        scratch_dir=tmp_path / "scratch",
        sandbox="none",
        host_architecture="amd64",
        _env_file=None,
    )


@pytest.fixture
def context(tmp_path, settings, fake_store) -> BuildContext:
    """amd64 build context with artifact and recipe directories."""
    artifacts = tmp_path / "artifacts"
    recipes = tmp_path / "recipe"
    artifacts.mkdir()
    recipes.mkdir()
    ctx = BuildContext.from_settings(
        settings,
        architecture="amd64",
        artifact_directory=artifacts,
        recipe_directory=recipes,
    )
    ctx.store = fake_store
    return ctx
