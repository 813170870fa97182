from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from branchwatch.bitbucket import ConnectivityError, RemoteRepository
from branchwatch.cache import BranchCache
from branchwatch.models import BranchRef, RemoteBranch, RepositoryRecord
from branchwatch.records import RepositoryStore
from branchwatch.scripts import ScriptRunner
from branchwatch.watcher import Watcher


class FakeClone:
    """Stands in for git clone: writes a tiny tree, fails for chosen branches."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, Path]] = []
        self.failing: set[str] = set()

    def __call__(self, branch: str, url: str, dest: Path) -> int:
        self.calls.append((branch, url, dest))
        dest.mkdir(parents=True, exist_ok=True)
        (dest / ".git").mkdir(exist_ok=True)
        (dest / "README.md").write_text(branch)
        if branch in self.failing:
            # leave a half-written tree behind like an interrupted clone
            return 128
        return 0


class FakeBitbucket:
    """In-memory remote keyed by repository name."""

    def __init__(self) -> None:
        self.branches: dict[str, list[RemoteBranch]] = {}
        self.failing: set[str] = set()
        self.valid_tokens: set[str] = {"token"}

    def set_branches(self, repo_name: str, heads: dict[str, str]) -> None:
        self.branches[repo_name] = [RemoteBranch(name=n, commit_hash=h) for n, h in heads.items()]

    def fetch_repository(self, workspace: str, repo_name: str, token: str) -> RemoteRepository:
        if repo_name in self.failing or token not in self.valid_tokens:
            raise ConnectivityError("unauthorized", status_code=401)
        return RemoteRepository(full_name=f"{workspace}/{repo_name}", main_branch="main")

    def fetch_branches(self, workspace: str, repo_name: str, token: str) -> list[RemoteBranch]:
        if repo_name in self.failing:
            raise ConnectivityError("boom", status_code=500)
        return list(self.branches.get(repo_name, []))

    def fetch_record_branches(self, record: RepositoryRecord) -> list[RemoteBranch]:
        return self.fetch_branches(record.workspace_name, record.name, record.access_token)


@pytest.fixture
def store(tmp_path: Path) -> RepositoryStore:
    return RepositoryStore(tmp_path / "repositories")


@pytest.fixture
def fake_clone() -> FakeClone:
    return FakeClone()


@pytest.fixture
def remote() -> FakeBitbucket:
    return FakeBitbucket()


@pytest.fixture
def cache(store: RepositoryStore, fake_clone: FakeClone) -> BranchCache:
    return BranchCache(store, clone=fake_clone)


@pytest.fixture
def watcher(
    store: RepositoryStore, remote: FakeBitbucket, cache: BranchCache
) -> Watcher:
    return Watcher(store, remote, cache, ScriptRunner(), cooldown_seconds=0)  # type: ignore[arg-type]


@pytest.fixture
def make_repo(store: RepositoryStore) -> Callable[..., RepositoryRecord]:
    def _make(
        slug: str,
        observed: dict[str, str | None] | None = None,
        name: str | None = None,
    ) -> RepositoryRecord:
        record = store.attach(slug, "workspace", name or slug, "token")
        if observed:
            record = store.update(
                record,
                observed_branches=[
                    BranchRef(branch_name=b, hash=h) for b, h in observed.items()
                ],
            )
        return record

    return _make
