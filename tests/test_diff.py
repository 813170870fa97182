from __future__ import annotations

from branchwatch.diff import detect_changes
from branchwatch.models import BranchChange, BranchRef, RemoteBranch, RepositoryRecord


def _record(observed: dict[str, str | None]) -> RepositoryRecord:
    return RepositoryRecord(
        id="repo-1",
        slug="acme",
        workspace_name="ws",
        name="acme",
        access_token="token",
        observed_branches=[BranchRef(branch_name=b, hash=h) for b, h in observed.items()],
    )


def _remote(heads: dict[str, str]) -> list[RemoteBranch]:
    return [RemoteBranch(name=n, commit_hash=h) for n, h in heads.items()]


def test_moved_branch_is_reported_with_new_hash() -> None:
    changes = detect_changes(_record({"main": "abc123"}), _remote({"main": "def456"}))
    assert changes == [
        BranchChange(repository_id="repo-1", slug="acme", branch_name="main", new_hash="def456")
    ]


def test_unchanged_branch_is_never_reported() -> None:
    record = _record({"main": "abc123", "dev": "111"})
    remote = _remote({"main": "abc123", "dev": "111", "other": "999"})
    for _ in range(3):
        assert detect_changes(record, remote) == []


def test_branch_without_hash_is_always_reported() -> None:
    record = _record({"main": None})
    changes = detect_changes(record, _remote({"main": "abc123"}))
    assert [c.branch_name for c in changes] == ["main"]
    assert changes[0].new_hash == "abc123"


def test_branch_missing_remotely_is_skipped() -> None:
    record = _record({"gone": "abc123", "fresh": None, "main": "old"})
    changes = detect_changes(record, _remote({"main": "new"}))
    assert [c.branch_name for c in changes] == ["main"]


def test_unobserved_remote_branches_are_ignored() -> None:
    assert detect_changes(_record({}), _remote({"main": "abc"})) == []
