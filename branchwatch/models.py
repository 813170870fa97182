"""Data models for branchwatch."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class ConnectionStatus(str, Enum):
    OK = "ok"
    KO = "ko"


@dataclass(frozen=True)
class BranchRef:
    """A branch name with the last known commit hash (None when never cloned)."""

    branch_name: str
    hash: str | None = None

    def to_dict(self) -> dict[str, str]:
        data = {"branch_name": self.branch_name}
        if self.hash is not None:
            data["hash"] = self.hash
        return data


@dataclass(frozen=True)
class RemoteBranch:
    """A branch as reported by the remote host."""

    name: str
    commit_hash: str


@dataclass(frozen=True)
class RepositoryPaths:
    """On-disk layout of one repository folder."""

    root: Path
    config: Path
    branches: Path
    scripts: Path
    logs: Path


@dataclass
class RepositoryRecord:
    """Snapshot of a repository record. The file on disk is authoritative."""

    id: str
    slug: str
    workspace_name: str
    name: str
    access_token: str
    branches: list[BranchRef] = field(default_factory=list)
    observed_branches: list[BranchRef] = field(default_factory=list)
    connection_status: ConnectionStatus = ConnectionStatus.OK

    @property
    def is_connected(self) -> bool:
        return self.connection_status is ConnectionStatus.OK

    def observed_names(self) -> list[str]:
        return [b.branch_name for b in self.observed_branches]

    def observed(self, branch_name: str) -> BranchRef | None:
        for branch in self.observed_branches:
            if branch.branch_name == branch_name:
                return branch
        return None


@dataclass(frozen=True)
class BranchChange:
    """A branch whose remote head moved away from the recorded hash."""

    repository_id: str
    slug: str
    branch_name: str
    new_hash: str


@dataclass
class BranchResult:
    """Outcome of applying one BranchChange."""

    change: BranchChange
    cloned: bool
    script_name: str | None = None
    script_launched: bool | None = None
    log_path: Path | None = None
    error: str | None = None
    skipped: bool = False


@dataclass
class CycleResult:
    """Outcome of one watch cycle."""

    changes: list[BranchChange] = field(default_factory=list)
    results: list[BranchResult] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def changed_count(self) -> int:
        return len(self.changes)

    @property
    def cloned_count(self) -> int:
        return sum(1 for r in self.results if r.cloned)


@dataclass(frozen=True)
class RepositorySummary:
    """Counts and indicators rendered next to a repository in menus."""

    slug: str
    connection_status: ConnectionStatus
    known_branches: int
    observed_branches: int
    cached_branches: int
    default_script_set: bool
    branch_scripts_set: int
