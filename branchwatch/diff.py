"""Detect observed branches whose remote head moved."""

from collections.abc import Iterable

from .models import BranchChange, RemoteBranch, RepositoryRecord


def detect_changes(
    record: RepositoryRecord, remote_branches: Iterable[RemoteBranch]
) -> list[BranchChange]:
    """Return observed branches that need to be materialized again.

    A branch without a recorded hash is always included. Observed branches
    missing from the remote listing are skipped.
    """
    remote_by_name = {b.name: b.commit_hash for b in remote_branches}
    changes: list[BranchChange] = []
    for observed in record.observed_branches:
        remote_hash = remote_by_name.get(observed.branch_name)
        if remote_hash is None:
            continue
        if observed.hash is not None and observed.hash == remote_hash:
            continue
        changes.append(
            BranchChange(
                repository_id=record.id,
                slug=record.slug,
                branch_name=observed.branch_name,
                new_hash=remote_hash,
            )
        )
    return changes
