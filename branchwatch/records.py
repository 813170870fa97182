"""Per-repository record storage.

Each repository lives in its own folder under the data root::

    <root>/<slug>/.conf        JSON record
    <root>/<slug>/branches/    materialized working trees
    <root>/<slug>/scripts/     side-effect scripts
    <root>/<slug>/logs/        one file per script invocation

The file is the source of truth. Every update re-reads it, checks that the
identity still matches the caller's snapshot, merges the patch and writes it
back. There is no locking; the last writer wins.
"""

from __future__ import annotations

import json
import logging
import shutil
import uuid
from collections.abc import Callable
from pathlib import Path
from typing import cast

from .models import BranchRef, ConnectionStatus, RepositoryPaths, RepositoryRecord

CONFIG_FILE = ".conf"

logger = logging.getLogger(__name__)


class RecordError(Exception):
    """Repository record is missing or invalid."""


class RecordConsistencyError(RecordError):
    """On-disk record no longer matches the in-memory snapshot."""


def _expect_str(raw: dict[str, object], key: str, path: Path) -> str:
    value = raw.get(key)
    if not isinstance(value, str):
        raise RecordError(f"Missing or invalid '{key}' in {path}")
    return value


def _parse_branches(value: object, key: str, path: Path) -> list[BranchRef]:
    if not isinstance(value, list):
        raise RecordError(f"Missing or invalid '{key}' in {path}")
    branches: list[BranchRef] = []
    for entry in value:
        if not isinstance(entry, dict):
            raise RecordError(f"Invalid branch entry in '{key}' of {path}")
        name = entry.get("branch_name")
        commit = entry.get("hash")
        if not isinstance(name, str) or (commit is not None and not isinstance(commit, str)):
            raise RecordError(f"Invalid branch entry in '{key}' of {path}")
        branches.append(BranchRef(branch_name=name, hash=commit))
    return branches


def _parse_record(slug: str, raw: object, path: Path) -> RepositoryRecord:
    if not isinstance(raw, dict):
        raise RecordError(f"Invalid record format in {path}")
    data = cast(dict[str, object], raw)

    status_raw = data.get("remote_connection_status")
    try:
        status = ConnectionStatus(status_raw)
    except ValueError as exc:
        raise RecordError(f"Invalid 'remote_connection_status' in {path}") from exc

    return RepositoryRecord(
        id=_expect_str(data, "repository_id", path),
        slug=slug,
        workspace_name=_expect_str(data, "repository_workspace_name", path),
        name=_expect_str(data, "repository_name", path),
        access_token=_expect_str(data, "repository_access_token", path),
        branches=_parse_branches(data.get("branches"), "branches", path),
        observed_branches=_parse_branches(
            data.get("observed_branches"), "observed_branches", path
        ),
        connection_status=status,
    )


def _serialize(record: RepositoryRecord) -> dict[str, object]:
    return {
        "repository_id": record.id,
        "repository_workspace_name": record.workspace_name,
        "repository_name": record.name,
        "repository_access_token": record.access_token,
        "branches": [b.to_dict() for b in record.branches],
        "observed_branches": [b.to_dict() for b in record.observed_branches],
        "remote_connection_status": record.connection_status.value,
    }


class RepositoryStore:
    def __init__(self, root: Path) -> None:
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def paths(self, slug: str) -> RepositoryPaths:
        base = self.root / slug
        return RepositoryPaths(
            root=base,
            config=base / CONFIG_FILE,
            branches=base / "branches",
            scripts=base / "scripts",
            logs=base / "logs",
        )

    def list_slugs(self) -> list[str]:
        if not self.root.is_dir():
            return []
        return sorted(p.name for p in self.root.iterdir() if p.is_dir())

    def load(self, slug: str) -> RepositoryRecord:
        path = self.paths(slug).config
        if not path.is_file():
            raise RecordError(f"No repository record at {path}")
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise RecordError(f"Invalid JSON in {path}") from exc
        record = _parse_record(slug, raw, path)
        self._ensure_folders(slug)
        return record

    def load_all(self) -> list[RepositoryRecord]:
        """Load every valid record; invalid folders are skipped."""
        records: list[RepositoryRecord] = []
        for slug in self.list_slugs():
            try:
                records.append(self.load(slug))
            except RecordError as exc:
                logger.warning("Skipping repository folder %s: %s", slug, exc)
        return records

    def get(self, repository_id: str) -> RepositoryRecord:
        for record in self.load_all():
            if record.id == repository_id:
                return record
        raise RecordError(f"Repository {repository_id} not found")

    def attach(
        self, slug: str, workspace_name: str, name: str, access_token: str
    ) -> RepositoryRecord:
        """Create a new repository folder and record."""
        paths = self.paths(slug)
        if paths.config.exists():
            raise RecordError(f"Repository '{slug}' already exists")
        record = RepositoryRecord(
            id=str(uuid.uuid4()),
            slug=slug,
            workspace_name=workspace_name,
            name=name,
            access_token=access_token,
        )
        paths.root.mkdir(parents=True, exist_ok=True)
        self._write(record)
        self._ensure_folders(slug)
        logger.info("Attached repository %s (%s/%s)", slug, workspace_name, name)
        return record

    def detach(self, slug: str) -> None:
        """Remove the record with its cache, scripts and logs."""
        shutil.rmtree(self.paths(slug).root, ignore_errors=True)
        logger.info("Detached repository %s", slug)

    def rename(self, record: RepositoryRecord, new_slug: str) -> RepositoryRecord:
        self._reload_checked(record)
        target = self.paths(new_slug).root
        if target.exists():
            raise RecordError(f"Repository '{new_slug}' already exists")
        self.paths(record.slug).root.rename(target)
        return self.load(new_slug)

    def update(self, record: RepositoryRecord, **changes: object) -> RepositoryRecord:
        """Merge field changes into the current on-disk record and write it."""
        return self.update_with(record, lambda _current: changes)

    def update_with(
        self,
        record: RepositoryRecord,
        patch: Callable[[RepositoryRecord], dict[str, object]],
    ) -> RepositoryRecord:
        """Like update, but the patch is computed from the fresh on-disk copy."""
        current = self._reload_checked(record)
        for key, value in patch(current).items():
            if key in ("id", "slug") or not hasattr(current, key):
                raise RecordError(f"Cannot update field '{key}'")
            setattr(current, key, value)
        self._write(current)
        return current

    def set_observed_hash(
        self, record: RepositoryRecord, branch_name: str, commit_hash: str
    ) -> RepositoryRecord | None:
        """Replace the observed entry for branch_name with the new hash.

        Returns None without writing when the branch is no longer observed on
        disk, so a concurrent unsubscribe is kept.
        """
        current = self._reload_checked(record)
        for idx, entry in enumerate(current.observed_branches):
            if entry.branch_name == branch_name:
                current.observed_branches[idx] = BranchRef(
                    branch_name=branch_name, hash=commit_hash
                )
                self._write(current)
                return current
        return None

    def _reload_checked(self, record: RepositoryRecord) -> RepositoryRecord:
        try:
            current = self.load(record.slug)
        except RecordError as exc:
            raise RecordConsistencyError(
                f"Repository '{record.slug}' disappeared from disk"
            ) from exc
        if current.id != record.id:
            raise RecordConsistencyError(
                f"Repository '{record.slug}' identity changed on disk"
            )
        return current

    def _write(self, record: RepositoryRecord) -> None:
        path = self.paths(record.slug).config
        path.write_text(json.dumps(_serialize(record), indent=2) + "\n", encoding="utf-8")

    def _ensure_folders(self, slug: str) -> None:
        paths = self.paths(slug)
        for folder in (paths.branches, paths.scripts, paths.logs):
            folder.mkdir(parents=True, exist_ok=True)
