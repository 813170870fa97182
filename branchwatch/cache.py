"""Working-tree cache: one cloned directory per observed branch."""

from __future__ import annotations

import logging
import shutil
from collections.abc import Callable, Iterable
from pathlib import Path

from . import git_ops
from .bitbucket import clone_url
from .config import DEFAULT_GIT_HOST
from .models import RepositoryRecord
from .records import RepositoryStore

CloneRunner = Callable[[str, str, Path], int]

logger = logging.getLogger(__name__)


class BranchCache:
    """Materializes and evicts branch working trees.

    After ``materialize`` returns, the branch directory exists if and only if
    the clone succeeded.
    """

    def __init__(
        self,
        store: RepositoryStore,
        git_host: str = DEFAULT_GIT_HOST,
        clone: CloneRunner = git_ops.clone_branch,
    ) -> None:
        self.store = store
        self.git_host = git_host
        self._clone = clone

    def branch_path(self, record: RepositoryRecord, branch_name: str) -> Path:
        return self.store.paths(record.slug).branches / branch_name

    def is_cached(self, record: RepositoryRecord, branch_name: str) -> bool:
        return self.branch_path(record, branch_name).is_dir()

    def materialize(self, record: RepositoryRecord, branch_name: str) -> bool:
        target = self.branch_path(record, branch_name)
        # stale or half-written tree from an earlier attempt
        self._remove(target)
        target.parent.mkdir(parents=True, exist_ok=True)

        try:
            code = self._clone(branch_name, clone_url(record, self.git_host), target)
        except OSError as exc:
            logger.error("Clone of %s/%s could not start: %s", record.slug, branch_name, exc)
            code = -1

        if code != 0:
            self.evict(record, branch_name)
            logger.warning(
                "Clone of %s/%s failed with exit code %s", record.slug, branch_name, code
            )
            return False

        if not target.is_dir():
            # a clone runner that reports success must leave the tree behind
            logger.warning("Clone of %s/%s left no working tree", record.slug, branch_name)
            return False

        logger.info("Cloned %s/%s into %s", record.slug, branch_name, target)
        return True

    def evict(self, record: RepositoryRecord, branch_name: str) -> None:
        target = self.branch_path(record, branch_name)
        self._remove(target)
        self._prune_empty_parents(target, self.store.paths(record.slug).branches)

    def cached_branches(self, record: RepositoryRecord) -> list[str]:
        """Names of branches that currently have a working tree on disk."""
        root = self.store.paths(record.slug).branches
        return sorted(_iter_cache_entries(root, root, _nested_prefixes(record.observed_names())))

    def evict_unobserved(self, records: Iterable[RepositoryRecord]) -> list[tuple[str, str]]:
        """Evict every cached branch that is no longer observed."""
        evicted: list[tuple[str, str]] = []
        for record in records:
            observed = set(record.observed_names())
            for branch_name in self.cached_branches(record):
                if branch_name in observed:
                    continue
                self.evict(record, branch_name)
                evicted.append((record.slug, branch_name))
                logger.info("Evicted unobserved branch %s/%s", record.slug, branch_name)
        return evicted

    @staticmethod
    def _remove(target: Path) -> None:
        if target.is_symlink() or target.is_file():
            target.unlink()
        elif target.exists():
            shutil.rmtree(target)

    @staticmethod
    def _prune_empty_parents(target: Path, stop: Path) -> None:
        parent = target.parent
        while parent != stop and stop in parent.parents:
            try:
                parent.rmdir()
            except OSError:
                return
            parent = parent.parent


def _nested_prefixes(branch_names: Iterable[str]) -> set[str]:
    """Folder paths that only exist to hold slash-separated branch names."""
    prefixes: set[str] = set()
    for name in branch_names:
        parts = name.split("/")
        for end in range(1, len(parts)):
            prefixes.add("/".join(parts[:end]))
    return prefixes


def _iter_cache_entries(folder: Path, root: Path, prefixes: set[str]) -> Iterable[str]:
    """Yield branch names of the directories under root.

    Any directory counts as an entry. A directory is only searched deeper when
    its path is a prefix of an observed nested branch name.
    """
    if not folder.is_dir():
        return
    for child in sorted(folder.iterdir()):
        if not child.is_dir() or child.is_symlink():
            continue
        name = child.relative_to(root).as_posix()
        if name in prefixes:
            yield from _iter_cache_entries(child, root, prefixes)
        else:
            yield name
