"""Watch loop: fetch, diff, apply, cool down."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor

from . import scripts
from .bitbucket import BitbucketClient
from .cache import BranchCache
from .config import DEFAULT_COOLDOWN_SECONDS, DEFAULT_FETCH_WORKERS
from .diff import detect_changes
from .models import BranchChange, BranchResult, CycleResult, RemoteBranch, RepositoryRecord
from .records import RecordError, RepositoryStore

logger = logging.getLogger(__name__)


class Watcher:
    def __init__(
        self,
        store: RepositoryStore,
        client: BitbucketClient,
        cache: BranchCache,
        runner: scripts.ScriptRunner,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        max_workers: int = DEFAULT_FETCH_WORKERS,
    ) -> None:
        self.store = store
        self.client = client
        self.cache = cache
        self.runner = runner
        self.cooldown_seconds = cooldown_seconds
        self.max_workers = max_workers
        self.launched: list[scripts.ScriptRun] = []

    def fetch_all(
        self, records: list[RepositoryRecord]
    ) -> tuple[dict[str, list[RemoteBranch]], list[str]]:
        """Fetch branch lists concurrently; one failure never hides the others.

        Returns the branch lists keyed by repository id and the slugs whose
        fetch failed.
        """
        fetched: dict[str, list[RemoteBranch]] = {}
        failed: list[str] = []
        if not records:
            return fetched, failed

        max_workers = max(1, min(self.max_workers, len(records)))
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            future_by_index = {
                executor.submit(self.client.fetch_record_branches, record): idx
                for idx, record in enumerate(records)
            }
            for future, idx in future_by_index.items():
                record = records[idx]
                try:
                    fetched[record.id] = future.result()
                except Exception as exc:
                    failed.append(record.slug)
                    logger.warning("Could not fetch branches of %s: %s", record.slug, exc)
        return fetched, failed

    def run_cycle(self, records: list[RepositoryRecord] | None = None) -> CycleResult:
        """Run one fetch/diff/apply pass over the connected repositories."""
        if records is None:
            records = self.store.load_all()
        connected = [r for r in records if r.is_connected]

        fetched, failed = self.fetch_all(connected)

        changes: list[BranchChange] = []
        for record in connected:
            remote = fetched.get(record.id)
            if remote is None:
                continue
            changes.extend(detect_changes(record, remote))

        logger.info("Detected changes on %d branches", len(changes))
        result = CycleResult(changes=changes, failed=failed)
        records_by_id = {r.id: r for r in connected}
        # one change at a time
        for change in changes:
            try:
                outcome = self.apply(records_by_id[change.repository_id], change)
            except OSError as exc:
                logger.error("Could not update %s/%s: %s", change.slug, change.branch_name, exc)
                outcome = BranchResult(change=change, cloned=False, error=str(exc))
            result.results.append(outcome)
        return result

    def apply(self, record: RepositoryRecord, change: BranchChange) -> BranchResult:
        """Materialize one changed branch, persist its hash and run its script."""
        if not self.cache.materialize(record, change.branch_name):
            return BranchResult(change=change, cloned=False, error="clone failed")

        try:
            updated = self.store.set_observed_hash(record, change.branch_name, change.new_hash)
        except RecordError as exc:
            logger.error(
                "Could not record %s/%s at %s: %s",
                change.slug,
                change.branch_name,
                change.new_hash,
                exc,
            )
            return BranchResult(change=change, cloned=True, error=str(exc))

        if updated is None:
            logger.info(
                "Branch %s/%s was unobserved during the clone", change.slug, change.branch_name
            )
            self.cache.evict(record, change.branch_name)
            return BranchResult(
                change=change, cloned=False, skipped=True, error="branch no longer observed"
            )

        record = updated
        result = BranchResult(change=change, cloned=True)
        paths = self.store.paths(record.slug)
        script_name = scripts.resolve_script(
            record, change.branch_name, scripts.list_scripts(paths)
        )
        if script_name is None:
            return result

        run = self.runner.execute(
            paths, script_name, self.cache.branch_path(record, change.branch_name)
        )
        self.launched = [r for r in self.launched if r.is_running()]
        if run.launched:
            self.launched.append(run)
        result.script_name = script_name
        result.script_launched = run.launched
        result.log_path = run.log_path
        return result

    def watch(
        self,
        stop_event: threading.Event | None = None,
        on_cycle: Callable[[CycleResult], None] | None = None,
        on_cooldown: Callable[[float], None] | None = None,
    ) -> None:
        """Run cycles until stop_event is set or the process is interrupted."""
        stop = stop_event or threading.Event()
        self.cache.evict_unobserved(self.store.load_all())

        while not stop.is_set():
            result = self.run_cycle()
            if on_cycle is not None:
                on_cycle(result)
            if on_cooldown is not None:
                on_cooldown(self.cooldown_seconds)
            stop.wait(self.cooldown_seconds)
