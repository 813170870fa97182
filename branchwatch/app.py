from __future__ import annotations

from dataclasses import dataclass

from .bitbucket import BitbucketClient
from .cache import BranchCache
from .config import Settings
from .records import RepositoryStore
from .scripts import ScriptRunner
from .watcher import Watcher


@dataclass
class App:
    """Wires the store, remote client, cache, runner and watcher together."""

    settings: Settings
    store: RepositoryStore
    client: BitbucketClient
    cache: BranchCache
    runner: ScriptRunner
    watcher: Watcher

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        client: BitbucketClient | None = None,
        cache: BranchCache | None = None,
        runner: ScriptRunner | None = None,
    ) -> App:
        store = RepositoryStore(settings.repositories_root)
        client = client or BitbucketClient(
            base_url=settings.api_base_url, timeout=settings.request_timeout
        )
        cache = cache or BranchCache(store, git_host=settings.git_host)
        runner = runner or ScriptRunner()
        watcher = Watcher(
            store,
            client,
            cache,
            runner,
            cooldown_seconds=settings.cooldown_seconds,
            max_workers=settings.fetch_workers,
        )
        return cls(
            settings=settings,
            store=store,
            client=client,
            cache=cache,
            runner=runner,
            watcher=watcher,
        )
