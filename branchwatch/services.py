"""Operator actions around the watch engine."""

import logging
from collections.abc import Iterable

from . import scripts
from .bitbucket import BitbucketClient, ConnectivityError
from .cache import BranchCache
from .models import BranchRef, ConnectionStatus, RepositoryRecord, RepositorySummary
from .records import RecordError, RepositoryStore

logger = logging.getLogger(__name__)


class ValidationError(Exception):
    """Operator input was rejected."""


def validate_slug(store: RepositoryStore, slug: str) -> bool | str:
    """Return True, or a message explaining why the slug is unusable."""
    cleaned = slug.strip()
    if not cleaned:
        return "The alias cannot be empty"
    if cleaned in (".", "..") or "/" in cleaned or "\\" in cleaned:
        return "The alias cannot contain path separators"
    if cleaned in store.list_slugs():
        return "There is already a repository using this slug"
    return True


def validate_repository_name(
    store: RepositoryStore, workspace_name: str, name: str
) -> bool | str:
    if not name.strip():
        return "The repository name cannot be empty"
    for record in store.load_all():
        if record.workspace_name == workspace_name and record.name == name:
            return (
                "There is a repository already using this repository name on the same "
                "workspace, you are probably duplicating it"
            )
    return True


def validate_access_token(
    client: BitbucketClient, workspace_name: str, name: str, token: str
) -> bool | str:
    if not token.strip():
        return "The access token cannot be empty"
    try:
        client.fetch_repository(workspace_name, name, token)
    except ConnectivityError:
        return "Could not establish connection with the remote repository"
    return True


def add_repository(
    store: RepositoryStore,
    client: BitbucketClient,
    slug: str,
    workspace_name: str,
    name: str,
    access_token: str,
) -> RepositoryRecord:
    """Validate, attach and sync the branch list of a new repository."""
    slug = slug.strip()
    workspace_name = workspace_name.strip()
    name = name.strip()
    if not workspace_name:
        raise ValidationError("The workspace name cannot be empty")
    for verdict in (
        validate_repository_name(store, workspace_name, name),
        validate_access_token(client, workspace_name, name, access_token),
        validate_slug(store, slug),
    ):
        if verdict is not True:
            raise ValidationError(str(verdict))

    record = store.attach(slug, workspace_name, name, access_token)
    return sync_branches(store, client, record)


def delete_repository(store: RepositoryStore, record: RepositoryRecord) -> None:
    store.detach(record.slug)


def rename_repository(
    store: RepositoryStore, record: RepositoryRecord, new_slug: str
) -> RepositoryRecord:
    """Move the repository folder, cache and scripts included, to a new alias."""
    new_slug = new_slug.strip()
    verdict = validate_slug(store, new_slug)
    if verdict is not True:
        raise ValidationError(str(verdict))
    renamed = store.rename(record, new_slug)
    logger.info("Renamed repository %s to %s", record.slug, new_slug)
    return renamed


def check_connections(
    store: RepositoryStore, client: BitbucketClient
) -> list[tuple[str, ConnectionStatus]]:
    """Probe every repository and record ok/ko."""
    statuses: list[tuple[str, ConnectionStatus]] = []
    for record in store.load_all():
        try:
            client.fetch_repository(record.workspace_name, record.name, record.access_token)
            status = ConnectionStatus.OK
        except ConnectivityError as exc:
            logger.warning("Repository %s is unreachable: %s", record.slug, exc)
            status = ConnectionStatus.KO
        try:
            store.update(record, connection_status=status)
        except RecordError as exc:
            logger.warning("Could not record status of %s: %s", record.slug, exc)
            continue
        statuses.append((record.slug, status))
    return statuses


def sync_branches(
    store: RepositoryStore, client: BitbucketClient, record: RepositoryRecord
) -> RepositoryRecord:
    """Replace the known branch list with the remote one.

    On failure the known list is cleared and the repository marked ko; the
    observed branches are left alone.
    """
    try:
        remote = client.fetch_record_branches(record)
    except ConnectivityError as exc:
        logger.warning("Could not sync branches of %s: %s", record.slug, exc)
        return store.update(record, branches=[], connection_status=ConnectionStatus.KO)

    branches = [BranchRef(branch_name=b.name, hash=b.commit_hash) for b in remote]
    logger.info("Synced %d branches for %s", len(branches), record.slug)
    return store.update(record, branches=branches, connection_status=ConnectionStatus.OK)


def set_observed_branches(
    store: RepositoryStore,
    cache: BranchCache,
    record: RepositoryRecord,
    branch_names: Iterable[str],
) -> RepositoryRecord:
    """Replace the subscription list and evict trees no longer observed.

    Branches that stay selected keep their hash; new ones start without one.
    """
    selected = list(dict.fromkeys(branch_names))

    def _patch(current: RepositoryRecord) -> dict[str, object]:
        observed: list[BranchRef] = []
        for name in selected:
            existing = current.observed(name)
            observed.append(existing or BranchRef(branch_name=name))
        return {"observed_branches": observed}

    updated = store.update_with(record, _patch)
    cache.evict_unobserved([updated])
    return updated


def repository_summary(
    store: RepositoryStore, cache: BranchCache, record: RepositoryRecord
) -> RepositorySummary:
    available = set(scripts.list_scripts(store.paths(record.slug)))
    return RepositorySummary(
        slug=record.slug,
        connection_status=record.connection_status,
        known_branches=len(record.branches),
        observed_branches=len(record.observed_branches),
        cached_branches=len(cache.cached_branches(record)),
        default_script_set=record.name in available,
        branch_scripts_set=sum(1 for name in record.observed_names() if name in available),
    )
