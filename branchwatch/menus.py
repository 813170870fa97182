"""Interactive menu. One handler per Menu state; each handler picks the next state."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import click
import questionary

from . import scripts, services
from .app import App
from .models import ConnectionStatus, CycleResult, RepositoryRecord
from .records import RecordError
from .ui import confirm, console, format_repository_label, print_cycle

SEPARATOR = "-" * 55

SCRIPT_HELP = f"""\
1- The script is saved and run for the current system ({scripts.SCRIPT_EXTENSION}).
2- Save and close the editor when done; the temporary file is read and deleted.
3- {scripts.BRANCH_PATH_ENV} holds the path of the freshly cloned branch.
4- Leave the editor blank, save and quit to delete the script.
5- The script runs from its own folder; cd elsewhere or use absolute paths.
"""


class Menu(str, Enum):
    HOME = "home"
    WATCH = "watch mode"
    CHECK_NOW = "check now"
    REPOSITORIES = "repositories"
    ADD_REPOSITORY = "add repository"
    CHECK_CONNECTIONS = "check repositories connection"
    REPOSITORY_OPTIONS = "repository options"
    SYNC_BRANCHES = "sync repository branches"
    OBSERVED_BRANCHES = "repository branches"
    SIDE_EFFECTS = "repository side effects"
    RENAME_REPOSITORY = "rename repository"
    DELETE_REPOSITORY = "delete repository"
    QUIT = "quit"


@dataclass
class MenuState:
    menu: Menu = Menu.HOME
    repository_id: str | None = None

    def go(self, menu: Menu, repository_id: str | None = None) -> None:
        self.menu = menu
        self.repository_id = repository_id

    def target_id(self) -> str:
        if self.repository_id is None:
            raise RuntimeError("No target repository selected")
        return self.repository_id


def _header(title: str) -> None:
    console.print(f"[black on bright_cyan] {title} [/]\n")


def _target(app: App, state: MenuState) -> RepositoryRecord:
    return app.store.get(state.target_id())


def home(app: App, state: MenuState) -> None:
    _header("HOME")
    count = len(app.store.list_slugs())
    answer = questionary.select(
        "",
        choices=[
            questionary.Choice("Watcher", value=Menu.WATCH),
            questionary.Choice("Check now", value=Menu.CHECK_NOW),
            questionary.Choice(f"Repositories [{count}]", value=Menu.REPOSITORIES),
            questionary.Choice("Quit", value=Menu.QUIT),
        ],
    ).unsafe_ask()
    state.go(answer)


def watch_mode(app: App, state: MenuState) -> None:
    _header("WATCHING BRANCHES")
    console.print("watching branches for changes... (ctrl+c to stop)")
    stop = threading.Event()

    def _cooldown(seconds: float) -> None:
        console.print(f"[dim]cooling down for {seconds:g}s[/]")

    try:
        app.watcher.watch(stop_event=stop, on_cycle=print_cycle, on_cooldown=_cooldown)
    except KeyboardInterrupt:
        stop.set()
    state.go(Menu.HOME)


def check_now(app: App, state: MenuState) -> None:
    _header("CHECKING BRANCHES")
    with console.status("fetching branches..."):
        result: CycleResult = app.watcher.run_cycle()
    print_cycle(result)
    click.pause()
    state.go(Menu.HOME)


def repositories(app: App, state: MenuState) -> None:
    _header("REPOSITORIES")
    records = app.store.load_all()
    choices: list[questionary.Choice | questionary.Separator] = [
        questionary.Choice("< go back", value=(Menu.HOME, None)),
        questionary.Choice("+ add repo", value=(Menu.ADD_REPOSITORY, None)),
        questionary.Choice(
            "! check connections",
            value=(Menu.CHECK_CONNECTIONS, None),
            disabled="no repositories" if not records else None,
        ),
        questionary.Separator(SEPARATOR),
    ]
    for record in records:
        summary = services.repository_summary(app.store, app.cache, record)
        choices.append(
            questionary.Choice(
                format_repository_label(summary), value=(Menu.REPOSITORY_OPTIONS, record.id)
            )
        )
    menu, repository_id = questionary.select("", choices=choices).unsafe_ask()
    state.go(menu, repository_id)


def add_repository(app: App, state: MenuState) -> None:
    _header("ADD REMOTE REPOSITORY CONNECTION")
    console.print("[yellow](leave any required* field empty to cancel)[/]\n")

    workspace_name = questionary.text("workspace name or UUID(*):").unsafe_ask().strip()
    if not workspace_name:
        state.go(Menu.REPOSITORIES)
        return

    name = (
        questionary.text(
            "repository name or UUID(*):",
            validate=lambda value: not value.strip()
            or services.validate_repository_name(app.store, workspace_name, value.strip()),
        )
        .unsafe_ask()
        .strip()
    )
    if not name:
        state.go(Menu.REPOSITORIES)
        return

    token = questionary.password(
        "repository access token(*):",
        validate=lambda value: not value.strip()
        or services.validate_access_token(app.client, workspace_name, name, value),
    ).unsafe_ask()
    if not token.strip():
        state.go(Menu.REPOSITORIES)
        return

    slug = questionary.text(
        "repository alias:",
        default=name,
        validate=lambda value: services.validate_slug(app.store, value),
    ).unsafe_ask()

    try:
        with console.status(f"syncing branches of {name}..."):
            record = services.add_repository(
                app.store, app.client, slug, workspace_name, name, token
            )
    except services.ValidationError as exc:
        console.print(f"[red]{exc}[/]")
        click.pause()
        state.go(Menu.REPOSITORIES)
        return
    state.go(Menu.REPOSITORY_OPTIONS, record.id)


def check_connections(app: App, state: MenuState) -> None:
    _header("CHECKING CONNECTION TO REMOTE REPOSITORIES")
    with console.status(f"checking connection to {len(app.store.list_slugs())} repositories"):
        statuses = services.check_connections(app.store, app.client)
    for slug, status in statuses:
        color = "green" if status is ConnectionStatus.OK else "red"
        console.print(f"{slug}: [{color}]{status.value}[/]")
    click.pause()
    state.go(Menu.REPOSITORIES)


def repository_options(app: App, state: MenuState) -> None:
    record = _target(app, state)
    summary = services.repository_summary(app.store, app.cache, record)
    _header(f"DETAILS ~> [ {record.slug} ]")
    answer = questionary.select(
        "",
        choices=[
            questionary.Choice("< go back", value=Menu.REPOSITORIES),
            questionary.Choice("! sync branch list", value=Menu.SYNC_BRANCHES),
            questionary.Separator(SEPARATOR),
            questionary.Choice(
                f"Observable branches [{summary.observed_branches}/{summary.known_branches}]"
                f" ({summary.cached_branches} cached)",
                value=Menu.OBSERVED_BRANCHES,
                disabled="sync the branch list first" if not record.branches else None,
            ),
            questionary.Choice(
                f"Side Effects [{summary.branch_scripts_set}/{summary.observed_branches}]",
                value=Menu.SIDE_EFFECTS,
            ),
            questionary.Choice("Rename alias", value=Menu.RENAME_REPOSITORY),
            questionary.Choice("Delete repository", value=Menu.DELETE_REPOSITORY),
        ],
    ).unsafe_ask()
    state.go(answer, None if answer is Menu.REPOSITORIES else record.id)


def sync_branches(app: App, state: MenuState) -> None:
    record = _target(app, state)
    _header(f"UPDATING BRANCH LIST ~> [ {record.slug} ]")
    with console.status(f'updating local branch list from remote "{record.name}"'):
        updated = services.sync_branches(app.store, app.client, record)
    if updated.is_connected:
        console.print(f"[green]{len(updated.branches)} branches[/]")
    else:
        console.print("[red]could not reach the remote repository[/]")
    click.pause()
    state.go(Menu.REPOSITORY_OPTIONS, record.id)


def observed_branches(app: App, state: MenuState) -> None:
    record = _target(app, state)
    _header(f"OBSERVABLE BRANCHES ~> [ {record.slug} ]")
    observed = set(record.observed_names())
    ordered = sorted(record.branches, key=lambda b: (b.branch_name not in observed, b.branch_name))
    selected = questionary.checkbox(
        "select branches to observe",
        choices=[
            questionary.Choice(b.branch_name, value=b.branch_name, checked=b.branch_name in observed)
            for b in ordered
        ],
    ).unsafe_ask()
    services.set_observed_branches(app.store, app.cache, record, selected)
    state.go(Menu.REPOSITORY_OPTIONS, record.id)


def side_effects(app: App, state: MenuState) -> None:
    record = _target(app, state)
    paths = app.store.paths(record.slug)
    available = set(scripts.list_scripts(paths))
    _header(f"SIDE EFFECTS ~> [ {record.slug} ]")

    def _label(is_set: bool) -> str:
        return "set" if is_set else "not set"

    choices: list[questionary.Choice | questionary.Separator] = [
        questionary.Choice("< go back", value=None),
        questionary.Choice(
            f"default script [{_label(record.name in available)}]", value=record.name
        ),
        questionary.Separator(SEPARATOR),
    ]
    for name in record.observed_names():
        choices.append(
            questionary.Choice(f'branch "{name}" script [{_label(name in available)}]', value=name)
        )
    script_name = questionary.select("", choices=choices).unsafe_ask()
    if script_name is None:
        state.go(Menu.REPOSITORY_OPTIONS, record.id)
        return

    console.print(SCRIPT_HELP)
    existing = scripts.read_script(paths, script_name) or ""
    edited = click.edit(text=existing, extension=scripts.SCRIPT_EXTENSION, require_save=False)
    outcome = scripts.edit_script(paths, script_name, edited or "")
    console.print(f"script {script_name}: {outcome}")
    state.go(Menu.SIDE_EFFECTS, record.id)


def rename_repository(app: App, state: MenuState) -> None:
    record = _target(app, state)
    _header(f"RENAME ~> [ {record.slug} ]")
    new_slug = questionary.text(
        "new alias (leave empty to cancel):",
        validate=lambda value: not value.strip() or services.validate_slug(app.store, value),
    ).unsafe_ask()
    if new_slug.strip():
        try:
            services.rename_repository(app.store, record, new_slug)
        except services.ValidationError as exc:
            console.print(f"[red]{exc}[/]")
            click.pause()
    state.go(Menu.REPOSITORY_OPTIONS, record.id)


def delete_repository(app: App, state: MenuState) -> None:
    record = _target(app, state)
    _header(f"DELETE ~> [ {record.slug} ]")
    if confirm("Are you sure you want to delete this repository and all files related to it?"):
        services.delete_repository(app.store, record)
        state.go(Menu.REPOSITORIES)
        return
    state.go(Menu.REPOSITORY_OPTIONS, record.id)


HANDLERS: dict[Menu, Callable[[App, MenuState], None]] = {
    Menu.HOME: home,
    Menu.WATCH: watch_mode,
    Menu.CHECK_NOW: check_now,
    Menu.REPOSITORIES: repositories,
    Menu.ADD_REPOSITORY: add_repository,
    Menu.CHECK_CONNECTIONS: check_connections,
    Menu.REPOSITORY_OPTIONS: repository_options,
    Menu.SYNC_BRANCHES: sync_branches,
    Menu.OBSERVED_BRANCHES: observed_branches,
    Menu.SIDE_EFFECTS: side_effects,
    Menu.RENAME_REPOSITORY: rename_repository,
    Menu.DELETE_REPOSITORY: delete_repository,
}


def run_menu(app: App, state: MenuState | None = None) -> None:
    """Render menus until the operator quits."""
    state = state or MenuState()
    while state.menu is not Menu.QUIT:
        console.clear()
        console.print("[bold]branchwatch[/]\n")
        try:
            HANDLERS[state.menu](app, state)
        except RecordError as exc:
            console.print(f"[red]{exc}[/]")
            click.pause()
            state.go(Menu.REPOSITORIES)
