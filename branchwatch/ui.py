from __future__ import annotations

from collections.abc import Iterable

import questionary
from rich.console import Console
from rich.table import Table
from rich.text import Text

from .models import ConnectionStatus, CycleResult, RepositorySummary

console = Console()


def _status_text(status: ConnectionStatus) -> Text:
    if status is ConnectionStatus.OK:
        return Text("connected", style="green")
    return Text("no connection", style="red")


def _set_text(is_set: bool) -> Text:
    return Text("set", style="green") if is_set else Text("not set", style="red")


def format_repository_label(summary: RepositorySummary) -> str:
    status = "(connected)" if summary.connection_status is ConnectionStatus.OK else "(no connection)"
    return f"{summary.slug} {status}"


def render_repositories(summaries: Iterable[RepositorySummary]) -> Table:
    table = Table(title="Repositories", title_justify="left")
    table.add_column("ALIAS")
    table.add_column("STATUS")
    table.add_column("OBSERVED", justify="right")
    table.add_column("CACHED", justify="right")
    table.add_column("DEFAULT SCRIPT")
    table.add_column("BRANCH SCRIPTS", justify="right")
    for summary in summaries:
        table.add_row(
            summary.slug,
            _status_text(summary.connection_status),
            f"{summary.observed_branches}/{summary.known_branches}",
            str(summary.cached_branches),
            _set_text(summary.default_script_set),
            f"{summary.branch_scripts_set}/{summary.observed_branches}",
        )
    return table


def render_cycle(result: CycleResult) -> Table:
    table = Table(
        title=f"Detected changes on {result.changed_count} branches",
        title_justify="left",
    )
    table.add_column("REPOSITORY")
    table.add_column("BRANCH")
    table.add_column("HASH")
    table.add_column("CLONE")
    table.add_column("SCRIPT")
    for item in result.results:
        if item.skipped:
            clone = Text("skipped", style="dim")
        elif item.cloned:
            clone = Text("ok", style="green")
        else:
            clone = Text("failed", style="red")
        if item.script_name is None:
            script = Text("-", style="dim")
        elif item.script_launched:
            script = Text(f"{item.script_name} started", style="green")
        else:
            script = Text(f"{item.script_name} failed to start", style="red")
        table.add_row(
            item.change.slug,
            item.change.branch_name,
            item.change.new_hash[:12],
            clone,
            script,
        )
    return table


def print_cycle(result: CycleResult) -> None:
    if result.results:
        console.print(render_cycle(result))
    else:
        console.print(f"detected changes on {result.changed_count} branches")
    for slug in result.failed:
        console.print(Text(f"could not fetch branches of {slug}", style="yellow"))


def confirm(text: str) -> bool:
    return bool(questionary.confirm(text, default=False).unsafe_ask())
