from __future__ import annotations

import logging
import sys
import threading
from pathlib import Path

import click

from . import services
from .app import App
from .config import ConfigError, Settings, load_settings
from .log import configure_logging
from .models import CycleResult
from .ui import console, print_cycle, render_repositories

logger = logging.getLogger(__name__)


def _build_app(ctx: click.Context, cooldown: float | None = None) -> App:
    home: Path | None = ctx.obj["home"]
    try:
        settings: Settings = load_settings(home=home, cooldown_seconds=cooldown)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    configure_logging(verbose=ctx.obj["verbose"], log_file=settings.log_file)
    return App.from_settings(settings)


@click.group(context_settings={"help_option_names": ["-h", "--help"]}, invoke_without_command=True)
@click.option(
    "--home",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Data folder (default: $BRANCHWATCH_HOME or ~/.branchwatch).",
)
@click.option("-v", "--verbose", is_flag=True, help="Log debug output.")
@click.pass_context
def main(ctx: click.Context, home: Path | None, verbose: bool) -> None:
    """branchwatch: clone observed branches when they move and run a script."""
    ctx.ensure_object(dict)
    ctx.obj["home"] = home
    ctx.obj["verbose"] = verbose
    if ctx.invoked_subcommand is not None:
        return

    if not sys.stdin.isatty() or not sys.stdout.isatty():
        click.echo("branchwatch: the interactive menu needs a terminal", err=True)
        raise SystemExit(1)

    from .menus import run_menu

    app = _build_app(ctx)
    try:
        run_menu(app)
    except KeyboardInterrupt:
        pass
    console.clear()


@main.command("watch")
@click.option(
    "--cooldown",
    type=click.FloatRange(min=0),
    default=None,
    help="Seconds to wait between cycles (default 60).",
)
@click.pass_context
def watch(ctx: click.Context, cooldown: float | None) -> None:
    """Watch observed branches until interrupted."""
    app = _build_app(ctx, cooldown=cooldown)
    stop = threading.Event()
    console.print("watching branches for changes... (ctrl+c to stop)")

    def _on_cycle(result: CycleResult) -> None:
        print_cycle(result)

    try:
        app.watcher.watch(stop_event=stop, on_cycle=_on_cycle)
    except KeyboardInterrupt:
        stop.set()
        running = sum(1 for run in app.watcher.launched if run.is_running())
        if running:
            logger.warning("Exiting with %d script(s) still running", running)


@main.command("check")
@click.pass_context
def check(ctx: click.Context) -> None:
    """Run a single watch cycle and print what happened."""
    app = _build_app(ctx)
    with console.status("fetching branches..."):
        result = app.watcher.run_cycle()
    print_cycle(result)
    if any(not r.cloned and not r.skipped for r in result.results):
        raise SystemExit(1)


@main.command("list")
@click.pass_context
def list_repositories(ctx: click.Context) -> None:
    """List repositories with their branch and script counts."""
    app = _build_app(ctx)
    summaries = [
        services.repository_summary(app.store, app.cache, record)
        for record in app.store.load_all()
    ]
    if not summaries:
        click.echo("no repositories")
        return
    console.print(render_repositories(summaries))


if __name__ == "__main__":
    main()
