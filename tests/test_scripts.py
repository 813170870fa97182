from __future__ import annotations

import os
import shutil
from pathlib import Path

import pytest

from branchwatch import scripts
from branchwatch.models import RepositoryRecord
from branchwatch.records import RepositoryStore

BASH_AVAILABLE = os.name != "nt" and shutil.which("bash") is not None


def _record(name: str = "acme") -> RepositoryRecord:
    return RepositoryRecord(
        id="1", slug="acme", workspace_name="ws", name=name, access_token="t"
    )


def test_branch_script_wins_over_default() -> None:
    assert scripts.resolve_script(_record(), "main", ["acme", "main"]) == "main"


def test_default_script_used_without_branch_script() -> None:
    assert scripts.resolve_script(_record(), "main", ["acme", "dev"]) == "acme"


def test_no_script_resolves_to_none() -> None:
    assert scripts.resolve_script(_record(), "main", ["dev"]) is None


def test_script_crud(store: RepositoryStore) -> None:
    store.attach("acme", "ws", "acme", "t")
    paths = store.paths("acme")

    assert scripts.read_script(paths, "main") is None
    scripts.write_script(paths, "main", "echo main\n")
    scripts.write_script(paths, "feature/login", "echo login\n")
    (paths.scripts / "notes.md").write_text("ignored")

    assert scripts.list_scripts(paths) == ["feature/login", "main"]
    assert scripts.read_script(paths, "feature/login") == "echo login\n"

    scripts.delete_script(paths, "main")
    scripts.delete_script(paths, "main")
    assert scripts.list_scripts(paths) == ["feature/login"]


def test_edit_script_rules(store: RepositoryStore) -> None:
    store.attach("acme", "ws", "acme", "t")
    paths = store.paths("acme")

    assert scripts.edit_script(paths, "main", "   \n") == "unchanged"
    assert scripts.read_script(paths, "main") is None
    assert scripts.edit_script(paths, "main", "echo one\n") == "created"
    assert scripts.edit_script(paths, "main", "echo two\n") == "updated"
    assert scripts.read_script(paths, "main") == "echo two\n"
    assert scripts.edit_script(paths, "main", "") == "deleted"
    assert scripts.read_script(paths, "main") is None


def test_empty_script_name_rejected(store: RepositoryStore) -> None:
    store.attach("acme", "ws", "acme", "t")
    with pytest.raises(scripts.ScriptError):
        scripts.write_script(store.paths("acme"), "  ", "echo")


@pytest.mark.skipif(not BASH_AVAILABLE, reason="bash missing")
def test_execute_logs_output_and_exit_code(store: RepositoryStore) -> None:
    store.attach("acme", "ws", "acme", "t")
    paths = store.paths("acme")
    branch_path = paths.branches / "main"
    branch_path.mkdir()
    scripts.write_script(
        paths,
        "main",
        'echo "branch at $UPDATED_BRANCH_PATH"\necho "cwd $(pwd)"\necho oops >&2\nexit 3\n',
    )

    run = scripts.ScriptRunner().execute(paths, "main", branch_path)

    assert run.launched
    assert run.wait(timeout=30) == 3
    assert not run.is_running()
    assert run.log_path.parent == paths.logs
    assert run.log_path.name.startswith("main-")
    assert run.log_path.suffix == ".txt"

    log = run.log_path.read_text()
    assert f"branch at {branch_path.resolve()}" in log
    assert f"cwd {paths.scripts.resolve()}" in log
    assert "oops" in log
    assert log.rstrip().endswith("script exited with code 3")


def test_execute_reports_spawn_failure(store: RepositoryStore, tmp_path: Path) -> None:
    store.attach("acme", "ws", "acme", "t")
    paths = store.paths("acme")
    scripts.write_script(paths, "main", "echo hi\n")

    runner = scripts.ScriptRunner(interpreter=[str(tmp_path / "no-such-interpreter")])
    run = runner.execute(paths, "main", paths.branches / "main")

    assert not run.launched
    assert run.error
    assert run.wait() is None
    assert "failed to start" in run.log_path.read_text()


def test_runs_in_the_same_millisecond_get_separate_logs(
    store: RepositoryStore, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    store.attach("acme", "ws", "acme", "t")
    paths = store.paths("acme")
    scripts.write_script(paths, "main", "echo hi\n")
    monkeypatch.setattr(scripts.time, "time", lambda: 1700000000.0)

    runner = scripts.ScriptRunner(interpreter=[str(tmp_path / "no-such-interpreter")])
    first = runner.execute(paths, "main", paths.branches / "main")
    second = runner.execute(paths, "main", paths.branches / "main")

    assert first.log_path.name == "main-1700000000000.txt"
    assert second.log_path.name == "main-1700000000001.txt"
    assert first.log_path.read_text().count("failed to start") == 1
    assert second.log_path.read_text().count("failed to start") == 1
