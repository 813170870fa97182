"""Side-effect scripts: storage, resolution and detached execution."""

from __future__ import annotations

import logging
import os
import subprocess
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO

from .models import RepositoryPaths, RepositoryRecord

SCRIPT_EXTENSION = ".bat" if os.name == "nt" else ".sh"
LOG_EXTENSION = ".txt"
BRANCH_PATH_ENV = "UPDATED_BRANCH_PATH"

logger = logging.getLogger(__name__)


class ScriptError(Exception):
    """Script name or content is invalid."""


def _script_path(paths: RepositoryPaths, script_name: str) -> Path:
    if not script_name.strip():
        raise ScriptError("Script name cannot be empty.")
    # branch names with slashes still map to one flat file
    filename = script_name.replace("/", "__").replace("\\", "__")
    return paths.scripts / f"{filename}{SCRIPT_EXTENSION}"


def _script_name_from_file(filename: str) -> str:
    return filename[: -len(SCRIPT_EXTENSION)].replace("__", "/")


def list_scripts(paths: RepositoryPaths) -> list[str]:
    if not paths.scripts.is_dir():
        return []
    return sorted(
        _script_name_from_file(p.name)
        for p in paths.scripts.iterdir()
        if p.is_file() and p.name.endswith(SCRIPT_EXTENSION)
    )


def read_script(paths: RepositoryPaths, script_name: str) -> str | None:
    path = _script_path(paths, script_name)
    if not path.is_file():
        return None
    return path.read_text(encoding="utf-8")


def write_script(paths: RepositoryPaths, script_name: str, content: str) -> Path:
    path = _script_path(paths, script_name)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def delete_script(paths: RepositoryPaths, script_name: str) -> None:
    _script_path(paths, script_name).unlink(missing_ok=True)


def edit_script(paths: RepositoryPaths, script_name: str, content: str) -> str:
    """Apply editor output: blank deletes, anything else creates or updates.

    Returns one of "created", "updated", "deleted" or "unchanged".
    """
    existing = read_script(paths, script_name)
    blank = not content.strip()
    if blank and existing is not None:
        delete_script(paths, script_name)
        return "deleted"
    if blank:
        return "unchanged"
    write_script(paths, script_name, content)
    return "created" if existing is None else "updated"


def resolve_script(
    record: RepositoryRecord, branch_name: str, available: list[str]
) -> str | None:
    """Pick the branch script, else the repository default, else nothing."""
    if branch_name in available:
        return branch_name
    if record.name in available:
        return record.name
    return None


@dataclass
class ScriptRun:
    """Handle to a launched script. Completion is recorded in the log file."""

    script_name: str
    log_path: Path
    process: subprocess.Popen[bytes] | None = None
    error: str | None = None
    _finisher: threading.Thread | None = field(default=None, repr=False)

    @property
    def launched(self) -> bool:
        return self.process is not None

    @property
    def pid(self) -> int | None:
        return self.process.pid if self.process else None

    def is_running(self) -> bool:
        return self.process is not None and self.process.poll() is None

    def wait(self, timeout: float | None = None) -> int | None:
        """Block until the script exits and its log trailer is written."""
        if self.process is None:
            return None
        code = self.process.wait(timeout=timeout)
        if self._finisher is not None:
            self._finisher.join(timeout=timeout)
        return code


class ScriptRunner:
    def __init__(self, interpreter: list[str] | None = None) -> None:
        if interpreter is None:
            interpreter = ["cmd", "/c"] if os.name == "nt" else ["bash"]
        self.interpreter = interpreter

    def execute(
        self,
        paths: RepositoryPaths,
        script_name: str,
        branch_path: Path,
    ) -> ScriptRun:
        """Spawn a script without waiting for it.

        Output goes to ``logs/<script_name>-<epoch ms>.txt``; a trailer line
        with the exit code is appended when the process ends.
        """
        script_path = _script_path(paths, script_name)
        paths.logs.mkdir(parents=True, exist_ok=True)
        log_path, log = _open_log(paths.logs, script_path.stem, int(time.time() * 1000))

        env = dict(os.environ)
        env[BRANCH_PATH_ENV] = str(branch_path.resolve())

        try:
            process = subprocess.Popen(
                [*self.interpreter, str(script_path)],
                cwd=paths.scripts,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=log,
                stderr=subprocess.STDOUT,
                **_detached_kwargs(),
            )
        except OSError as exc:
            log.write(f"script failed to start: {exc}\n".encode("utf-8"))
            log.close()
            logger.error("Could not start script %s: %s", script_name, exc)
            return ScriptRun(script_name=script_name, log_path=log_path, error=str(exc))

        finisher = threading.Thread(
            target=_write_trailer,
            args=(process, log),
            name=f"script-{script_name}-{process.pid}",
            daemon=True,
        )
        finisher.start()
        logger.info("Started script %s (pid %s), logging to %s", script_name, process.pid, log_path)
        return ScriptRun(
            script_name=script_name, log_path=log_path, process=process, _finisher=finisher
        )


def _open_log(folder: Path, stem: str, stamp: int) -> tuple[Path, IO[bytes]]:
    """Create a new log file, moving to the next stamp if the name is taken."""
    while True:
        path = folder / f"{stem}-{stamp}{LOG_EXTENSION}"
        try:
            return path, open(path, "xb")
        except FileExistsError:
            stamp += 1


def _write_trailer(process: subprocess.Popen[bytes], log: IO[bytes]) -> None:
    code = process.wait()
    try:
        log.write(f"\nscript exited with code {code}\n".encode("utf-8"))
    finally:
        log.close()
    logger.debug("Script pid %s exited with code %s", process.pid, code)


def _detached_kwargs() -> dict[str, object]:
    if os.name == "nt":
        flags = getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0)
        return {"creationflags": flags}
    return {"start_new_session": True}
