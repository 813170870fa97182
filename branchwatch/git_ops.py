"""Git subprocess operations."""

import logging
import os
import subprocess
from pathlib import Path
from typing import Sequence

from .log import redact

logger = logging.getLogger(__name__)


class GitError(Exception):
    """Git command failed."""

    def __init__(self, cmd: Sequence[str], stderr: str) -> None:
        self.cmd = cmd
        self.stderr = stderr
        super().__init__(redact(f"git {' '.join(cmd)}: {stderr}"))


def clone_branch(branch: str, url: str, dest: Path) -> int:
    """Clone a single branch into dest and return git's exit status."""
    args = ["clone", "--single-branch", "--branch", branch, url, str(dest)]
    try:
        result = subprocess.run(
            ["git", *args],
            check=False,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            env=_non_interactive_env(),
        )
    except OSError as exc:
        logger.error("Could not run git: %s", exc)
        return 127
    if result.returncode != 0:
        logger.warning("%s", GitError(args, result.stderr.strip() or "unknown error"))
    return result.returncode


def _non_interactive_env() -> dict[str, str]:
    env = dict(os.environ)
    # never prompt for credentials
    env["GIT_TERMINAL_PROMPT"] = "0"
    return env
