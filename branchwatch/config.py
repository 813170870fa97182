"""Settings resolution: defaults, settings.json, environment, CLI overrides."""

import json
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import cast

DEFAULT_HOME = Path.home() / ".branchwatch"
DEFAULT_API_BASE_URL = "https://api.bitbucket.org/2.0"
DEFAULT_GIT_HOST = "bitbucket.org"
DEFAULT_COOLDOWN_SECONDS = 60.0
DEFAULT_FETCH_WORKERS = 8
DEFAULT_REQUEST_TIMEOUT = 30.0

SETTINGS_FILE = "settings.json"
LOG_FILE = "branchwatch.log"


class ConfigError(Exception):
    """Settings file or override is invalid."""


@dataclass(frozen=True)
class Settings:
    home: Path = DEFAULT_HOME
    cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS
    api_base_url: str = DEFAULT_API_BASE_URL
    git_host: str = DEFAULT_GIT_HOST
    fetch_workers: int = DEFAULT_FETCH_WORKERS
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    @property
    def repositories_root(self) -> Path:
        return self.home / "repositories"

    @property
    def log_file(self) -> Path:
        return self.home / LOG_FILE


def _settings_path(home: Path) -> Path:
    return home / SETTINGS_FILE


def _load_file(home: Path) -> dict[str, object]:
    path = _settings_path(home)
    if not path.is_file():
        return {}

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {path}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(f"Invalid settings format in {path}")
    return cast(dict[str, object], raw)


def _as_float(value: object, key: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ConfigError(f"Invalid value for {key}: {value!r}")
    try:
        number = float(value)
    except ValueError as exc:
        raise ConfigError(f"Invalid value for {key}: {value!r}") from exc
    if number < 0:
        raise ConfigError(f"{key} cannot be negative")
    return number


def _as_positive_int(value: object, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ConfigError(f"Invalid value for {key}: {value!r}")
    try:
        number = int(value)
    except ValueError as exc:
        raise ConfigError(f"Invalid value for {key}: {value!r}") from exc
    if number < 1:
        raise ConfigError(f"{key} must be at least 1")
    return number


def _as_str(value: object, key: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"Invalid value for {key}: {value!r}")
    return value.strip()


def load_settings(
    home: Path | None = None,
    cooldown_seconds: float | None = None,
    environ: dict[str, str] | None = None,
) -> Settings:
    """Resolve settings. Later sources win: file, environment, arguments."""
    env = os.environ if environ is None else environ

    if home is None:
        env_home = env.get("BRANCHWATCH_HOME")
        home = Path(env_home).expanduser() if env_home else DEFAULT_HOME

    settings = Settings(home=home)
    raw = _load_file(home)

    if "cooldown_seconds" in raw:
        settings = replace(
            settings, cooldown_seconds=_as_float(raw["cooldown_seconds"], "cooldown_seconds")
        )
    if "api_base_url" in raw:
        settings = replace(settings, api_base_url=_as_str(raw["api_base_url"], "api_base_url"))
    if "git_host" in raw:
        settings = replace(settings, git_host=_as_str(raw["git_host"], "git_host"))
    if "fetch_workers" in raw:
        settings = replace(
            settings, fetch_workers=_as_positive_int(raw["fetch_workers"], "fetch_workers")
        )
    if "request_timeout" in raw:
        settings = replace(
            settings, request_timeout=_as_float(raw["request_timeout"], "request_timeout")
        )

    if env.get("BRANCHWATCH_COOLDOWN"):
        settings = replace(
            settings,
            cooldown_seconds=_as_float(env["BRANCHWATCH_COOLDOWN"], "BRANCHWATCH_COOLDOWN"),
        )
    if env.get("BRANCHWATCH_API_URL"):
        settings = replace(
            settings, api_base_url=_as_str(env["BRANCHWATCH_API_URL"], "BRANCHWATCH_API_URL")
        )

    if cooldown_seconds is not None:
        settings = replace(
            settings, cooldown_seconds=_as_float(cooldown_seconds, "cooldown_seconds")
        )

    return settings
