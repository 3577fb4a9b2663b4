"""Runtime settings, read from an optional YAML file and the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

from .client import DEFAULT_API_URL, GitHubConfig
from .errors import ConfigurationError

DEFAULT_CONFIG_FILES = ("teamsync.yaml", "teamsync.yml")

# Environment variable -> Settings field. Earlier names win.
ENV_VARS: dict[str, tuple[str, ...]] = {
    "token": ("TEAMSYNC_GITHUB_TOKEN", "GITHUB_TOKEN"),
    "organization": ("TEAMSYNC_ORGANIZATION",),
    "api_url": ("TEAMSYNC_API_URL",),
    "timeout_s": ("TEAMSYNC_TIMEOUT",),
    "store_path": ("TEAMSYNC_STORE",),
    "log_level": ("TEAMSYNC_LOG_LEVEL",),
}


@dataclass(frozen=True)
class Settings:
    token: str | None = None
    organization: str | None = None
    api_url: str = DEFAULT_API_URL
    timeout_s: float = 30.0
    store_path: str = "projects.yaml"
    log_level: str = "INFO"

    def github_config(self) -> GitHubConfig:
        if not self.token:
            raise ConfigurationError.missing_token()
        return GitHubConfig(token=self.token, api_url=self.api_url, timeout_s=self.timeout_s)


def _coerce(name: str, value: Any) -> Any:
    if name == "timeout_s":
        try:
            timeout = float(value)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"timeout must be a number, got {value!r}") from exc
        if timeout <= 0:
            raise ConfigurationError(f"timeout must be positive, got {value!r}")
        return timeout
    return str(value).strip()


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc
    if not data:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping")

    known = {f.name for f in fields(Settings)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"{path}: unknown setting(s) {', '.join(unknown)}")
    return data


def load_settings(path: str | Path | None = None, *, env: dict[str, str] | None = None) -> Settings:
    """Build settings from defaults, then the config file, then the environment.

    Without an explicit ``path`` the first existing file from
    ``DEFAULT_CONFIG_FILES`` in the working directory is used, if any.
    """
    env = os.environ if env is None else env

    config_path: Path | None = None
    if path is not None:
        config_path = Path(path).expanduser()
        if not config_path.exists():
            raise ConfigurationError(f"config file not found: {config_path}")
    else:
        for candidate in DEFAULT_CONFIG_FILES:
            if Path(candidate).exists():
                config_path = Path(candidate)
                break

    values: dict[str, Any] = {}
    if config_path is not None:
        values.update(_read_config_file(config_path))

    for name, variables in ENV_VARS.items():
        for variable in variables:
            if env.get(variable, "").strip():
                values[name] = env[variable]
                break

    return replace(
        Settings(),
        **{name: _coerce(name, value) for name, value in values.items() if value is not None},
    )
