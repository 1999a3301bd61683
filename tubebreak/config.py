"""Configuration models and helpers for tubebreak."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_API_KEY_PLACEHOLDER = "SET_ME"
API_KEY_ENV_VAR = "TUBEBREAK_YOUTUBE_API_KEY"
CONFIG_DIR_ENV_VAR = "TUBEBREAK_CONFIG_DIR"
ENV_FILE_KEY = "YOUTUBE_API_KEY"


@dataclass(frozen=True)
class BootstrapReport:
    """Summary of files/directories created during initialisation."""

    base_created: bool
    global_config_created: bool
    global_config_overwritten: bool
    extension_state_created: bool


class ConfigError(RuntimeError):
    """Raised when configuration files cannot be parsed or are invalid."""


@dataclass(frozen=True)
class ConfigPaths:
    """Resolved filesystem locations used by the application."""

    base_dir: Path
    global_config: Path
    extension_state: Path
    env_file: Path

    @classmethod
    def default(cls) -> "ConfigPaths":
        """Return default locations under the user's home directory."""

        return cls.from_base_dir(Path.home() / ".tubebreak")

    @classmethod
    def from_base_dir(cls, base_dir: Path) -> "ConfigPaths":
        """Construct paths using ``base_dir`` as root."""

        base_dir = base_dir.expanduser()
        return cls(
            base_dir=base_dir,
            global_config=base_dir / "config.yml",
            extension_state=base_dir / "extension.json",
            env_file=base_dir / "env.json",
        )


class YouTubeSettings(BaseModel):
    """YouTube Data API access."""

    api_key: Optional[str] = None
    api_base_url: str = Field(default="https://www.googleapis.com/youtube/v3")
    page_size: int = Field(default=50, ge=1, le=50)
    max_pages: int = Field(default=1, ge=1)
    request_timeout: float = Field(default=10.0, gt=0.0)

    model_config = ConfigDict(extra="forbid")


class RuntimeSettings(BaseModel):
    """Runtime-level defaults."""

    timezone: str = Field(default="local")
    log_level: str = Field(default="INFO")

    model_config = ConfigDict(extra="forbid")


class ScheduleSettings(BaseModel):
    """Wall-clock minutes that mark break and work boundaries."""

    break_minutes: List[int] = Field(default_factory=lambda: [25, 55])
    work_minutes: List[int] = Field(default_factory=lambda: [0, 30])
    break_cooldown_minutes: float = Field(default=5.0, ge=0.0)

    model_config = ConfigDict(extra="forbid")

    @field_validator("break_minutes", "work_minutes")
    @classmethod
    def check_minutes(cls, value: List[int]) -> List[int]:
        for minute in value:
            if not 0 <= minute <= 59:
                raise ValueError(f"Minute out of range 0..59: {minute}")
        return sorted(set(value))

    @model_validator(mode="after")
    def check_disjoint(self) -> "ScheduleSettings":
        overlap = set(self.break_minutes) & set(self.work_minutes)
        if overlap:
            raise ValueError(f"Minutes cannot be both break and work: {sorted(overlap)}")
        return self


class FetchSettings(BaseModel):
    """Retry and throttling behaviour for outbound API calls."""

    max_attempts: int = Field(default=3, ge=1)
    base_delay_seconds: float = Field(default=1.0, ge=0.0)
    min_interval_seconds: float = Field(default=1.0, ge=0.0)

    model_config = ConfigDict(extra="forbid")


class DisplaySettings(BaseModel):
    """How a selected video is shown to the user."""

    mode: Literal["embed", "watch"] = "embed"
    target: Literal["tab", "window"] = "tab"
    notifications: bool = True
    app_name: str = "tubebreak"

    model_config = ConfigDict(extra="forbid")


class GlobalConfig(BaseModel):
    """Top-level configuration file model."""

    youtube: YouTubeSettings = Field(default_factory=YouTubeSettings)
    runtime: RuntimeSettings = Field(default_factory=RuntimeSettings)
    schedule: ScheduleSettings = Field(default_factory=ScheduleSettings)
    fetch: FetchSettings = Field(default_factory=FetchSettings)
    display: DisplaySettings = Field(default_factory=DisplaySettings)

    model_config = ConfigDict(extra="forbid")


def resolve_config_dir(override: Optional[Path]) -> Optional[Path]:
    """Return ``override`` or the directory named by ``TUBEBREAK_CONFIG_DIR``."""

    if override:
        return Path(override).expanduser()
    env_value = os.getenv(CONFIG_DIR_ENV_VAR)
    if env_value:
        return Path(env_value).expanduser()
    return None


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except FileNotFoundError as exc:
        raise ConfigError(f"Configuration file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse YAML file: {path}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Expected mapping at top level of {path}")
    return data


def load_global_config(path: Path) -> GlobalConfig:
    """Load and validate the global configuration file.

    A missing file yields the built-in defaults so the tool works before
    ``tubebreak init`` has been run.
    """

    if not path.exists():
        return GlobalConfig()
    payload = _read_yaml(path)
    try:
        return GlobalConfig.model_validate(payload)
    except ValueError as exc:
        raise ConfigError(f"Invalid configuration in {path}: {exc}") from exc


def load_api_key(global_config: GlobalConfig, paths: ConfigPaths) -> Optional[str]:
    """Return the YouTube API key, or ``None`` when no credential is configured.

    Lookup order: ``youtube.api_key`` in config.yml, the
    ``TUBEBREAK_YOUTUBE_API_KEY`` environment variable, then the
    ``YOUTUBE_API_KEY`` entry of ``env.json``.
    """

    configured = (global_config.youtube.api_key or "").strip()
    if configured and configured != DEFAULT_API_KEY_PLACEHOLDER:
        return configured

    env_value = (os.getenv(API_KEY_ENV_VAR) or "").strip()
    if env_value:
        return env_value

    if not paths.env_file.exists():
        return None
    try:
        with paths.env_file.open("r", encoding="utf-8") as handle:
            payload = json.load(handle) or {}
    except (OSError, ValueError) as exc:
        raise ConfigError(f"Failed to read credential file: {paths.env_file}") from exc

    if not isinstance(payload, dict):
        return None
    value = str(payload.get(ENV_FILE_KEY) or "").strip()
    return value or None


def _default_global_config() -> Dict[str, Any]:
    """Dictionary representing the starter global configuration."""

    return {
        "youtube": {
            "api_key": DEFAULT_API_KEY_PLACEHOLDER,
            "page_size": 50,
            "max_pages": 1,
        },
        "runtime": {
            "timezone": "local",
            "log_level": "INFO",
        },
        "schedule": {
            "break_minutes": [25, 55],
            "work_minutes": [0, 30],
            "break_cooldown_minutes": 5,
        },
        "fetch": {
            "max_attempts": 3,
            "base_delay_seconds": 1.0,
            "min_interval_seconds": 1.0,
        },
        "display": {
            "mode": "embed",
            "target": "tab",
            "notifications": True,
        },
    }


def _write_yaml(path: Path, data: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(data, handle, sort_keys=False)


def bootstrap(paths: ConfigPaths, overwrite: bool = False) -> BootstrapReport:
    """Ensure the configuration directory and starter files exist.

    Parameters
    ----------
    paths:
        Target filesystem layout.
    overwrite:
        When ``True`` config.yml is re-written even if it already exists.
        The playlist state file is never overwritten.
    """

    from .state import ConfigStore

    base_created = False
    global_config_created = False
    global_config_overwritten = False
    extension_state_created = False

    if not paths.base_dir.exists():
        paths.base_dir.mkdir(parents=True, exist_ok=True)
        base_created = True

    existing_global = paths.global_config.exists()
    if not existing_global or overwrite:
        _write_yaml(paths.global_config, _default_global_config())
        global_config_created = True
        global_config_overwritten = existing_global and overwrite

    if not paths.extension_state.exists():
        store = ConfigStore(paths.extension_state)
        store.save(store.load())
        extension_state_created = True

    return BootstrapReport(
        base_created=base_created,
        global_config_created=global_config_created,
        global_config_overwritten=global_config_overwritten,
        extension_state_created=extension_state_created,
    )
