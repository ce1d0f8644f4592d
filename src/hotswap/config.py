"""Updater settings.

Settings come from, in increasing precedence:
1. Defaults on UpdaterConfig
2. A YAML file (``~/.hotswap/config.yaml`` or an explicit path)
3. Environment variables (``HOTSWAP_MANIFEST_URL``)
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Final

import yaml

logger = logging.getLogger(__name__)

STATE_DIR: Final = Path.home() / ".hotswap"
DEFAULT_CONFIG_FILE: Final = STATE_DIR / "config.yaml"

MANIFEST_URL_ENV: Final = "HOTSWAP_MANIFEST_URL"


class ConfigError(Exception):
    """Raised when a config file cannot be read or contains invalid settings."""


@dataclass
class UpdaterConfig:
    """Configuration for an update run."""

    # Manifest locator (URL or local path) used when none is given explicitly
    manifest_url: str | None = None

    # Transfer tuning
    chunk_size: int = 8192
    http_timeout: float = 30.0
    verify_tls: bool = True

    # Wait after terminating each process before continuing
    stop_grace_seconds: float = 1.0

    # Post-update behaviour
    restart_executables: bool = True
    cleanup_backups: bool = True

    # Skip download when current_path already matches the expected hash
    skip_up_to_date: bool = True

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ConfigError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.http_timeout <= 0:
            raise ConfigError(f"http_timeout must be positive, got {self.http_timeout}")
        if self.stop_grace_seconds < 0:
            raise ConfigError(f"stop_grace_seconds must not be negative, got {self.stop_grace_seconds}")


def _from_mapping(data: dict[str, Any]) -> UpdaterConfig:
    known = {f.name for f in fields(UpdaterConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")
    try:
        return UpdaterConfig(**data)
    except TypeError as e:
        raise ConfigError(str(e)) from e


def load_config(path: Path | None = None, env: dict[str, str] | None = None) -> UpdaterConfig:
    """Load settings from YAML and the environment.

    Args:
        path: Config file. If None, ``~/.hotswap/config.yaml`` is used when it exists.
        env: Environment mapping; defaults to ``os.environ``.

    Returns:
        UpdaterConfig with file and environment overrides applied.

    Raises:
        ConfigError: If an explicit file is missing, or any file is malformed.
    """
    env = os.environ if env is None else env
    data: dict[str, Any] = {}

    config_file = path if path is not None else DEFAULT_CONFIG_FILE
    if config_file.exists():
        try:
            loaded = yaml.safe_load(config_file.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to read config file {config_file}: {e}") from e
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigError(f"Config file {config_file} must contain a mapping")
        data.update(loaded)
        logger.debug(f"Loaded config from {config_file}")
    elif path is not None:
        raise ConfigError(f"Config file not found: {path}")

    manifest_url = env.get(MANIFEST_URL_ENV)
    if manifest_url:
        data["manifest_url"] = manifest_url

    return _from_mapping(data)
