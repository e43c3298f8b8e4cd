"""Loads cache settings from a YAML file, a .env file and the environment.

Priority order (highest to lowest):
1. Environment Variables (TRANSCACHE_*)
2. .env file
3. YAML configuration file
4. Built-in defaults (applied later by the configuration resolver)

Nothing here mutates process-wide state: the result is a frozen `Settings`
value that is passed explicitly to `TransparentCache.from_settings` and,
for the logging options, to `configure_logging`.
"""

from dataclasses import dataclass, field
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml
from dotenv import dotenv_values

from transcache.domain.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "TRANSCACHE_"
ENV_FILE_NAME = ".env"

# Setting name -> path inside the YAML document
_SETTING_PATHS: Dict[str, Tuple[str, ...]] = {
    "REDIS_URL": ("redis", "url"),
    "LOCAL_MAX_ENTRIES": ("local", "max_entries"),
    "LOCAL_TTL_MS": ("local", "ttl_ms"),
    "REMOTE_MAX_ENTRIES": ("remote", "max_entries"),
    "REMOTE_TTL_MS": ("remote", "ttl_ms"),
    "REMOTE_COMMAND_TIMEOUT_MS": ("remote", "command_timeout_ms"),
    "WAIT_FOR_REFRESH": ("wait_for_refresh",),
    "LOG_LEVEL": ("log_level",),
    "LOG_FILE": ("log_file",),
}

_INT_SETTINGS = {
    "LOCAL_MAX_ENTRIES",
    "LOCAL_TTL_MS",
    "REMOTE_MAX_ENTRIES",
    "REMOTE_TTL_MS",
    "REMOTE_COMMAND_TIMEOUT_MS",
}


@dataclass(frozen=True)
class Settings:
    """Externally supplied configuration, before defaults are applied."""
    local: Dict[str, int] = field(default_factory=dict)
    remote: Dict[str, int] = field(default_factory=dict)
    wait_for_refresh: Optional[bool] = None
    redis_url: Optional[str] = None
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @property
    def remote_client_config(self) -> Optional[Dict[str, Any]]:
        """Redis client options derived from the settings, if a URL is set."""
        if not self.redis_url:
            return None
        return {"url": self.redis_url}

    def cache_overrides(self) -> Dict[str, Any]:
        """Constructor-level overrides for the configuration resolver."""
        overrides: Dict[str, Any] = {}
        if self.local:
            overrides["local"] = dict(self.local)
        if self.remote:
            overrides["remote"] = dict(self.remote)
        if self.wait_for_refresh is not None:
            overrides["wait_for_refresh"] = self.wait_for_refresh
        return overrides


def find_dotenv_path() -> Optional[Path]:
    """Searches for the .env file upwards from the current directory."""
    cwd = Path.cwd()
    for path in [cwd] + list(cwd.parents):
        env_path = path / ENV_FILE_NAME
        if env_path.is_file():
            return env_path
    return None


def _read_yaml(config_file: Path) -> Dict[str, Any]:
    if not config_file.exists():
        logger.debug(f"YAML config file not found: {config_file}")
        return {}
    with open(config_file, 'r') as f:
        try:
            document = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse YAML config {config_file}: {e}") from e
    if document is None:
        return {}
    if not isinstance(document, dict):
        raise ConfigurationError(f"YAML config file {config_file} did not contain a mapping")
    logger.info(f"Loaded cache configuration from YAML: {config_file}")
    return document


def _flatten_yaml(document: Mapping[str, Any]) -> Dict[str, Any]:
    flat: Dict[str, Any] = {}
    for name, path in _SETTING_PATHS.items():
        node: Any = document
        for part in path:
            if not isinstance(node, Mapping) or part not in node:
                break
            node = node[part]
        else:
            flat[name] = node
    return flat


def _from_env(source: Mapping[str, Optional[str]]) -> Dict[str, Any]:
    flat: Dict[str, Any] = {}
    for name in _SETTING_PATHS:
        value = source.get(ENV_PREFIX + name)
        if value is not None:
            flat[name] = value
    return flat


def _to_int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be an integer, got {value!r}") from e


def _to_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off"):
        return False
    raise ConfigurationError(f"{ENV_PREFIX}{name} must be a boolean, got {value!r}")


def _to_log_level(name: str, value: Any) -> str:
    level_name = str(value).strip().upper()
    if not isinstance(logging.getLevelName(level_name), int):
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be a logging level name, got {value!r}")
    return level_name


def load_settings(
    config_file: Optional[Path] = None,
    env_file: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Loads settings from YAML, .env and environment variables.

    Args:
        config_file: Optional path to a YAML configuration file.
        env_file: Path to a .env file (searches upwards from cwd if None).
        environ: Environment mapping (defaults to os.environ).

    Returns:
        The merged, type-checked settings.

    Raises:
        ConfigurationError: If a file cannot be parsed or a value has the wrong type.
    """
    merged: Dict[str, Any] = {}

    if config_file is not None:
        merged.update(_flatten_yaml(_read_yaml(Path(config_file))))

    dotenv_path = env_file or find_dotenv_path()
    if dotenv_path is not None and Path(dotenv_path).is_file():
        merged.update(_from_env(dotenv_values(dotenv_path)))
        logger.info(f"Loaded cache settings from: {dotenv_path}")

    merged.update(_from_env(os.environ if environ is None else environ))

    local: Dict[str, int] = {}
    remote: Dict[str, int] = {}
    for name in _INT_SETTINGS & merged.keys():
        section, option = _SETTING_PATHS[name]
        target = local if section == "local" else remote
        target[option] = _to_int(name, merged[name])

    wait_for_refresh = None
    if "WAIT_FOR_REFRESH" in merged:
        wait_for_refresh = _to_bool("WAIT_FOR_REFRESH", merged["WAIT_FOR_REFRESH"])

    settings = Settings(
        local=local,
        remote=remote,
        wait_for_refresh=wait_for_refresh,
        redis_url=str(merged["REDIS_URL"]) if merged.get("REDIS_URL") else None,
        log_level=_to_log_level("LOG_LEVEL", merged.get("LOG_LEVEL", "INFO")),
        log_file=str(merged["LOG_FILE"]) if merged.get("LOG_FILE") else None,
    )
    logger.debug(f"Cache settings loaded: {settings}")
    return settings
