"""Reading and writing peerhost.yaml.

The config file is located in this order: an explicit path, the
``PEERHOST_CONFIG`` environment variable, then ``~/.peerhost/peerhost.yaml``.
A missing file means zero-config mode with all defaults.

Relative ``node.data_dir`` and ``storage.directory`` values are resolved
against the directory holding the config file, so a node directory can be
moved as a whole.
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from peerhost.config.schema import PeerHostConfig

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "PEERHOST_CONFIG"
DEFAULT_CONFIG_PATH = Path.home() / ".peerhost" / "peerhost.yaml"


class ConfigError(Exception):
    """Configuration loading or validation error."""


def resolve_config_path(path: str | Path | None = None) -> Path:
    """Pick the config file to use (explicit, then environment, then default)."""
    if path is not None:
        return Path(path).expanduser()
    from_env = os.environ.get(CONFIG_ENV_VAR)
    if from_env:
        return Path(from_env).expanduser()
    return DEFAULT_CONFIG_PATH


def _read_mapping(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to load config from {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Top level of {path} must be a mapping")
    return data


def _anchor_directories(config: PeerHostConfig, base: Path) -> None:
    if not config.node.data_dir.startswith("~") and not Path(config.node.data_dir).is_absolute():
        config.node.data_dir = str(base / config.node.data_dir)

    directory = config.storage.directory
    if directory and not directory.startswith("~") and not Path(directory).is_absolute():
        config.storage.directory = str(base / directory)


def load_config(path: str | Path | None = None) -> PeerHostConfig:
    """Load and validate the node configuration.

    Args:
        path: Config file. If None, ``PEERHOST_CONFIG`` or the default
              location is used.

    Returns:
        Validated configuration; defaults when the file does not exist

    Raises:
        ConfigError: If the file exists but cannot be read or is invalid
    """
    path = resolve_config_path(path)
    if not path.exists():
        logger.debug("No config at %s, using defaults", path)
        return PeerHostConfig()

    data = _read_mapping(path)
    try:
        config = PeerHostConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Configuration validation failed: {e}") from e

    _anchor_directories(config, path.resolve().parent)
    logger.debug(
        "Loaded config from %s (data_dir=%s, storage=%s)",
        path,
        config.data_dir,
        config.storage.backend,
    )
    return config


def save_config(config: PeerHostConfig, path: str | Path | None = None) -> Path:
    """Write the configuration as YAML.

    Args:
        config: Configuration to save
        path: Destination. If None, ``PEERHOST_CONFIG`` or the default
              location is used.

    Returns:
        The path written
    """
    path = resolve_config_path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        yaml.safe_dump(config.model_dump(mode="json"), default_flow_style=False, sort_keys=False)
    )
    return path
