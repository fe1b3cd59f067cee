"""
Configuration Management
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

from raffle.lottery.errors import ConfigError
from raffle.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_FILE = Path(__file__).parent.parent.parent / "config" / "raffle.conf"

# environment prefix -> config section
ENV_SECTIONS = {
    "RAFFLE_": "raffle",
    "VRF_": "vrf",
    "BLOCKCHAIN_": "blockchain",
    "SERVER_": "server",
    "KEEPER_": "keeper",
    "LOG_": "logging",
}


def load_config(config_file: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """Load configuration from a JSON file and environment variables"""
    config: Dict[str, Any] = {}

    path = Path(config_file) if config_file else DEFAULT_CONFIG_FILE
    if path.exists():
        try:
            with open(path, 'r') as f:
                config.update(json.load(f))
            logger.info(f"Loaded configuration from {path}")
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Error loading config file {path}: {e}") from e
    else:
        logger.warning(f"Config file {path} not found. Will only use environment variables.")

    return _apply_env_overrides(config)


def _apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides to configuration"""
    for key, value in os.environ.items():
        for prefix, section in ENV_SECTIONS.items():
            if key.startswith(prefix):
                name = key[len(prefix):].lower()
                config.setdefault(section, {})[name] = value
                logger.debug(f"Overridden config '{section}.{name}' from environment")
                break

    return config


def get_config_value(config: Dict[str, Any], key_path: str, default=None):
    """Get configuration value by dot-separated key path"""
    keys = key_path.split('.')
    value = config

    try:
        for key in keys:
            value = value[key]
        return value
    except (KeyError, TypeError):
        return default
