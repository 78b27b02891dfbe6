# hostsweep/configuration.py

"""
Configuration loader for HostSweep.

Handles loading settings from config.yaml. If the file doesn't exist,
it creates one with default values.
"""

import copy
import logging
import yaml
from typing import Dict, Any, Optional

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

# Default structure and values; also used to generate the initial config.yaml.
DEFAULT_CONFIG: Dict[str, Any] = {
    'concurrency_limit': 10,
    'ping_timeout_ms': 1000,
    'port_timeout_ms': 200,
    'default_ports_to_check': [80, 443],
    'ping_method': 'auto',           # Options: auto, icmp, system
    'output_directory': 'results',
    'output_filename': 'scan_results.csv',
    'sort_by_target': False,
    'log_level': 'INFO',
}

CONFIG_HEADER = (
    "# HostSweep Configuration File\n"
    "# You can edit these settings. They are used on the next run.\n\n"
)


def get_config_path() -> str:
    """Returns the default path to the config file."""
    return "config.yaml"


def _write(config: Dict[str, Any], config_path: str) -> None:
    with open(config_path, 'w', encoding='utf-8') as f:
        f.write(CONFIG_HEADER)
        yaml.dump(config, f, sort_keys=False, default_flow_style=False, indent=2)


def save_config(config: Dict[str, Any], config_path: Optional[str] = None) -> bool:
    """Saves the provided configuration dictionary. Returns False if the write failed."""
    config_path = config_path or get_config_path()
    try:
        _write(config, config_path)
        return True
    except OSError as e:
        logger.error("Could not write config file to '%s': %s", config_path, e)
        return False


def load_or_create_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Loads configuration from config.yaml.

    If the file doesn't exist, it creates it with default values. If the
    file is invalid, ConfigError is raised.
    """
    config_path = config_path or get_config_path()
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            user_config = yaml.safe_load(f)
    except FileNotFoundError:
        logger.info("Configuration file not found. Creating '%s' with default settings.", config_path)
        if not save_config(DEFAULT_CONFIG, config_path):
            logger.warning("Continuing with built-in defaults.")
        return copy.deepcopy(DEFAULT_CONFIG)
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing '{config_path}': {e}") from e
    except OSError as e:
        raise ConfigError(f"Could not read '{config_path}': {e}") from e

    # Merge user config with defaults to ensure all keys are present
    config = copy.deepcopy(DEFAULT_CONFIG)
    if user_config is None:
        return config
    if not isinstance(user_config, dict):
        raise ConfigError(f"'{config_path}' must contain a mapping of settings, got {type(user_config).__name__}.")
    unknown = set(user_config) - set(DEFAULT_CONFIG)
    if unknown:
        logger.warning("Ignoring unknown config keys: %s", ", ".join(sorted(unknown)))
    config.update({k: v for k, v in user_config.items() if k in DEFAULT_CONFIG})
    return config
