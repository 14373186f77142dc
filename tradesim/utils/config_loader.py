# tradesim/utils/config_loader.py
"""
Configuration loading utilities with environment variable support.
"""

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from ..core.errors import ConfigurationError
from ..models.config import AppConfig


DEFAULT_CONFIG_PATH = "configs/config.yaml"


def substitute_env_vars(config_str: str) -> str:
    """
    Substitute environment variables in config string.

    Args:
        config_str: Configuration string with ${VAR_NAME} placeholders

    Returns:
        Configuration string with environment variables substituted
    """
    pattern = r'\$\{([^}]+)\}'

    def replacer(match):
        var_name = match.group(1)
        # Get default value if specified (VAR_NAME:default_value)
        if ':' in var_name:
            var_name, default_value = var_name.split(':', 1)
            return os.getenv(var_name, default_value)
        else:
            return os.getenv(var_name, match.group(0))  # Keep original if not found

    return re.sub(pattern, replacer, config_str)


def _read_yaml_mapping(config_path: str) -> Dict[str, Any]:
    """Read YAML file into a mapping with environment substitution."""
    config_file = Path(config_path)

    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_file, 'r', encoding='utf-8') as f:
        config_content = f.read()

    substituted_content = substitute_env_vars(config_content)
    try:
        config_data = yaml.safe_load(substituted_content)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file {config_path}: {e}") from e

    if not isinstance(config_data, dict):
        raise ConfigurationError("Configuration file must contain a YAML mapping")

    return config_data


def _merge_dicts(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge two dictionaries where override wins."""
    merged = dict(base)
    for key, value in override.items():
        if (
            key in merged
            and isinstance(merged[key], dict)
            and isinstance(value, dict)
        ):
            merged[key] = _merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(
    config_path: str = DEFAULT_CONFIG_PATH,
    base_config_path: Optional[str] = None,
) -> AppConfig:
    """
    Load configuration from YAML file with environment variable substitution.

    Args:
        config_path: Path to configuration file
        base_config_path: Optional file whose values the main file overrides

    Returns:
        Parsed configuration object

    Raises:
        FileNotFoundError: If config file doesn't exist
        ConfigurationError: If the file is not valid YAML or the configuration is invalid
    """
    config_data = _read_yaml_mapping(config_path)

    if base_config_path and Path(base_config_path).exists():
        base_data = _read_yaml_mapping(base_config_path)
        config_data = _merge_dicts(base_data, config_data)

    try:
        return AppConfig.from_dict(config_data)
    except (ValidationError, TypeError) as e:
        raise ConfigurationError(f"Error loading configuration from {config_path}: {e}") from e


def save_config(config: AppConfig, config_path: str = DEFAULT_CONFIG_PATH) -> None:
    """
    Save configuration to YAML file.

    Args:
        config: Configuration object to save
        config_path: Destination path, parent directories are created
    """
    path_obj = Path(config_path)
    path_obj.parent.mkdir(parents=True, exist_ok=True)

    config_data = config.to_dict()

    with open(path_obj, 'w', encoding='utf-8') as f:
        yaml.dump(config_data, f, default_flow_style=False, indent=2, sort_keys=False)


def get_default_config() -> AppConfig:
    """
    Get default configuration for development/testing.

    Returns:
        Default configuration object
    """
    default_config = {
        "backtest": {
            "start_date": "2023-01-01T00:00:00",
            "end_date": "2023-12-31T00:00:00",
            "initial_capital": 100000.0,
            "commission": 1.0,
            "commission_bps": 0.0,
            "slippage_model": "PERCENTAGE",
            "slippage_value": 0.0005,
            "max_positions": 10,
            "unresolved_position_policy": "MARK_LAST_PRICE"
        },
        "risk": {
            "max_daily_loss": 0.02,
            "max_drawdown": 0.10,
            "max_position_size": 0.15,
            "max_sector_exposure": 0.30,
            "max_correlation": 0.70,
            "max_leverage": 2.0,
            "stop_loss_percent": 0.12
        },
        "strategy": {
            "type": "ma_cross",
            "fast_window": 10,
            "slow_window": 30
        },
        "logging": {
            "level": "INFO",
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            "file": None
        }
    }

    return AppConfig.from_dict(default_config)
