"""
Configuration Management Module

Handles loading, validating, and updating application configuration from
configs/config.json. Supports merging user settings over defaults.
"""

import copy
import json
import logging
from pathlib import Path
from typing import Optional

import filelock

logger = logging.getLogger("gains_ledger")

DEFAULT_CONFIG = {
    "accounting": {
        "method": "FIFO",  # FIFO, LIFO, HIFO, SPEC_ID
        "include_fees_in_basis": True,
    },
    "import": {
        "date_format": "MM/DD/YYYY",
        "header_scan_rows": 20,
        "skip_header_rows": 1,
        "default_is_covered": True,
        "exchange_name": "Unknown Exchange",
    },
    "output": {
        "directory": "outputs",
    },
}


def load_config(config_file: Optional[Path] = None) -> dict:
    """
    Load configuration from config.json with sensible defaults

    Args:
        config_file: Override path; defaults to CONFIG_FILE

    Returns:
        dict: Configuration dictionary
    """
    if config_file is None:
        from .constants import CONFIG_FILE
        config_file = CONFIG_FILE

    defaults = copy.deepcopy(DEFAULT_CONFIG)

    if not config_file.exists():
        _save_config(config_file, defaults)
        return defaults

    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            config = json.load(f)
    except json.JSONDecodeError as e:
        logger.error(f"Config file corrupted: {e}. Using defaults.")
        return defaults
    except OSError as e:
        logger.error(f"Error loading config: {e}. Using defaults.")
        return defaults

    if not isinstance(config, dict):
        logger.error("Config file must contain a JSON object. Using defaults.")
        return defaults

    # Merge with defaults to ensure all keys exist
    merged = _deep_merge(defaults, config)

    # Save merged config back if anything was added
    if merged != config:
        _save_config(config_file, merged)

    return merged


def _deep_merge(defaults: dict, override: dict) -> dict:
    """
    Deep merge override config into defaults, preserving new defaults

    Args:
        defaults: Default configuration
        override: User-provided configuration

    Returns:
        dict: Merged configuration
    """
    result = defaults.copy()
    for key, value in override.items():
        if key in defaults and isinstance(defaults[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(defaults[key], value)
        else:
            result[key] = value
    return result


def _save_config(config_file: Path, config: dict):
    """
    Save configuration to file under a file lock

    Args:
        config_file: Path to config file
        config: Configuration dictionary
    """
    lock = filelock.FileLock(str(config_file) + '.lock', timeout=10)
    try:
        config_file.parent.mkdir(parents=True, exist_ok=True)
        with lock:
            with open(config_file, 'w', encoding='utf-8') as f:
                json.dump(config, f, indent=4)
    except filelock.Timeout:
        logger.error(f"Failed to acquire lock for {config_file}")
    except OSError as e:
        logger.error(f"Failed to save config: {e}")
