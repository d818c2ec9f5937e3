#!/usr/bin/env python3

import os
import json
import tomllib
from pathlib import Path

import logging
import sys

import yaml

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / '.mthds'
CONFIG_FILENAMES = ['config.toml', 'config.json', 'config.yaml', 'config.yml']
ENV_PREFIX = "MTHDS_"


def get_config_path():
    """Get the path to the configuration file.

    Checks in order:
    1. MTHDS_CONFIG environment variable
    2. ~/.mthds/config.{toml,json,yaml,yml}
    """
    if 'MTHDS_CONFIG' in os.environ:
        path = Path(os.environ['MTHDS_CONFIG']).expanduser()
        if path.exists():
            return path
        logger.debug(f"MTHDS_CONFIG points to missing file {path}")

    for filename in CONFIG_FILENAMES:
        path = CONFIG_DIR / filename
        if path.exists():
            return path

    # Default path for saving
    return CONFIG_DIR / 'config.toml'


def get_default_config():
    """Get default configuration."""
    return {
        "cache": {
            "root": str(CONFIG_DIR / 'packages'),
        },
        "git": {
            "ls_remote_timeout": 60,
            "clone_timeout": 120,
        },
        "resolution": {
            "max_workers": 4,
        },
        "discovery": {
            "max_workers": 5,
        },
        "github": {
            "token": "",
        },
        "logging": {
            "level": "WARNING",
            "format": "%(levelname)s: %(message)s",
        },
    }


def _read_config_file(config_path: Path) -> dict:
    suffix = config_path.suffix.lower()
    if suffix == '.toml':
        with open(config_path, 'rb') as f:
            return tomllib.load(f)
    if suffix in ('.yaml', '.yml'):
        with open(config_path, 'r') as f:
            return yaml.safe_load(f) or {}
    with open(config_path, 'r') as f:
        return json.load(f)


def load_config():
    """Load configuration: defaults, then the config file, then MTHDS_* env vars."""
    config_path = get_config_path()
    config = get_default_config()

    if config_path.exists():
        try:
            file_config = _read_config_file(config_path)
            if isinstance(file_config, dict):
                config = merge_configs(config, file_config)
            else:
                logger.error(f"Ignoring config {config_path}: top level must be a table")
        except (OSError, ValueError, tomllib.TOMLDecodeError, yaml.YAMLError) as e:
            logger.error(f"Error loading config from {config_path}: {e}")

    return apply_env_overrides(config)


def merge_configs(base_config, override_config):
    """
    Recursively merge two configuration dictionaries.

    Args:
        base_config (dict): Base configuration
        override_config (dict): Configuration to merge/override with

    Returns:
        dict: Merged configuration
    """
    merged = base_config.copy()

    for key, value in override_config.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = merge_configs(merged[key], value)
        else:
            merged[key] = value

    return merged


def _typed_env_value(value: str):
    if value.lower() in ('true', 'yes', 'on'):
        return True
    if value.lower() in ('false', 'no', 'off'):
        return False
    if value.isdigit():
        return int(value)
    return value


def apply_env_overrides(config):
    """
    Apply environment variable overrides to configuration.
    Environment variables follow the pattern: MTHDS_SECTION_KEY
    For example: MTHDS_GIT_CLONE_TIMEOUT=300 or MTHDS_CACHE_ROOT=/tmp/cache
    """
    for env_key, value in os.environ.items():
        if not env_key.startswith(ENV_PREFIX) or env_key == 'MTHDS_CONFIG':
            continue

        key_parts = env_key[len(ENV_PREFIX):].lower().split('_')
        typed_value = _typed_env_value(value)

        current_level = config
        i = 0
        while i < len(key_parts):
            # Longest config key that is a prefix of the remaining parts
            best_match_len = 0
            matched_key = None

            for config_key in current_level.keys():
                config_key_parts = config_key.split('_')
                if key_parts[i: i + len(config_key_parts)] == config_key_parts:
                    if len(config_key_parts) > best_match_len:
                        best_match_len = len(config_key_parts)
                        matched_key = config_key

            if matched_key is None:
                break

            if i + best_match_len == len(key_parts):
                current_level[matched_key] = typed_value
                break

            if not isinstance(current_level[matched_key], dict):
                break
            current_level = current_level[matched_key]
            i += best_match_len

    return config


def configure_logging(config=None, verbose: bool = False):
    """
    Configure the ``mthds`` logger from the ``logging`` config section.

    Logs go to stderr so stdout stays clean for command output.
    """
    if config is None:
        config = load_config()
    log_config = config.get('logging', {})

    level_name = 'DEBUG' if verbose else str(log_config.get('level', 'WARNING')).upper()
    level = getattr(logging, level_name, logging.WARNING)

    root = logging.getLogger('mthds')
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(log_config.get('format', "%(levelname)s: %(message)s")))
    root.addHandler(handler)
    return root
