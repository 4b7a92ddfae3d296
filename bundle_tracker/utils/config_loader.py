"""
Shared configuration loader
"""

import copy
import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional


class ConfigError(Exception):
    """Missing or invalid configuration"""


DEFAULT_CONFIG: Dict[str, Any] = {
    'api_keys': {
        'ethereum': '',
        'bsc': '',
        'polygon': '',
    },
    'networks': {
        'ethereum': 'https://api.etherscan.io/api',
        'bsc': 'https://api.bscscan.com/api',
        'polygon': 'https://api.polygonscan.com/api',
    },
    'classifier': {
        'holder_snapshot_limit': 100,
        'working_set_size': 20,
        'batch_size': 3,
        'batch_delay_sec': 0.5,
    },
    'activity': {
        'history_limit': 50,
        'request_timeout_sec': 15,
    },
    'monitoring': {
        'poll_interval_sec': 30,
        'max_concurrency': 3,
        'request_timeout_sec': 10,
        'min_decrease_pct': 1.0,
        'recency_window_sec': 300,
        'history_limit': 20,
    },
    'price': {
        'dexscreener_url': 'https://api.dexscreener.com/latest/dex',
        'cache_ttl_sec': 30,
    },
    'notifications': {
        'discord_webhook_url': '',
        'telegram_bot_token': '',
        'telegram_chat_id': '',
    },
    'database': {
        'file': 'data/alerts.db',
    },
    'logging': {
        'level': 'INFO',
        'file': 'logs/tracker.log',
    },
}

# Secrets may come from the environment instead of the YAML file
ENV_OVERRIDES = {
    'ETHERSCAN_API_KEY': ('api_keys', 'ethereum'),
    'BSCSCAN_API_KEY': ('api_keys', 'bsc'),
    'POLYGONSCAN_API_KEY': ('api_keys', 'polygon'),
    'DISCORD_WEBHOOK_URL': ('notifications', 'discord_webhook_url'),
    'TELEGRAM_BOT_TOKEN': ('notifications', 'telegram_bot_token'),
    'TELEGRAM_CHAT_ID': ('notifications', 'telegram_chat_id'),
}


def deep_merge(base: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge `updates` into `base` in place"""
    for key, value in updates.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def default_config_path() -> Path:
    project_root = Path(__file__).parent.parent.parent
    return project_root / "config" / "config.yml"


def load_config(config_path: Optional[str] = None, apply_env: bool = True) -> Dict[str, Any]:
    """
    Load configuration from a YAML file and merge it over the defaults

    Args:
        config_path: Path to the YAML file (defaults to config/config.yml)
        apply_env: Let environment variables override secrets

    Returns:
        Dictionary containing the full configuration

    Raises:
        ConfigError: If the file is missing or has invalid YAML syntax
    """
    path = Path(config_path) if config_path else default_config_path()

    if not path.exists():
        raise ConfigError(f"Config file not found at {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            file_config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax in {path}: {e}")

    if not isinstance(file_config, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    config = deep_merge(copy.deepcopy(DEFAULT_CONFIG), file_config)

    if apply_env:
        for env_name, (section, key) in ENV_OVERRIDES.items():
            value = os.getenv(env_name)
            if value:
                config.setdefault(section, {})[key] = value

    return config


def validate_required_keys(config: Dict[str, Any], network: str) -> None:
    """
    Validate that the keys needed to analyze `network` are present

    Raises:
        ConfigError: If required keys are missing
    """
    missing_keys = []

    if network not in config.get('networks', {}):
        missing_keys.append(f'networks.{network}')

    if not config.get('api_keys', {}).get(network):
        missing_keys.append(f'api_keys.{network}')

    if missing_keys:
        raise ConfigError(f"Missing required configuration keys: {', '.join(missing_keys)}")


def get_database_path(config: Dict[str, Any]) -> str:
    return config.get('database', {}).get('file', 'data/alerts.db')


def get_log_path(config: Dict[str, Any]) -> str:
    return config.get('logging', {}).get('file', 'logs/tracker.log')


def get_log_level(config: Dict[str, Any]) -> str:
    return config.get('logging', {}).get('level', 'INFO')
