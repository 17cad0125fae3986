"""
Configuration loader
"""
import os
from pathlib import Path
from typing import Optional

import yaml

from liveboard.models import Settings


DEFAULT_CONFIG_PATH = "config/liveboard.yaml"

# Environment variable -> settings field
ENV_OVERRIDES = {
    "REDIS_URL": "redis_url",
    "HOST": "host",
    "PORT": "port",
    "LIVEBOARD_BACKEND": "backend",
    "LIVEBOARD_LOG_LEVEL": "log_level",
}


def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file, then apply environment overrides

    Args:
        config_path: Path to config file. Defaults to $LIVEBOARD_CONFIG, then
            config/liveboard.yaml. An explicitly named file must exist; a
            missing default file means built-in defaults.

    Returns:
        Settings object
    """
    explicit = config_path or os.getenv("LIVEBOARD_CONFIG")
    path = Path(explicit or DEFAULT_CONFIG_PATH)

    data = {}
    if path.exists():
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    elif explicit:
        raise FileNotFoundError(f"Config file not found: {explicit}")

    for env_name, field in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            data[field] = value

    return Settings(**data)
