"""ConfigLoader: YAML file per environment, env vars override."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml

from speedmon_server.config.settings import ENV_PREFIX, Settings

_CONFIG_ROOT = Path(__file__).resolve().parent


class ConfigLoader:
    """Load settings from YAML files with environment variable overrides."""

    @staticmethod
    def _load_yaml(env: str) -> dict[str, Any]:
        """Load the settings.yaml for the given environment."""
        path = _CONFIG_ROOT / env / "settings.yaml"
        if not path.exists():
            return {}
        with path.open() as config_file:
            data = yaml.safe_load(config_file)
        return data if isinstance(data, dict) else {}

    @staticmethod
    def load_settings(**overrides: Any) -> Settings:
        """Build Settings with priority: overrides > env vars > YAML > defaults.

        YAML values are only used for fields that have no matching
        environment variable, so env vars always win.
        """
        env = os.environ.get(f"{ENV_PREFIX}ENV", "dev")
        yaml_values = ConfigLoader._load_yaml(env)
        # pydantic-settings treats __init__ kwargs as highest priority,
        # so YAML keys shadowed by an env var must be dropped here.
        filtered = {
            key: value
            for key, value in yaml_values.items()
            if f"{ENV_PREFIX}{key.upper()}" not in os.environ
        }
        return Settings(**{**filtered, **overrides})
