import os

import yaml


def load_config(config_path="config.yaml"):
    """
    Load configuration from a YAML file.
    """
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f)

    return config or {}


def section(config: dict, name: str) -> dict:
    """Return a config section as a dict, tolerating missing or null sections."""
    value = (config or {}).get(name)
    return value if isinstance(value, dict) else {}
