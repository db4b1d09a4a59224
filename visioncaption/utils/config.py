"""
YAML configuration loading with ${ENV_VAR} expansion.
"""

import os
import re
from pathlib import Path

import yaml
from dotenv import load_dotenv

ROOT_DIR = Path(__file__).parent.parent.parent

_ENV_PATTERN = re.compile(r'^\$\{([A-Za-z_][A-Za-z0-9_]*)\}$')


def load_env(env_path=None) -> bool:
    """Load the repository .env file (if present) into os.environ."""
    if env_path is None:
        env_path = ROOT_DIR / '.env'
    return load_dotenv(env_path)


def expand_env(obj):
    """Replace '${NAME}' string values with the environment value ('' if unset)."""
    if isinstance(obj, str):
        match = _ENV_PATTERN.match(obj.strip())
        if match:
            return os.environ.get(match.group(1), '')
        return obj
    elif isinstance(obj, dict):
        return {k: expand_env(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [expand_env(item) for item in obj]
    return obj


def load_config(config_path, defaults: dict = None) -> dict:
    """
    Load a YAML config file and expand environment references.

    A missing file falls back to `defaults` (or an empty dict) with a warning.
    """
    try:
        with open(config_path) as f:
            config = yaml.safe_load(f) or {}
    except FileNotFoundError:
        print(f"Warning: {config_path} not found. Using defaults.")
        config = dict(defaults or {})

    if not isinstance(config, dict):
        raise ValueError(f"{config_path}: top level must be a mapping")

    return expand_env(config)


def get_section(config: dict, name: str) -> dict:
    """Return a config sub-section as a dict, tolerating null/missing values."""
    section = (config or {}).get(name)
    return section if isinstance(section, dict) else {}
