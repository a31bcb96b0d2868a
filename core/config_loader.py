"""YAML configuration loader utility."""

from pathlib import Path
from typing import Any

import yaml


def load_config(path: str | Path) -> dict[str, Any]:
    """
    Load a YAML configuration file.

    Args:
        path: Path to the YAML file.

    Returns:
        Dictionary containing the parsed configuration.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        yaml.YAMLError: If the file contains invalid YAML.
        ValueError: If the top level is not a mapping.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f)

    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ValueError(f"Config file {path} must contain a mapping, got {type(config).__name__}")
    return config


def load_optional_config(path: str | Path | None) -> dict[str, Any]:
    """
    Load a YAML settings file if a path is given and the file exists.

    Args:
        path: Optional path to the YAML file.

    Returns:
        Parsed mapping, or an empty dict when no file is configured.
    """
    if not path:
        return {}
    path = Path(path)
    if not path.exists():
        return {}
    return load_config(path)
