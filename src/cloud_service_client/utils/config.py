"""
Configuration utilities for loading YAML settings files.

A settings file may provide any of these sections; command line values win over
file values::

    management:
      endpoint: https://management.core.windows.net
    polling:
      interval_seconds: 30
      max_polls: 40
"""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..models import PollingConfig


class ConfigNotFoundError(Exception):
    """Custom exception for configuration not found errors."""
    pass


def load_settings(yaml_file_path: Path) -> Dict[str, Any]:
    """
    Read a YAML settings file.

    Args:
        yaml_file_path: Path to the YAML settings file

    Returns:
        Dict[str, Any]: Parsed settings (empty dict for an empty file)

    Raises:
        FileNotFoundError: If the YAML file cannot be found
        ConfigNotFoundError: If the document is not a mapping
        yaml.YAMLError: If the YAML file is malformed
    """
    path = Path(yaml_file_path).expanduser()
    if not path.exists():
        raise FileNotFoundError(f"YAML file not found at path: {path}")

    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle)

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigNotFoundError(f"Settings file {path} must contain a mapping at the top level")
    return data


def get_section(settings: Dict[str, Any], name: str) -> Dict[str, Any]:
    """Return one top-level section, or an empty dict when it is absent."""
    section = settings.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigNotFoundError(f"'{name}' section must be a mapping")
    return section


def build_polling_config(
    settings: Dict[str, Any],
    interval_seconds: Optional[float] = None,
    max_polls: Optional[int] = None,
) -> PollingConfig:
    """Merge the ``polling`` section with explicit overrides."""
    values = dict(get_section(settings, "polling"))
    if interval_seconds is not None:
        values["interval_seconds"] = interval_seconds
    if max_polls is not None:
        values["max_polls"] = max_polls
    return PollingConfig(**values)
