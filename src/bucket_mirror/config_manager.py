"""Per-user defaults stored in ~/.bucket-mirror/config.yaml."""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

CONFIG_KEYS = ("profile", "region", "bucket", "endpoint_url")


def get_config_path() -> Path:
    """Location of the user config file."""
    return Path.home() / ".bucket-mirror" / "config.yaml"


def load_config(config_path: Path) -> Optional[Dict[str, Any]]:
    """
    Load the user config file.

    Returns None when the file does not exist or is empty. Malformed YAML
    raises ``yaml.YAMLError``.
    """
    if not config_path.exists():
        return None

    with open(config_path, "r") as f:
        return yaml.safe_load(f)


def save_config(config_path: Path, config_data: Dict[str, Any]) -> None:
    """Write the user config file, creating its directory if needed."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        yaml.safe_dump(config_data, f, default_flow_style=False, sort_keys=False)
