"""Show or change Cardano-NodeKit configuration values."""

import logging
from typing import Any, Optional

import tomli_w

from cardano_nodekit.config import get_config

logger = logging.getLogger(__name__)


def parse_value(raw: str) -> Any:
    """Interpret a command-line value as a TOML scalar where it looks like one."""
    lowered = raw.strip().lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    for cast in (int, float):
        try:
            return cast(raw)
        except ValueError:
            continue
    return raw


def show_config(config_path: Optional[str] = None) -> bool:
    """Print the merged configuration as TOML."""
    config = get_config(custom_path=config_path)
    print(tomli_w.dumps(config.config_data), end="")
    return True


def set_config_value(key: str, raw_value: str, target: Optional[str] = None, config_path: Optional[str] = None) -> bool:
    """Persist a single key; written to ``target`` or the user config file."""
    if not key or key.startswith(".") or key.endswith("."):
        logger.error(f"Invalid configuration key: {key!r}")
        return False

    config = get_config(custom_path=config_path)
    value = parse_value(raw_value)
    # An explicit --config file is the one being edited
    save_path = target or config_path or config.user_config_path
    return config.set(key, value, save_path=save_path)
