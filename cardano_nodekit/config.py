"""Unified configuration system for Cardano-NodeKit."""

import copy
import logging
import math
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, Optional, List, Union

# Handle different Python versions for TOML support
if sys.version_info >= (3, 11):
    import tomllib as tomli
else:
    import tomli
import tomli_w

logger = logging.getLogger(__name__)

# Listen ports at or above this value denote a block-producer listener.
PRODUCER_PORT_THRESHOLD = 6000

# Environment variables that override file configuration.
ENV_OVERRIDES = {
    "PARENT_ADDRESS": "failover.parent_address",
    "PARENT_PORT": "failover.parent_port",
    "EXTERNAL_IPV4_ADDRESS": "network.external_ipv4_address",
    "EXTERNAL_IPV6_ADDRESS": "network.external_ipv6_address",
}

DEFAULT_CONFIG: Dict[str, Any] = {
    "failover": {
        "parent_address": "",
        "parent_port": PRODUCER_PORT_THRESHOLD,
        "service_name": "cardano-node",
        "unit_paths": [
            "/etc/systemd/system/cardano-node.service",
            "/lib/systemd/system/cardano-node.service",
        ],
        "producer_env_suffix": ".normal",
        "standby_env_suffix": ".standingby",
        "credentials_dir": "/home/cardano/priv-mainnet",
        "kes_key": "kes.skey",
        "vrf_key": "vrf.skey",
        "operational_certificate": "node.cert",
        "probe_timeout": 3.0,
        "probe_attempts": 3,
        "probe_interval": 1.0,
        "lock_file": "/run/lock/cardano-nodekit-failover.lock",
    },
    "network": {
        "ipinfo_token": "",
        "external_ipv4_address": "",
        "external_ipv6_address": "",
        "external_ipv6_url": "https://v6.ipinfo.io/ip",
        "lookup_timeout": 3.0,
    },
    "logging": {
        "syslog": True,
        "syslog_address": "/dev/log",
        "timezone": "UTC",
    },
}

PROBE_TIMEOUT_MIN = 2.0
PROBE_TIMEOUT_MAX = 5.0


class ConfigError(Exception):
    """Raised when a required configuration value is missing or invalid."""


class Config:
    """Unified configuration manager for all NodeKit components."""

    def __init__(self, custom_config_path: Optional[str] = None, environ: Optional[Dict[str, str]] = None):
        """Initialize configuration with unified loading strategy.

        Args:
            custom_config_path: Path to a custom config file (highest priority)
            environ: Environment mapping to read overrides from (default: os.environ)
        """
        self.config_data = {}
        self.environ = os.environ if environ is None else environ

        # Define config file paths in order of priority
        self.config_paths = self._get_config_paths(custom_config_path)

        # Load configuration, starting with defaults and overriding
        self._load_configuration()

    def _get_config_paths(self, custom_path: Optional[str] = None) -> List[Path]:
        """Get configuration file paths in priority order.

        Args:
            custom_path: Optional custom config path

        Returns:
            List of config paths in priority order (highest priority first)
        """
        paths = []

        # 1. Custom path (if provided) - highest priority
        if custom_path:
            paths.append(Path(custom_path))

        # 2. Project root local config (for development)
        project_root = Path(__file__).parent.parent
        paths.append(project_root / "config.local.toml")

        # 3. User config in ~/.config (for user customization)
        paths.append(self.user_config_path)

        # 4. System-wide config, where the scheduled heartbeat usually reads from
        paths.append(Path("/etc/cardano-nodekit/config.toml"))

        return paths

    @property
    def user_config_path(self) -> Path:
        return Path.home() / ".config" / "cardano-nodekit" / "config.toml"

    def _load_configuration(self):
        """Load configuration from all paths, with priority override."""
        # Start with the built-in defaults
        config = copy.deepcopy(DEFAULT_CONFIG)

        # Reverse the paths list to load from lowest to highest priority
        for path in reversed(self.config_paths):
            if path.exists():
                try:
                    with open(path, "rb") as f:
                        new_config = tomli.load(f)
                        # Deep merge with existing config
                        self._deep_merge(config, new_config)
                    logger.debug(f"Loaded configuration from {path}")
                except (OSError, tomli.TOMLDecodeError) as e:
                    logger.warning(f"Error reading config file {path}: {e}")

        # Environment variables win over every file
        for env_name, key in ENV_OVERRIDES.items():
            value = self.environ.get(env_name)
            if value:
                logger.debug(f"Using {env_name} from environment for {key}")
                self._set_in(config, key, value)

        # Store the merged config
        self.config_data = config

    def _deep_merge(self, target: Dict[str, Any], source: Dict[str, Any]):
        """Deep merge source dict into target dict."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._deep_merge(target[key], value)
            else:
                target[key] = value

    @staticmethod
    def _set_in(config: Dict[str, Any], key: str, value: Any):
        keys = key.split('.')
        for k in keys[:-1]:
            if k not in config or not isinstance(config[k], dict):
                config[k] = {}
            config = config[k]
        config[keys[-1]] = value

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by key.

        Args:
            key: The key to retrieve, can use dot notation for nested keys
            default: Default value if key doesn't exist

        Returns:
            The configuration value or default
        """
        keys = key.split('.')
        result = self.config_data

        for k in keys:
            if isinstance(result, dict) and k in result:
                result = result[k]
            else:
                return default

        return result

    def set(self, key: str, value: Any, save_path: Optional[Path] = None) -> bool:
        """Set a configuration value and optionally save to file.

        Args:
            key: The key to set, can use dot notation for nested keys
            value: The value to set
            save_path: Path to save the value to (default: only kept in memory)

        Returns:
            True if successful, False otherwise
        """
        self._set_in(self.config_data, key, value)

        # Save to file if requested
        if save_path:
            return self.save_key(key, value, save_path)

        return True

    def save_key(self, key: str, value: Any, path: Optional[Union[str, Path]] = None) -> bool:
        """Persist a single key into a TOML file, keeping the file's other keys.

        Only the one key is written so that defaults and values coming from
        other layers are not frozen into the user's file.

        Args:
            key: Dotted key to write
            value: Value to write
            path: File to update (default: the user config in ~/.config)

        Returns:
            True if successful, False otherwise
        """
        save_path = Path(path) if path else self.user_config_path

        try:
            existing: Dict[str, Any] = {}
            if save_path.exists():
                with open(save_path, "rb") as f:
                    existing = tomli.load(f)
            self._set_in(existing, key, value)

            # Create parent directory if it doesn't exist
            save_path.parent.mkdir(parents=True, exist_ok=True)

            # Write the config
            with open(save_path, "wb") as f:
                tomli_w.dump(existing, f)
            logger.info(f"Saved {key} to {save_path}")
            return True
        except (OSError, tomli.TOMLDecodeError) as e:
            logger.error(f"Error saving configuration to {save_path}: {e}")
            return False

    # Helper methods for the failover controller

    def get_parent_address(self) -> str:
        """Get the configured parent address (IP or hostname)."""
        address = str(self.get("failover.parent_address", "") or "").strip()
        if not address:
            raise ConfigError(
                "Configuration missing: failover.parent_address (or PARENT_ADDRESS in the environment)"
            )
        # Accept the bracketed form used for IPv6 in host:port notation
        return address.strip("[]")

    def get_parent_port(self) -> int:
        """Get the parent's node listening port."""
        value = self.get("failover.parent_port", PRODUCER_PORT_THRESHOLD)
        try:
            port = int(value)
        except (TypeError, ValueError):
            raise ConfigError(f"Invalid failover.parent_port: {value!r}")
        if not 0 < port < 65536:
            raise ConfigError(f"failover.parent_port out of range: {port}")
        return port

    def get_credential_paths(self) -> Dict[str, Path]:
        """Get the KES key, VRF key and operational certificate paths."""
        base = Path(self.get("failover.credentials_dir", ""))
        paths = {}
        for name in ("kes_key", "vrf_key", "operational_certificate"):
            path = Path(self.get(f"failover.{name}", ""))
            paths[name] = path if path.is_absolute() else base / path
        return paths

    def get_probe_timeout(self) -> float:
        """Get the per-attempt probe timeout, clamped to a short bounded window."""
        value = self.get("failover.probe_timeout", 3.0)
        try:
            timeout = float(value)
        except (TypeError, ValueError):
            raise ConfigError(f"Invalid failover.probe_timeout: {value!r}")
        if not math.isfinite(timeout):
            raise ConfigError(f"Invalid failover.probe_timeout: {value!r}")
        clamped = min(max(timeout, PROBE_TIMEOUT_MIN), PROBE_TIMEOUT_MAX)
        if clamped != timeout:
            logger.warning(f"failover.probe_timeout {timeout}s outside {PROBE_TIMEOUT_MIN}-{PROBE_TIMEOUT_MAX}s; using {clamped}s")
        return clamped

    def get_failover_settings(self) -> "FailoverSettings":
        """Build the validated settings for one heartbeat run."""
        try:
            attempts = int(self.get("failover.probe_attempts", 3))
            interval = float(self.get("failover.probe_interval", 1.0))
            lookup_timeout = float(self.get("network.lookup_timeout", 3.0))
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid probe or lookup setting: {e}")
        if not (math.isfinite(interval) and math.isfinite(lookup_timeout)):
            raise ConfigError("failover.probe_interval and network.lookup_timeout must be finite numbers")
        if attempts < 1:
            raise ConfigError("failover.probe_attempts must be at least 1")

        unit_paths = self.get("failover.unit_paths", [])
        if isinstance(unit_paths, str):
            unit_paths = [unit_paths]

        return FailoverSettings(
            parent_address=self.get_parent_address(),
            parent_port=self.get_parent_port(),
            service_name=self.get("failover.service_name", "cardano-node"),
            unit_paths=[Path(p) for p in unit_paths],
            producer_env_suffix=self.get("failover.producer_env_suffix", ".normal"),
            standby_env_suffix=self.get("failover.standby_env_suffix", ".standingby"),
            credential_paths=self.get_credential_paths(),
            probe_timeout=self.get_probe_timeout(),
            probe_attempts=attempts,
            probe_interval=max(interval, 0.0),
            lock_file=Path(self.get("failover.lock_file", DEFAULT_CONFIG["failover"]["lock_file"])),
            external_ipv4=str(self.get("network.external_ipv4_address", "") or ""),
            external_ipv6=str(self.get("network.external_ipv6_address", "") or ""),
            ipinfo_token=self.get("network.ipinfo_token") or None,
            external_ipv6_url=self.get("network.external_ipv6_url", ""),
            lookup_timeout=lookup_timeout,
        )


@dataclass
class FailoverSettings:
    """Everything one heartbeat run needs, resolved from the layered config."""
    parent_address: str
    parent_port: int
    service_name: str = "cardano-node"
    unit_paths: List[Path] = field(default_factory=list)
    producer_env_suffix: str = ".normal"
    standby_env_suffix: str = ".standingby"
    credential_paths: Dict[str, Path] = field(default_factory=dict)
    probe_timeout: float = 3.0
    probe_attempts: int = 3
    probe_interval: float = 1.0
    lock_file: Path = Path(DEFAULT_CONFIG["failover"]["lock_file"])
    external_ipv4: str = ""
    external_ipv6: str = ""
    ipinfo_token: Optional[str] = None
    external_ipv6_url: str = ""
    lookup_timeout: float = 3.0


# Global configuration instance
_config_instance = None

def get_config(custom_path=None):
    """Get the config instance, creating it if necessary."""
    global _config_instance
    if _config_instance is None or custom_path:
        _config_instance = Config(custom_path)
    return _config_instance
