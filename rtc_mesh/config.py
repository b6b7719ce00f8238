"""Configuration management for rtc-mesh.

This module handles loading configuration from multiple sources with the following priority:
1. CLI arguments (handled by caller)
2. Environment variables (RTC_MESH_SIGNALING_WS, RTC_MESH_HOST, RTC_MESH_PORT,
   RTC_MESH_ICE_SERVERS)
3. TOML configuration file
4. Default values

Configuration files are loaded from:
- rtc-mesh.toml in current working directory
- ~/.rtc-mesh/config.toml

Environment selection via RTC_MESH_ENV (development, staging, production).
Defaults to production if not set.

Example file::

    [environments.production]
    signaling_websocket = "wss://signal.example.org"
    host = "0.0.0.0"
    port = 9000
    ice_servers = ["stun:stun.example.org:3478"]
"""

import os
import tomllib
from pathlib import Path
from typing import List, Optional

from loguru import logger

DEFAULT_SIGNALING_WEBSOCKET = "ws://localhost:8080"
DEFAULT_HOST = "localhost"
DEFAULT_PORT = 8080
DEFAULT_ICE_SERVERS = ["stun:stun.l.google.com:19302"]

# Valid environment names
VALID_ENVIRONMENTS = {"development", "staging", "production"}


class Config:
    """Configuration manager for rtc-mesh."""

    def __init__(self):
        """Initialize configuration with defaults."""
        self.signaling_websocket: str = DEFAULT_SIGNALING_WEBSOCKET
        self.host: str = DEFAULT_HOST
        self.port: int = DEFAULT_PORT
        self.ice_servers: List[str] = list(DEFAULT_ICE_SERVERS)
        self.environment: str = "production"
        self._config_data: dict = {}

    def load(self) -> None:
        """Load configuration from all sources.

        Priority order:
        1. Environment variables
        2. TOML configuration file
        3. Default values
        """
        self.environment = self._get_environment()

        config_file = self._find_config_file()
        if config_file:
            self._load_config_file(config_file)

        self._apply_env_overrides()

    def _get_environment(self) -> str:
        """Get the current environment from RTC_MESH_ENV.

        Returns:
            Environment name (development, staging, or production).
            Defaults to production if not set or invalid.
        """
        env = os.getenv("RTC_MESH_ENV", "production").lower()
        if env not in VALID_ENVIRONMENTS:
            logger.warning(
                f"Invalid RTC_MESH_ENV value '{env}'. "
                f"Valid values are: {', '.join(sorted(VALID_ENVIRONMENTS))}. "
                f"Defaulting to 'production'."
            )
            env = "production"
        return env

    def _find_config_file(self) -> Optional[Path]:
        """Find the configuration file.

        Searches in order:
        1. rtc-mesh.toml in current working directory
        2. ~/.rtc-mesh/config.toml

        Returns:
            Path to config file if found, None otherwise.
        """
        cwd_config = Path.cwd() / "rtc-mesh.toml"
        if cwd_config.exists():
            logger.info(f"Loading config from {cwd_config}")
            return cwd_config

        home_config = Path.home() / ".rtc-mesh" / "config.toml"
        if home_config.exists():
            logger.info(f"Loading config from {home_config}")
            return home_config

        logger.debug("No config file found, using defaults")
        return None

    def _load_config_file(self, config_file: Path) -> None:
        """Load configuration from TOML file.

        Args:
            config_file: Path to the TOML configuration file.
        """
        try:
            with open(config_file, "rb") as f:
                self._config_data = tomllib.load(f)
        except Exception as e:
            logger.warning(
                f"Failed to load config file {config_file}: {e}. Using defaults."
            )
            return

        environments = self._config_data.get("environments", {})
        env_config = environments.get(self.environment, {})

        if not env_config:
            logger.debug(
                f"No configuration found for environment '{self.environment}' "
                f"in {config_file}, using defaults"
            )
            return

        if "signaling_websocket" in env_config:
            self.signaling_websocket = env_config["signaling_websocket"]
            logger.debug(
                f"Loaded signaling_websocket from config: {self.signaling_websocket}"
            )

        if "host" in env_config:
            self.host = env_config["host"]

        if "port" in env_config:
            try:
                self.port = int(env_config["port"])
            except (TypeError, ValueError):
                logger.warning(f"Ignoring invalid port in config: {env_config['port']!r}")

        ice_servers = env_config.get("ice_servers")
        if isinstance(ice_servers, list) and all(isinstance(s, str) for s in ice_servers):
            self.ice_servers = ice_servers
        elif ice_servers is not None:
            logger.warning(f"Ignoring invalid ice_servers in config: {ice_servers!r}")

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides.

        Environment variables take precedence over config file settings
        but are overridden by CLI arguments (handled by caller).
        """
        ws_override = os.getenv("RTC_MESH_SIGNALING_WS")
        if ws_override:
            self.signaling_websocket = ws_override
            logger.info(
                f"Overriding signaling_websocket from env: {self.signaling_websocket}"
            )

        host_override = os.getenv("RTC_MESH_HOST")
        if host_override:
            self.host = host_override
            logger.info(f"Overriding host from env: {self.host}")

        port_override = os.getenv("RTC_MESH_PORT")
        if port_override:
            try:
                self.port = int(port_override)
                logger.info(f"Overriding port from env: {self.port}")
            except ValueError:
                logger.warning(f"Ignoring invalid RTC_MESH_PORT: {port_override!r}")

        ice_override = os.getenv("RTC_MESH_ICE_SERVERS")
        if ice_override is not None:
            self.ice_servers = [s.strip() for s in ice_override.split(",") if s.strip()]
            logger.info(f"Overriding ice_servers from env: {self.ice_servers}")


# Global configuration instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance.

    Loads configuration on first call.

    Returns:
        Global Config instance.
    """
    global _config
    if _config is None:
        _config = Config()
        _config.load()
    return _config


def reload_config() -> Config:
    """Reload configuration from sources.

    Useful for testing or runtime reconfiguration.

    Returns:
        Reloaded Config instance.
    """
    global _config
    _config = Config()
    _config.load()
    return _config
