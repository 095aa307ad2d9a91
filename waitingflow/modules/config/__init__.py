"""
Config Module - Black Box Interface

Purpose: Application configuration management
Interface: get_config(), set_config(), load_from_env()
Hidden: Config sources, validation logic, environment parsing

Can be replaced with different config systems (Consul, etcd, AWS Parameter Store).
"""

import os
from typing import Any, Dict


# Configuration Contract: Required and Optional Keys
# This defines the black box interface - what the config module guarantees to provide

REQUIRED_CONFIG_KEYS = {
    "redis_host": "Redis server hostname",
    "redis_port": "Redis server port number",
    "redis_db": "Redis database number",
    "store_timeout": "Timeout in seconds for a single store call",
    "host": "API server bind address",
    "port": "API server port",
    "log_level": "Logging level (DEBUG, INFO, WARNING, ERROR)",
    "scheduler_enabled": "Run periodic admission sweeps",
    "scheduler_batch_size": "Users admitted per queue per sweep",
    "scheduler_initial_delay": "Seconds before the first sweep",
    "scheduler_interval": "Seconds between sweeps",
    "scheduler_scan_hint": "SCAN COUNT hint used to discover queues",
    "token_cache_size": "Maximum cached admission tokens (0 disables the cache)",
    "token_cookie_max_age": "Admission token cookie lifetime in seconds",
}

OPTIONAL_CONFIG_KEYS = {
    "redis_password": {
        "description": "Redis authentication password",
        "default": None,
    },
    "debug": {
        "description": "Enable debug mode",
        "default": False,
    },
}


def _bool_env(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


class ConfigModule:
    """Configuration management module."""

    def __init__(self):
        """Initialize with environment variables."""
        self._config = self._load_from_env()
        self._validate_required_keys()

    def _validate_required_keys(self) -> None:
        """
        Validate that all required configuration keys are present.

        Raises:
            ValueError: If required keys are missing or out of range
        """
        missing_keys = []
        for key in REQUIRED_CONFIG_KEYS:
            if key not in self._config or self._config[key] is None:
                missing_keys.append(key)

        if missing_keys:
            raise ValueError(
                f"Missing required configuration keys: {', '.join(missing_keys)}. "
                f"Check environment variables and deployment configuration."
            )

        if self._config["scheduler_interval"] <= 0:
            raise ValueError("SCHEDULER_INTERVAL must be positive")
        if self._config["scheduler_batch_size"] < 0:
            raise ValueError("SCHEDULER_BATCH_SIZE must not be negative")
        if self._config["token_cache_size"] < 0:
            raise ValueError("TOKEN_CACHE_SIZE must not be negative")

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from environment."""
        # Parse Redis port (might be in tcp://host:port format from K8s)
        redis_port_env = os.getenv("REDIS_PORT", "6379")
        if redis_port_env.startswith("tcp://"):
            redis_port = int(redis_port_env.split(":")[-1])
        else:
            redis_port = int(redis_port_env)

        return {
            # Redis settings
            "redis_host": os.getenv("REDIS_HOST", "localhost"),
            "redis_port": redis_port,
            "redis_db": int(os.getenv("REDIS_DB", "0")),
            "redis_password": os.getenv("REDIS_PASSWORD"),
            "store_timeout": float(os.getenv("STORE_TIMEOUT", "2.0")),
            # API settings
            "host": os.getenv("API_HOST", "0.0.0.0"),
            "port": int(os.getenv("API_PORT", "8080")),
            "log_level": os.getenv("LOG_LEVEL", "INFO"),
            "debug": _bool_env("DEBUG"),
            # Scheduler settings
            "scheduler_enabled": _bool_env("SCHEDULER_ENABLED"),
            "scheduler_batch_size": int(os.getenv("SCHEDULER_BATCH_SIZE", "60")),
            "scheduler_initial_delay": float(os.getenv("SCHEDULER_INITIAL_DELAY", "5.0")),
            "scheduler_interval": float(os.getenv("SCHEDULER_INTERVAL", "1.0")),
            "scheduler_scan_hint": int(os.getenv("SCHEDULER_SCAN_HINT", "60")),
            # Token settings
            "token_cache_size": int(os.getenv("TOKEN_CACHE_SIZE", "10000")),
            "token_cookie_max_age": int(os.getenv("TOKEN_COOKIE_MAX_AGE", "300")),
        }

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        return self._config.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set configuration value."""
        self._config[key] = value

    def get_all(self) -> Dict[str, Any]:
        """Get all configuration values."""
        return self._config.copy()

    @staticmethod
    def get_config_schema() -> Dict[str, Any]:
        """
        Get the configuration schema (contract) for this module.

        Returns:
            Dictionary with 'required' and 'optional' key specifications

        Example:
            >>> schema = ConfigModule.get_config_schema()
            >>> print(schema['required']['scheduler_interval'])
            'Seconds between sweeps'
        """
        return {
            "required": REQUIRED_CONFIG_KEYS.copy(),
            "optional": OPTIONAL_CONFIG_KEYS.copy(),
        }


# Singleton instance
_instance = None


def get_config() -> ConfigModule:
    """Get the configuration module singleton."""
    global _instance
    if _instance is None:
        _instance = ConfigModule()
    return _instance


__all__ = ["get_config", "ConfigModule"]
