"""
Config Module - Black Box Interface

Purpose: Application configuration management
Interface: get_config(), ConfigModule.get(), ConfigModule.get_all()
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
    "queue_backend": "Queue store backend (redis or memory)",
    "host": "API server bind address",
    "port": "API server port",
    "log_level": "Logging level (DEBUG, INFO, WARNING, ERROR)",
    "poll_interval_ms": "Polling reconciliation interval in milliseconds",
    "waiting_room_ttl_ms": "Waiting room countdown duration in milliseconds",
    "reconnect_delay": "Seconds to wait before re-establishing a dropped change channel",
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

QUEUE_BACKENDS = ("redis", "memory")


class ConfigModule:
    """Configuration management module."""

    def __init__(self):
        """Initialize with environment variables."""
        self._config = self._load_from_env()
        self._validate_required_keys()
        self._validate_values()

    def _validate_required_keys(self) -> None:
        """
        Validate that all required configuration keys are present.

        Raises:
            ValueError: If required keys are missing
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

    def _validate_values(self) -> None:
        """
        Validate value ranges for the queue settings.

        Raises:
            ValueError: If a value is out of range
        """
        if self._config["queue_backend"] not in QUEUE_BACKENDS:
            raise ValueError(
                f"Invalid QUEUE_BACKEND: {self._config['queue_backend']}. "
                f"Expected one of: {', '.join(QUEUE_BACKENDS)}"
            )
        if self._config["poll_interval_ms"] <= 0:
            raise ValueError("POLL_INTERVAL_MS must be a positive number of milliseconds")
        if self._config["waiting_room_ttl_ms"] <= 0:
            raise ValueError("WAITING_ROOM_TTL_MS must be a positive number of milliseconds")
        if self._config["reconnect_delay"] < 0:
            raise ValueError("RECONNECT_DELAY must not be negative")

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
            "queue_backend": os.getenv("QUEUE_BACKEND", "redis").lower(),
            # API settings
            "host": os.getenv("API_HOST", "0.0.0.0"),
            "port": int(os.getenv("API_PORT", "8080")),
            "log_level": os.getenv("LOG_LEVEL", "INFO"),
            "debug": os.getenv("DEBUG", "false").lower() == "true",
            # Reconciliation settings
            "poll_interval_ms": int(os.getenv("POLL_INTERVAL_MS", "3000")),
            "waiting_room_ttl_ms": int(os.getenv("WAITING_ROOM_TTL_MS", "300000")),
            "reconnect_delay": float(os.getenv("RECONNECT_DELAY", "5")),
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

    @property
    def redis_url(self) -> str:
        """Redis URL without password (password is passed separately)."""
        return f"redis://{self._config['redis_host']}:{self._config['redis_port']}/{self._config['redis_db']}"

    @staticmethod
    def get_config_schema() -> Dict[str, Any]:
        """
        Get the configuration schema (contract) for this module.

        Returns:
            Dictionary with 'required' and 'optional' key specifications

        Example:
            >>> schema = ConfigModule.get_config_schema()
            >>> print(schema['required']['poll_interval_ms'])
            'Polling reconciliation interval in milliseconds'
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
