"""Protocol configuration."""

import os
from pathlib import Path
from typing import Optional, Dict, Any
from dataclasses import dataclass, asdict
from enum import Enum
import json

from .logging import LogLevel


class Curve(str, Enum):
    """Named curves a crypto provider can be built for."""

    P256 = "p256"  # ECDH + ECDSA over NIST P-256
    X25519 = "x25519"  # X25519 agreement + Ed25519 signatures


@dataclass
class ProtocolConfig:
    """X3DH protocol configuration."""

    # Key agreement
    curve: Curve = Curve.P256
    kdf_info_prefix: str = "MyProtocol key"

    # Prekeys
    one_time_prekey_count: int = 1

    # Logging
    log_level: LogLevel = LogLevel.INFO
    log_file: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        data = asdict(self)
        data["curve"] = self.curve.value
        data["log_level"] = self.log_level.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProtocolConfig":
        """Create config from dictionary."""
        data = dict(data)
        if "curve" in data:
            data["curve"] = Curve(data["curve"])
        if "log_level" in data:
            data["log_level"] = LogLevel(data["log_level"])

        return cls(**data)


class ConfigManager:
    """Manage protocol configuration."""

    _instance: Optional["ConfigManager"] = None
    _config: ProtocolConfig

    def __new__(cls) -> "ConfigManager":
        """Implement singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        """Initialize config manager."""
        if self._initialized:
            return

        self._initialized = True
        self._config = ProtocolConfig()
        self._config_file: Optional[Path] = None

    def load_config(self, config_file: str) -> None:
        """
        Load configuration from JSON file.

        Args:
            config_file: Path to config JSON file
        """
        config_path = Path(config_file).expanduser()

        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_file}")

        with open(config_path, "r") as f:
            data = json.load(f)

        self._config = ProtocolConfig.from_dict(data)
        self._config_file = config_path

    def save_config(self, config_file: Optional[str] = None) -> None:
        """
        Save configuration to JSON file.

        Args:
            config_file: Path to save config (uses loaded path if not provided)
        """
        if config_file:
            self._config_file = Path(config_file).expanduser()
        elif not self._config_file:
            raise ValueError("No config file path specified")

        self._config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(self._config_file, "w") as f:
            json.dump(self._config.to_dict(), f, indent=2)

    def load_config_from_env(self) -> None:
        """Load configuration from X3DH_* environment variables."""
        if "X3DH_CURVE" in os.environ:
            self._config.curve = Curve(os.environ["X3DH_CURVE"].lower())

        if "X3DH_KDF_INFO_PREFIX" in os.environ:
            self._config.kdf_info_prefix = os.environ["X3DH_KDF_INFO_PREFIX"]

        if "X3DH_ONE_TIME_PREKEY_COUNT" in os.environ:
            self._config.one_time_prekey_count = int(
                os.environ["X3DH_ONE_TIME_PREKEY_COUNT"]
            )

        if "X3DH_LOG_LEVEL" in os.environ:
            self._config.log_level = LogLevel(os.environ["X3DH_LOG_LEVEL"].upper())

        if "X3DH_LOG_FILE" in os.environ:
            self._config.log_file = os.environ["X3DH_LOG_FILE"]

    def get_config(self) -> ProtocolConfig:
        """Get current configuration."""
        return self._config

    def update_config(self, **kwargs: Any) -> None:
        """
        Update specific configuration values.

        Args:
            **kwargs: Configuration keys and values to update
        """
        for key, value in kwargs.items():
            if hasattr(self._config, key):
                setattr(self._config, key, value)
            else:
                raise ValueError(f"Unknown configuration key: {key}")

    def get_value(self, key: str) -> Any:
        """
        Get a configuration value.

        Raises:
            KeyError: If key not found
        """
        if not hasattr(self._config, key):
            raise KeyError(f"Unknown configuration key: {key}")
        return getattr(self._config, key)

    def set_value(self, key: str, value: Any) -> None:
        """
        Set a configuration value.

        Raises:
            KeyError: If key not found
        """
        if not hasattr(self._config, key):
            raise KeyError(f"Unknown configuration key: {key}")
        setattr(self._config, key, value)

    def reset_to_defaults(self) -> None:
        """Reset configuration to defaults."""
        self._config = ProtocolConfig()
        self._config_file = None


# Global config manager instance
_config_manager = ConfigManager()


def get_config_manager() -> ConfigManager:
    """Get global config manager instance."""
    return _config_manager


def get_config() -> ProtocolConfig:
    """Get current protocol configuration."""
    return _config_manager.get_config()


def load_config(config_file: str) -> None:
    """Load configuration from file."""
    _config_manager.load_config(config_file)


def save_config(config_file: Optional[str] = None) -> None:
    """Save configuration to file."""
    _config_manager.save_config(config_file)


def load_config_from_env() -> None:
    """Load configuration from environment variables."""
    _config_manager.load_config_from_env()


def update_config(**kwargs: Any) -> None:
    """Update configuration values."""
    _config_manager.update_config(**kwargs)


def get_config_value(key: str) -> Any:
    """Get a configuration value."""
    return _config_manager.get_value(key)


def set_config_value(key: str, value: Any) -> None:
    """Set a configuration value."""
    _config_manager.set_value(key, value)
