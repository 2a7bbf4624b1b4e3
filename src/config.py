"""
Configuration module for the reconciliation controller.

Loads configuration from environment variables, optionally overlaid with a
YAML config file.
"""

import logging
import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional

import yaml

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _optional_float(value: Optional[str]) -> Optional[float]:
    return float(value) if value else None


@dataclass
class DatabaseConfig:
    """PostgreSQL database configuration."""

    host: str = "localhost"
    port: int = 5432
    database: str = "reconcile_state"
    user: str = "operator"
    password: str = field(default="", repr=False)  # Never log password
    min_pool_size: int = 1
    max_pool_size: int = 10

    @classmethod
    def from_env(cls, require_password: bool = True):
        """Load from environment variables."""
        password = os.getenv("DB_PASSWORD", "")
        if require_password and not password:
            raise ValueError(
                "DB_PASSWORD environment variable must be set. "
                "Database password cannot be empty."
            )

        return cls(
            host=os.getenv("DB_HOST", "localhost"),
            port=int(os.getenv("DB_PORT", "5432")),
            database=os.getenv("DB_NAME", "reconcile_state"),
            user=os.getenv("DB_USER", "operator"),
            password=password,
            min_pool_size=int(os.getenv("DB_MIN_POOL_SIZE", "1")),
            max_pool_size=int(os.getenv("DB_MAX_POOL_SIZE", "10")),
        )


@dataclass
class ControllerConfig:
    """Controller reconciliation loop configuration."""

    reconcile_interval: int = 60  # seconds
    reconcile_timeout: Optional[float] = None  # seconds, per resource
    finalizer: str = "reconcile-state/finalizer"

    def __post_init__(self):
        if self.reconcile_interval <= 0:
            raise ValueError("reconcile_interval must be positive")
        if self.reconcile_timeout is not None and self.reconcile_timeout <= 0:
            raise ValueError("reconcile_timeout must be positive")
        if not self.finalizer:
            raise ValueError("finalizer name cannot be empty")

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            reconcile_interval=int(os.getenv("RECONCILE_INTERVAL", "60")),
            reconcile_timeout=_optional_float(os.getenv("RECONCILE_TIMEOUT")),
            finalizer=os.getenv("FINALIZER_NAME", "reconcile-state/finalizer"),
        )


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    format: str = LOG_FORMAT

    def __post_init__(self):
        self.level = str(self.level).upper()
        if not isinstance(logging.getLevelName(self.level), int):
            raise ValueError(f"Unknown log level: {self.level}")

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(level=os.getenv("LOG_LEVEL", "INFO"))

    def configure(self) -> None:
        """Apply this configuration to the root logger."""
        logging.basicConfig(level=self.level, format=self.format, force=True)


@dataclass
class Config:
    """Main configuration object."""

    database: DatabaseConfig
    controller: ControllerConfig
    logging: LoggingConfig

    @classmethod
    def from_env(cls):
        """Load all configuration from environment variables."""
        return cls(
            database=DatabaseConfig.from_env(),
            controller=ControllerConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )

    @classmethod
    def from_file(cls, path: str):
        """
        Load configuration from a YAML file.

        Sections ``database``, ``controller`` and ``logging`` override the
        values read from the environment. The database password may be
        supplied by either source.

        Raises:
            ValueError: If the file is not a mapping or names unknown keys.
        """
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")

        db_section = data.get("database") or {}
        base_db = DatabaseConfig.from_env(
            require_password=not db_section.get("password")
        )

        return cls(
            database=_overlay(base_db, db_section),
            controller=_overlay(
                ControllerConfig.from_env(), data.get("controller") or {}
            ),
            logging=_overlay(LoggingConfig.from_env(), data.get("logging") or {}),
        )

    @classmethod
    def default(cls):
        """Return default configuration."""
        return cls(
            database=DatabaseConfig(),
            controller=ControllerConfig(),
            logging=LoggingConfig(),
        )


def _overlay(base: Any, values: Dict[str, Any]) -> Any:
    """Return a copy of dataclass ``base`` with ``values`` applied."""
    known = {f.name for f in fields(base)}
    unknown = set(values) - known
    if unknown:
        raise ValueError(
            f"Unknown {type(base).__name__} keys: {', '.join(sorted(unknown))}"
        )
    merged = {name: getattr(base, name) for name in known}
    merged.update(values)
    return type(base)(**merged)


# Global config instance
config: Optional[Config] = None


def load_config(path: Optional[str] = None) -> Config:
    """Load configuration (singleton pattern)."""
    global config
    if config is None:
        config = Config.from_file(path) if path else Config.from_env()
    return config


def get_config() -> Config:
    """Get the current configuration."""
    if config is None:
        return load_config()
    return config


def reset_config() -> None:
    """Reset configuration (mainly for testing)."""
    global config
    config = None
