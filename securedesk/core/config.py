"""
Secure Configuration Module
===========================

Provides immutable, environment-aware configuration with security-first defaults.

Security Features:
- Immutable configuration after initialization
- Environment variable override support
- No secrets in default values
- Field encryption key is never read through the override mechanism
- OS-aware path handling
"""

from __future__ import annotations

import hashlib
import os
import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final, Optional


# Security Constants
_SENSITIVE_KEYS: Final[frozenset[str]] = frozenset({
    "password", "secret", "token", "api_key",
    "private", "credential", "auth", "salt", "field_key",
})

_VALID_BACKENDS: Final[frozenset[str]] = frozenset({"sqlite", "memory"})


def _is_sensitive_key(key: str) -> bool:
    """Check if a configuration key might contain sensitive data."""
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in _SENSITIVE_KEYS)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_default_data_dir() -> Path:
    """Get OS-appropriate default data directory."""
    system = platform.system().lower()

    if system == "windows":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    elif system == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:  # Linux and others
        base = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))

    return base / "SecureDesk"


def _get_default_log_dir() -> Path:
    """Get OS-appropriate default log directory."""
    system = platform.system().lower()

    if system == "windows":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
        return base / "SecureDesk" / "Logs"
    elif system == "darwin":
        return Path.home() / "Library" / "Logs" / "SecureDesk"
    else:  # Linux and others
        return Path(os.environ.get("XDG_STATE_HOME", Path.home() / ".local" / "state")) / "SecureDesk" / "logs"


@dataclass(frozen=True, slots=True)
class PathConfig:
    """Immutable path configuration with OS-aware defaults."""

    data_dir: Path = field(default_factory=_get_default_data_dir)
    log_dir: Path = field(default_factory=_get_default_log_dir)

    def __post_init__(self) -> None:
        """Validate paths after initialization."""
        for field_name in ["data_dir", "log_dir"]:
            path = getattr(self, field_name)
            if not path.is_absolute():
                raise ValueError(f"{field_name} must be an absolute path: {path}")


@dataclass(frozen=True, slots=True)
class StorageConfig:
    """Which persistence backend the vault opens by default."""

    backend: str = "sqlite"
    database_name: str = "securedesk.db"

    def __post_init__(self) -> None:
        if self.backend not in _VALID_BACKENDS:
            raise ValueError(f"Unknown storage backend: {self.backend}")
        if not self.database_name or "/" in self.database_name or "\\" in self.database_name:
            raise ValueError("database_name must be a bare file name")


@dataclass(frozen=True, slots=True)
class CryptoConfig:
    """Immutable field-encryption configuration."""

    # Name of the environment variable holding the hex/base64 field key
    key_env_var: str = "SECUREDESK_FIELD_KEY"
    key_length: int = 32  # 256 bits for AES-256
    kdf_iterations: int = 600_000  # OWASP recommended for PBKDF2

    def __post_init__(self) -> None:
        """Validate crypto settings."""
        if self.kdf_iterations < 100_000:
            raise ValueError("Key derivation iterations must be at least 100,000")
        if self.key_length != 32:
            raise ValueError("Key length must be 32 bytes for AES-256-GCM")


@dataclass(frozen=True, slots=True)
class AggregationConfig:
    """Live count settings."""

    poll_interval_seconds: float = 30.0

    def __post_init__(self) -> None:
        if self.poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be positive")


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Immutable logging configuration."""

    level: str = "INFO"
    max_file_size_bytes: int = 10 * 1024 * 1024  # 10 MB
    backup_count: int = 5
    enable_console: bool = True
    enable_file: bool = False
    enable_json: bool = False

    def __post_init__(self) -> None:
        """Validate logging settings."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if self.level.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {self.level}")


class SecureDeskConfig:
    """
    Centralized, immutable configuration loader with environment override support.

    Usage:
        config = SecureDeskConfig.load()
        db_path = config.database_path
        interval = config.aggregation.poll_interval_seconds

    Environment variables are prefixed with SECUREDESK_ and use double
    underscores for nested values, e.g. SECUREDESK_STORAGE__BACKEND=memory.
    """

    __slots__ = (
        "_paths", "_storage", "_crypto", "_aggregation", "_logging",
        "_frozen", "_config_hash",
    )

    def __init__(
        self,
        paths: Optional[PathConfig] = None,
        storage: Optional[StorageConfig] = None,
        crypto: Optional[CryptoConfig] = None,
        aggregation: Optional[AggregationConfig] = None,
        logging: Optional[LoggingConfig] = None,
    ) -> None:
        """Initialize configuration. Use SecureDeskConfig.load() for standard initialization."""
        object.__setattr__(self, "_frozen", False)
        object.__setattr__(self, "_paths", paths or PathConfig())
        object.__setattr__(self, "_storage", storage or StorageConfig())
        object.__setattr__(self, "_crypto", crypto or CryptoConfig())
        object.__setattr__(self, "_aggregation", aggregation or AggregationConfig())
        object.__setattr__(self, "_logging", logging or LoggingConfig())
        object.__setattr__(self, "_config_hash", self._compute_hash())
        object.__setattr__(self, "_frozen", True)

    def _compute_hash(self) -> str:
        """Compute a hash of the configuration for integrity checking."""
        config_str = (
            f"{self._paths}|{self._storage}|{self._crypto}|"
            f"{self._aggregation}|{self._logging}"
        )
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @property
    def paths(self) -> PathConfig:
        return self._paths

    @property
    def storage(self) -> StorageConfig:
        return self._storage

    @property
    def crypto(self) -> CryptoConfig:
        return self._crypto

    @property
    def aggregation(self) -> AggregationConfig:
        return self._aggregation

    @property
    def logging(self) -> LoggingConfig:
        return self._logging

    @property
    def config_hash(self) -> str:
        """Get configuration integrity hash."""
        return self._config_hash

    @property
    def database_path(self) -> Path:
        """Location of the sqlite database file."""
        return self._paths.data_dir / self._storage.database_name

    @classmethod
    def load(cls, env_prefix: str = "SECUREDESK") -> SecureDeskConfig:
        """
        Load configuration with environment variable overrides.

        Examples:
            SECUREDESK_LOGGING__LEVEL=DEBUG
            SECUREDESK_AGGREGATION__POLL_INTERVAL_SECONDS=5
            SECUREDESK_PATHS__DATA_DIR=/custom/path

        Args:
            env_prefix: Prefix for environment variables (default: SECUREDESK)

        Returns:
            Configured SecureDeskConfig instance
        """
        env_overrides = cls._parse_env_overrides(env_prefix)

        paths_kwargs: dict[str, Any] = {}
        if "paths.data_dir" in env_overrides:
            paths_kwargs["data_dir"] = Path(env_overrides["paths.data_dir"])
        if "paths.log_dir" in env_overrides:
            paths_kwargs["log_dir"] = Path(env_overrides["paths.log_dir"])

        storage_kwargs: dict[str, Any] = {}
        if "storage.backend" in env_overrides:
            storage_kwargs["backend"] = env_overrides["storage.backend"].lower()
        if "storage.database_name" in env_overrides:
            storage_kwargs["database_name"] = env_overrides["storage.database_name"]

        crypto_kwargs: dict[str, Any] = {}
        if "crypto.kdf_iterations" in env_overrides:
            crypto_kwargs["kdf_iterations"] = int(env_overrides["crypto.kdf_iterations"])

        aggregation_kwargs: dict[str, Any] = {}
        if "aggregation.poll_interval_seconds" in env_overrides:
            aggregation_kwargs["poll_interval_seconds"] = float(
                env_overrides["aggregation.poll_interval_seconds"]
            )

        logging_kwargs: dict[str, Any] = {}
        if "logging.level" in env_overrides:
            logging_kwargs["level"] = env_overrides["logging.level"]
        if "logging.enable_console" in env_overrides:
            logging_kwargs["enable_console"] = _parse_bool(env_overrides["logging.enable_console"])
        if "logging.enable_file" in env_overrides:
            logging_kwargs["enable_file"] = _parse_bool(env_overrides["logging.enable_file"])
        if "logging.enable_json" in env_overrides:
            logging_kwargs["enable_json"] = _parse_bool(env_overrides["logging.enable_json"])

        return cls(
            paths=PathConfig(**paths_kwargs) if paths_kwargs else None,
            storage=StorageConfig(**storage_kwargs) if storage_kwargs else None,
            crypto=CryptoConfig(**crypto_kwargs) if crypto_kwargs else None,
            aggregation=AggregationConfig(**aggregation_kwargs) if aggregation_kwargs else None,
            logging=LoggingConfig(**logging_kwargs) if logging_kwargs else None,
        )

    @staticmethod
    def _parse_env_overrides(prefix: str) -> dict[str, str]:
        """Parse environment variables with the given prefix."""
        overrides: dict[str, str] = {}
        prefix_upper = f"{prefix.upper()}_"

        for key, value in os.environ.items():
            if key.startswith(prefix_upper):
                # Convert SECUREDESK_SECTION__KEY to section.key
                config_key = key[len(prefix_upper):].lower().replace("__", ".")

                # SECURITY: Skip sensitive keys from environment
                if _is_sensitive_key(config_key):
                    continue

                overrides[config_key] = value

        return overrides

    def ensure_directories(self) -> None:
        """Create all required directories with secure permissions."""
        import stat

        for directory in (self._paths.data_dir, self._paths.log_dir):
            directory.mkdir(parents=True, exist_ok=True)

            # Set restrictive permissions on Unix-like systems
            if platform.system().lower() != "windows":
                directory.chmod(stat.S_IRWXU)  # 700 - owner only

    def __repr__(self) -> str:
        """Safe string representation without sensitive data."""
        return f"SecureDeskConfig(hash={self._config_hash}, backend={self._storage.backend})"

    def __setattr__(self, name: str, value: Any) -> None:
        """Prevent modification after initialization."""
        if hasattr(self, "_frozen") and self._frozen:
            raise AttributeError("SecureDeskConfig is immutable after initialization")
        super().__setattr__(name, value)
