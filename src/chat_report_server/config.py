"""
Configuration management for the Chat Annual Report server.

This module handles all configuration settings including the archive path,
cache location, analysis thresholds and privacy toggles.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional


@dataclass
class PrivacyConfig:
    """Privacy-related configuration."""

    redact_by_default: bool = False
    hash_identifiers: bool = True


@dataclass
class DatabaseConfig:
    """Message archive configuration."""

    path: str = "~/.chat-report/archive.db"
    timeout_seconds: int = 30


@dataclass
class CacheConfig:
    """Result cache configuration."""

    enabled: bool = True
    directory: str = "~/.chat-report/cache"


@dataclass
class AnalysisConfig:
    """Analysis tuning."""

    yield_every: int = 20  # contacts processed between scheduler yields
    ranking_limit: int = 10
    midnight_start_hour: int = 0
    midnight_end_hour: int = 6  # exclusive


@dataclass
class Config:
    """Main configuration class."""

    privacy: PrivacyConfig = field(default_factory=PrivacyConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)

    # Session-specific settings (not persisted)
    session_salt: Optional[bytes] = None

    def __post_init__(self):
        """Generate session salt on initialization."""
        self.session_salt = os.urandom(16)  # BLAKE2b max salt length

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create config from dictionary."""
        return cls(
            privacy=PrivacyConfig(**data.get("privacy", {})),
            database=DatabaseConfig(**data.get("database", {})),
            cache=CacheConfig(**data.get("cache", {})),
            analysis=AnalysisConfig(**data.get("analysis", {})),
        )

    @classmethod
    def from_file(cls, path: Path) -> "Config":
        """Load config from JSON file."""
        if path.exists():
            with open(path) as f:
                data = json.load(f)
                return cls.from_dict(data)
        return cls()

    @classmethod
    def from_env(cls) -> "Config":
        """Create config from environment variables."""
        config = cls()

        if env_val := os.getenv("CHATREPORT_DATABASE_PATH"):
            config.database.path = env_val

        if env_val := os.getenv("CHATREPORT_CACHE_DIR"):
            config.cache.directory = env_val

        if env_val := os.getenv("CHATREPORT_CACHE_ENABLED"):
            config.cache.enabled = env_val.lower() == "true"

        if env_val := os.getenv("CHATREPORT_REDACT_DEFAULT"):
            config.privacy.redact_by_default = env_val.lower() == "true"

        if env_val := os.getenv("CHATREPORT_YIELD_EVERY"):
            config.analysis.yield_every = int(env_val)

        if env_val := os.getenv("CHATREPORT_RANKING_LIMIT"):
            config.analysis.ranking_limit = int(env_val)

        return config

    def get_db_path(self) -> Path:
        """Get expanded database path."""
        return Path(self.database.path).expanduser()

    def get_cache_dir(self) -> Path:
        """Get expanded cache directory."""
        return Path(self.cache.directory).expanduser()

    def should_redact(self, explicit_redact: Optional[bool] = None) -> bool:
        """Determine if redaction should be applied."""
        if explicit_redact is not None:
            return explicit_redact
        return self.privacy.redact_by_default

    @property
    def midnight_hours(self) -> range:
        """Late-night hour window used by the midnight ranking."""
        return range(self.analysis.midnight_start_hour, self.analysis.midnight_end_hour)


def load_config() -> Config:
    """Load configuration from file or environment."""
    config_paths = [
        Path("chat-report.json"),
        Path("~/.chat-report/config.json").expanduser(),
    ]

    for path in config_paths:
        if path.exists():
            return Config.from_file(path)

    # Fall back to environment variables
    return Config.from_env()


# Global config instance (lazy loaded)
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: Optional[Config]) -> None:
    """Replace the global configuration (None resets to lazy loading)."""
    global _config
    _config = config
