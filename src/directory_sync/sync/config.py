"""Configuration for the user directory sync core."""

import os
from dataclasses import dataclass, asdict
from typing import Dict, Any
from pathlib import Path


@dataclass
class SyncConfig:
    """Configuration settings for the synchronization core."""

    # Staleness settings
    sync_interval_seconds: int = 300  # 5 minutes

    # Batch settings
    batch_chunk_size: int = 100
    max_workers: int = 1

    # Cache settings
    cache_ttl_seconds: int = 7200  # 2 hours
    cache_key_prefix: str = "directory_sync_user_"
    memory_cache_max_age_seconds: int = 3600

    # Logging settings
    log_level: str = "INFO"
    log_sync_events: bool = True

    def validate(self) -> None:
        """Validate configuration parameters."""
        errors = []

        if self.sync_interval_seconds < 0:
            errors.append(f"Sync interval must be non-negative, got {self.sync_interval_seconds}")

        if self.batch_chunk_size <= 0:
            errors.append(f"Batch chunk size must be positive, got {self.batch_chunk_size}")

        if self.max_workers <= 0:
            errors.append(f"Max workers must be positive, got {self.max_workers}")

        if self.cache_ttl_seconds <= 0:
            errors.append(f"Cache TTL must be positive, got {self.cache_ttl_seconds}")

        if not self.cache_key_prefix:
            errors.append("Cache key prefix must not be empty")

        if self.memory_cache_max_age_seconds < 0:
            errors.append(f"Memory cache max age must be non-negative, got {self.memory_cache_max_age_seconds}")

        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level.upper() not in valid_log_levels:
            errors.append(f"Log level must be one of {valid_log_levels}, got {self.log_level}")

        if errors:
            raise ValueError(f"Configuration validation failed: {'; '.join(errors)}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return asdict(self)

    @classmethod
    def from_env(cls) -> "SyncConfig":
        """Create configuration from environment variables with validation."""
        try:
            config = cls(
                sync_interval_seconds=int(os.getenv("DIRECTORY_SYNC_INTERVAL", "300")),

                batch_chunk_size=int(os.getenv("DIRECTORY_SYNC_BATCH_CHUNK_SIZE", "100")),
                max_workers=int(os.getenv("DIRECTORY_SYNC_MAX_WORKERS", "1")),

                cache_ttl_seconds=int(os.getenv("DIRECTORY_SYNC_CACHE_TTL", "7200")),
                cache_key_prefix=os.getenv("DIRECTORY_SYNC_CACHE_KEY_PREFIX", "directory_sync_user_"),
                memory_cache_max_age_seconds=int(os.getenv("DIRECTORY_SYNC_MEMORY_CACHE_MAX_AGE", "3600")),

                log_level=os.getenv("DIRECTORY_SYNC_LOG_LEVEL", "INFO"),
                log_sync_events=os.getenv("DIRECTORY_SYNC_LOG_SYNC_EVENTS", "true").lower() == "true",
            )

            config.validate()
            return config

        except ValueError as e:
            if "invalid literal" in str(e):
                raise ValueError(f"Invalid environment variable format: {e}")
            raise
        except Exception as e:
            raise ValueError(f"Failed to load configuration from environment: {e}")

    @classmethod
    def from_file(cls, config_path: str) -> "SyncConfig":
        """Load configuration from a .env file."""
        from dotenv import load_dotenv

        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        load_dotenv(config_file, override=True)

        return cls.from_env()
