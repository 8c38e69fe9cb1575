"""
Application Configuration

Central configuration for the store, the maintenance jobs, the API and logging.
Defaults can be overridden with PETPRICE_* environment variables.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import List, Optional

from matching.config import MatchingConfig


DEFAULT_DB_PATH = Path(__file__).parent.parent / "data" / "petprice.db"


@dataclass
class DatabaseConfig:
    """SQLite store settings"""
    path: Path = DEFAULT_DB_PATH
    # sqlite busy timeout: a write blocked on a lock longer than this
    # raises StorageUnavailableError and is retried by the jobs
    connect_timeout: float = 10.0


@dataclass
class JobConfig:
    """Maintenance job settings"""
    # Product groups are written N at a time with a short pause between batches
    group_batch_size: int = 10
    group_batch_pause: float = 0.1

    unit_price_batch_size: int = 100
    unit_price_limit: int = 1000
    max_reported_errors: int = 10

    # Timeouts (seconds)
    load_timeout: float = 30.0    # loading the full product collection
    query_timeout: float = 20.0   # request-time searches

    # Retries for transient storage errors
    retry_attempts: int = 3
    retry_base_delay: float = 0.5
    retry_max_delay: float = 5.0


@dataclass
class ApiConfig:
    """HTTP API settings"""
    base_path: str = "/api"
    version: str = "1.0"
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:8080"])
    min_pattern_length: int = 3
    search_limit: int = 20
    best_value_limit: int = 10


@dataclass
class LoggingConfig:
    """Logging settings"""
    level: str = "INFO"
    file: Optional[Path] = None
    max_bytes: int = 20 * 1024 * 1024
    backup_count: int = 14


@dataclass
class AppConfig:
    """Main application configuration"""
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    jobs: JobConfig = field(default_factory=JobConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)


def load_config(environ: Optional[dict] = None) -> AppConfig:
    """
    Build the configuration, applying environment overrides.

    Recognized variables:
        PETPRICE_DB_PATH, PETPRICE_LOG_LEVEL, PETPRICE_LOG_FILE,
        PETPRICE_CORS_ORIGINS (comma separated), PETPRICE_SIMILARITY_THRESHOLD
    """
    env = os.environ if environ is None else environ
    config = AppConfig()

    if env.get('PETPRICE_DB_PATH'):
        config.database.path = Path(env['PETPRICE_DB_PATH'])

    if env.get('PETPRICE_LOG_LEVEL'):
        config.logging.level = env['PETPRICE_LOG_LEVEL'].upper()

    if env.get('PETPRICE_LOG_FILE'):
        config.logging.file = Path(env['PETPRICE_LOG_FILE'])

    if env.get('PETPRICE_CORS_ORIGINS'):
        config.api.cors_origins = [
            origin.strip() for origin in env['PETPRICE_CORS_ORIGINS'].split(',') if origin.strip()
        ]

    if env.get('PETPRICE_SIMILARITY_THRESHOLD'):
        threshold = float(env['PETPRICE_SIMILARITY_THRESHOLD'])
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"PETPRICE_SIMILARITY_THRESHOLD must be within [0, 1], got {threshold}")
        config.matching = replace(config.matching, similarity_threshold=threshold)

    return config


# Default configuration instance
default_config = AppConfig()
