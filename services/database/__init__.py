# Database module
from .db import (
    Database,
    get_db,
    DEFAULT_DB_PATH,
    StorageError,
    StorageUnavailableError,
    StorageTimeoutError,
)
from .retry_handler import RetryConfig, RetryHandler, RetryExhausted

__all__ = [
    'Database',
    'get_db',
    'DEFAULT_DB_PATH',
    'StorageError',
    'StorageUnavailableError',
    'StorageTimeoutError',
    'RetryConfig',
    'RetryHandler',
    'RetryExhausted',
]
