from alchemy_cleaner.config import TruncationConfig
from alchemy_cleaner.dialects import DialectAdapter, get_adapter, register_adapter
from alchemy_cleaner.exceptions import CleanerError, EngineError, ImproperConfigurationError
from alchemy_cleaner.truncation import (
    AsyncTruncation,
    Truncation,
    TruncationStats,
    async_clean_database,
    clean_database,
)

__all__ = (
    "AsyncTruncation",
    "CleanerError",
    "DialectAdapter",
    "EngineError",
    "ImproperConfigurationError",
    "Truncation",
    "TruncationConfig",
    "TruncationStats",
    "async_clean_database",
    "clean_database",
    "get_adapter",
    "register_adapter",
)
