"""
Exception types for the adaptive cache core.

Cache store backends and data producers raise these; the engines catch
them per item, log them and move on to the next item.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(Enum):
    """Error category enumeration."""
    CACHE_ERROR = "cache_error"
    TIMEOUT_ERROR = "timeout_error"
    PRODUCER_ERROR = "producer_error"
    CONFIG_ERROR = "config_error"
    UNKNOWN_ERROR = "unknown_error"


class AdaptiveCacheError(Exception):
    """Base exception for the adaptive cache core."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN_ERROR,
        key: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        timestamp: Optional[datetime] = None
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.key = key
        self.details = details or {}
        self.timestamp = timestamp or datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "category": self.category.value,
            "key": self.key,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class CacheOperationError(AdaptiveCacheError):
    """Cache store I/O failure."""

    def __init__(self, message: str, operation: str, key: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.CACHE_ERROR,
            key=key,
            details={"operation": operation},
            **kwargs
        )
        self.operation = operation


class CacheTimeoutError(AdaptiveCacheError):
    """Cache store call did not complete within its timeout."""

    def __init__(self, message: str, operation: str, timeout: float, key: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.TIMEOUT_ERROR,
            key=key,
            details={"operation": operation, "timeout": timeout},
            **kwargs
        )
        self.operation = operation
        self.timeout = timeout


class DataProducerError(AdaptiveCacheError):
    """No producer is registered for a key, or the producer failed."""

    def __init__(self, message: str, key: Optional[str] = None, data_type: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.PRODUCER_ERROR,
            key=key,
            details={"data_type": data_type},
            **kwargs
        )


class ConfigurationError(AdaptiveCacheError):
    """Invalid configuration file or value."""

    def __init__(self, message: str, field_name: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.CONFIG_ERROR,
            details={"field": field_name},
            **kwargs
        )
