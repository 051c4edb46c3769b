"""Infrastructure components for error handling and retries."""

from .error_handling import (
    CrossArbError,
    RetryableOperation,
    ErrorTracker,
    is_network_error,
)

__all__ = [
    "CrossArbError",
    "RetryableOperation",
    "ErrorTracker",
    "is_network_error",
]
