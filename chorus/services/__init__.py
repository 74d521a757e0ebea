"""
Service layer infrastructure - coordination and resilience for backend calls.

Provides:
- retry_with_backoff: Exponential backoff for transient failures
- ClientPool: Token-keyed cache of authenticated backend clients
- RequestQueue: Concurrency-limited FIFO with batch coalescing
- BackendClient: Authenticated HTTP client for the storage backend
"""

from chorus.services.errors import (
    ServiceError,
    ConfigurationError,
    RequestTimeoutError,
    RateLimitError,
    ServiceUnavailableError,
)
from chorus.services.retry import (
    RetryConfig,
    compute_delay,
    is_transient_error,
    retry_with_backoff,
)
from chorus.services.pool import ClientPool, PoolConfig, PooledClient, PoolStats
from chorus.services.request_queue import (
    QueueConfig,
    QueueStats,
    RequestQueue,
    rate_limited,
)
from chorus.services.client import BackendClient, BackendClientFactory

__all__ = [
    # Errors
    "ServiceError",
    "ConfigurationError",
    "RequestTimeoutError",
    "RateLimitError",
    "ServiceUnavailableError",
    # Retry
    "RetryConfig",
    "compute_delay",
    "is_transient_error",
    "retry_with_backoff",
    # Pool
    "ClientPool",
    "PoolConfig",
    "PooledClient",
    "PoolStats",
    # Queue
    "QueueConfig",
    "QueueStats",
    "RequestQueue",
    "rate_limited",
    # Client
    "BackendClient",
    "BackendClientFactory",
]
