"""Concurrency and retry control for audit operations."""

from .semaphore import (
    BoundedSemaphore,
    SemaphoreTicket,
    SemaphoreError,
    get_model_semaphore,
    get_browser_semaphore,
    create_section_limiter,
    reset_semaphores,
)
from .backoff import (
    ErrorClass,
    AttemptOutcome,
    RetryState,
    RetryPolicy,
    classify_error,
    parse_server_delay,
    compute_delay,
)

__all__ = [
    'BoundedSemaphore',
    'SemaphoreTicket',
    'SemaphoreError',
    'get_model_semaphore',
    'get_browser_semaphore',
    'create_section_limiter',
    'reset_semaphores',
    'ErrorClass',
    'AttemptOutcome',
    'RetryState',
    'RetryPolicy',
    'classify_error',
    'parse_server_delay',
    'compute_delay',
]
