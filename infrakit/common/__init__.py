"""Shared retry, pagination, configuration and logging utilities."""

from infrakit.common.context import CallContext
from infrakit.common.errors import (
    DeadlineExceededError,
    DepaginationError,
    InfraClientError,
    NonAdvancingPageError,
    OperationCancelledError,
    RateLimitError,
    RemoteAPIError,
    RetriesExhaustedError,
    is_transient,
)
from infrakit.common.pagination import ListOptions, Page, depaginate
from infrakit.common.retry import RetryPolicy, retry

__all__ = [
    "CallContext",
    "DeadlineExceededError",
    "DepaginationError",
    "InfraClientError",
    "ListOptions",
    "NonAdvancingPageError",
    "OperationCancelledError",
    "Page",
    "RateLimitError",
    "RemoteAPIError",
    "RetriesExhaustedError",
    "RetryPolicy",
    "depaginate",
    "is_transient",
    "retry",
]
