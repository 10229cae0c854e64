"""Exception hierarchy shared by the GitHub and Cloud Mail clients.

Errors fall into two classes for the retry helpers:

- Transient: timeouts, transport failures, rate limiting and 5xx responses.
  These are retried until the attempt budget runs out.
- Non-transient: everything else (auth failures, validation errors,
  "already exists" conflicts). These are surfaced on the first occurrence.
"""

import asyncio
from typing import Any, List, Optional

import httpx


# HTTP status codes that should trigger a retry
RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}


class InfraClientError(Exception):
    """Base exception for all infrakit client errors."""
    pass


class RemoteAPIError(InfraClientError):
    """Raised when a remote API request fails.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code from the response.
        response_body: Response body from the remote API.
        request_url: The URL that was requested.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url
        super().__init__(message)


class RateLimitError(RemoteAPIError):
    """Raised when a remote API rate limit is exceeded.

    Attributes:
        reset_at: Unix timestamp when the rate limit resets.
        retry_after: Seconds to wait before retrying.
    """

    def __init__(
        self,
        message: str,
        reset_at: Optional[int] = None,
        retry_after: Optional[int] = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.reset_at = reset_at
        self.retry_after = retry_after


class RetriesExhaustedError(InfraClientError):
    """Raised when every attempt of a retried call failed transiently.

    Attributes:
        description: Label of the operation that was retried.
        attempts: Number of attempts made.
        last_error: The error raised by the final attempt.
    """

    def __init__(self, description: str, attempts: int, last_error: BaseException):
        self.description = description
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{description}: failed after {attempts} attempts: {last_error}"
        )


class DepaginationError(InfraClientError):
    """Raised when a paginated listing cannot be completed.

    The listing is never reported as successful once this is raised. Items
    accumulated from the pages fetched before the failure are kept on the
    exception so callers can still inspect them.

    Attributes:
        description: Label of the listing.
        page: Paging state of the page that failed.
        items: Items accumulated from earlier, fully fetched pages.
        error: The underlying error, also set as ``__cause__``.
    """

    def __init__(
        self,
        description: str,
        page: Any,
        items: List[Any],
        error: Optional[BaseException] = None,
        message: Optional[str] = None,
    ):
        self.description = description
        self.page = page
        self.items = items
        self.error = error
        super().__init__(
            message or f"{description}: page {page!r} failed: {error}"
        )


class NonAdvancingPageError(DepaginationError):
    """Raised when the remote returns the cursor of the page just fetched."""

    def __init__(self, description: str, page: Any, items: List[Any]):
        super().__init__(
            description,
            page,
            items,
            message=f"{description}: pagination did not advance past page {page!r}",
        )


class OperationCancelledError(InfraClientError):
    """Raised when the call context was cancelled before an attempt."""
    pass


class DeadlineExceededError(OperationCancelledError):
    """Raised when the call context deadline passed before an attempt."""
    pass


def is_transient(error: BaseException) -> bool:
    """Return True when ``error`` may succeed if the call is repeated unchanged."""
    if isinstance(error, OperationCancelledError):
        return False
    if isinstance(error, RateLimitError):
        return True
    if isinstance(error, RemoteAPIError):
        if error.status_code is None:
            return False
        return error.status_code in RETRYABLE_STATUS_CODES or error.status_code >= 500
    if isinstance(
        error,
        (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError, httpx.ProxyError),
    ):
        return True
    if isinstance(error, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return True
    return False
