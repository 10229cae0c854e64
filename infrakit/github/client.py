"""GitHub API client for pull request operations.

This module provides an async wrapper around the GitHub REST API for:
- Listing pull requests filtered by state, head and base
- Listing the commits and changed files of a pull request
- Creating pull requests

Every call goes through the shared retry helper; list calls are fetched
page by page through ``depaginate`` following the ``Link`` response header.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
import structlog
from pydantic import BaseModel

from infrakit.common.context import CallContext
from infrakit.common.errors import RateLimitError, RemoteAPIError
from infrakit.common.metrics import ClientMetrics
from infrakit.common.pagination import ListOptions, Page, depaginate
from infrakit.common.retry import RetryPolicy, Sleep, retry
from infrakit.github.models import (
    CommitFile,
    NewPullRequest,
    PullRequest,
    PullRequestState,
    RepositoryCommit,
)

logger = structlog.get_logger()

M = TypeVar("M", bound=BaseModel)

# Attempts given to every call, and to every page of a listing
MAX_RETRY_COUNT = 5


def next_page_number(response: httpx.Response) -> Optional[int]:
    """Return the page number of the ``rel="next"`` link, or None on the last page.

    Raises:
        RemoteAPIError: If a next link is present but carries no page number.
    """
    link = response.links.get("next")
    if not link:
        return None
    url = link.get("url", "")
    page = httpx.URL(url).params.get("page") if url else None
    try:
        return int(page)
    except (TypeError, ValueError):
        raise RemoteAPIError(
            f"Unparseable next page link: {url!r}",
            request_url=url or None,
        )


class GitHubClient:
    """Async GitHub API client for pull requests.

    Attributes:
        token: GitHub API token (PAT or GitHub App token).
        base_url: Base URL for GitHub API (default: https://api.github.com).
        max_retries: Attempts per call and per listed page.
        per_page: Page size requested from list endpoints.
        timeout: Request timeout in seconds.

    Example:
        >>> async with GitHubClient(token="ghp_xxx") as client:
        ...     prs = await client.list_pull_requests("owner", "repo", base="main")
    """

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.github.com",
        max_retries: int = MAX_RETRY_COUNT,
        per_page: int = 100,
        timeout: float = 30.0,
        policy: Optional[RetryPolicy] = None,
        metrics: Optional[ClientMetrics] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        """Initialize the GitHub client.

        Args:
            token: GitHub API token for authentication.
            base_url: Base URL for GitHub API. Use this to support
                      GitHub Enterprise Server endpoints.
            max_retries: Attempts per call and per listed page.
            per_page: Page size requested from list endpoints.
            timeout: Request timeout in seconds.
            policy: Backoff policy between attempts.
            metrics: Metrics sink for the retry helpers.
            transport: Optional httpx transport, mainly for tests.
            sleep: Coroutine used to wait between attempts.
        """
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.per_page = per_page
        self.timeout = timeout
        self.policy = policy
        self.metrics = metrics
        self._transport = transport
        self._sleep = sleep
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(cls, settings: Any, **kwargs: Any) -> "GitHubClient":
        """Build a client from ``InfrakitSettings``.

        Raises:
            ValueError: If no GitHub token is configured.
        """
        if not settings.github_token:
            raise ValueError("github_token must be set to use the GitHub client")
        return cls(
            token=settings.github_token,
            base_url=settings.github_base_url,
            max_retries=settings.max_retry_count,
            per_page=settings.per_page,
            timeout=settings.github_timeout,
            policy=settings.retry_policy(),
            **kwargs,
        )

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating it if necessary."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._default_headers(),
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def _default_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "infrakit/0.1",
        }

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _parse_int_header(self, headers: httpx.Headers, name: str) -> Optional[int]:
        value = headers.get(name)
        if value is not None:
            try:
                return int(value)
            except ValueError:
                pass
        return None

    def _rate_limit_error(self, response: httpx.Response) -> RateLimitError:
        """Build a RateLimitError from the rate limit headers of ``response``."""
        reset_at = self._parse_int_header(response.headers, "x-ratelimit-reset")

        retry_after = None
        if reset_at is not None:
            retry_after = max(0, reset_at - int(time.time()))

        # Retry-After wins over the reset timestamp
        retry_after_header = self._parse_int_header(response.headers, "retry-after")
        if retry_after_header is not None:
            retry_after = retry_after_header

        logger.warning(
            "GitHub API rate limit exceeded",
            reset_at=reset_at,
            retry_after=retry_after,
            limit=self._parse_int_header(response.headers, "x-ratelimit-limit"),
            used=self._parse_int_header(response.headers, "x-ratelimit-used"),
        )

        return RateLimitError(
            message="GitHub API rate limit exceeded",
            status_code=response.status_code,
            reset_at=reset_at,
            retry_after=retry_after,
            response_body=response.text,
            request_url=str(response.url),
        )

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Make a single HTTP request, translating error responses.

        Retrying is left to the caller.

        Raises:
            RateLimitError: On 429, or 403 with no remaining rate limit.
            RemoteAPIError: On any other status >= 400.
            httpx.RequestError: On transport failures and timeouts.
        """
        response = await self.client.request(
            method=method,
            url=path,
            params=params,
            json=json_data,
        )

        if response.status_code == 429:
            raise self._rate_limit_error(response)
        if response.status_code == 403:
            remaining = self._parse_int_header(response.headers, "x-ratelimit-remaining")
            if remaining == 0:
                raise self._rate_limit_error(response)

        if response.status_code >= 400:
            error_body = response.text
            logger.debug(
                "GitHub API error response",
                status_code=response.status_code,
                path=path,
                method=method,
                response_body=error_body[:500],
            )
            raise RemoteAPIError(
                message=f"GitHub API error: {response.status_code}",
                status_code=response.status_code,
                response_body=error_body,
                request_url=str(response.url),
            )

        return response

    async def _list(
        self,
        description: str,
        path: str,
        model: Type[M],
        params: Optional[Dict[str, Any]] = None,
        context: Optional[CallContext] = None,
    ) -> List[M]:
        """Fetch every page of a list endpoint and parse the items as ``model``."""
        options = ListOptions(per_page=self.per_page)

        async def fetch_page() -> Page[M]:
            query = dict(params or {})
            query["per_page"] = options.per_page
            if options.page is not None:
                query["page"] = options.page
            response = await self._request("GET", path, params=query)
            items = [model.model_validate(item) for item in response.json()]
            return Page(items=items, next_page=next_page_number(response))

        return await depaginate(
            description,
            self.max_retries,
            options,
            fetch_page,
            context=context,
            policy=self.policy,
            metrics=self.metrics,
            sleep=self._sleep,
        )

    async def list_pull_requests(
        self,
        owner: str,
        repo: str,
        head: str = "",
        base: str = "",
        state: PullRequestState = PullRequestState.ALL,
        context: Optional[CallContext] = None,
    ) -> List[PullRequest]:
        """List pull requests in a repository.

        Args:
            owner: Repository owner (user or organization).
            repo: Repository name.
            head: Filter by head user and branch, as "user:ref-name".
            base: Filter by base branch name, e.g. "main".
            state: Pull request state to list; all states by default.
            context: Cancellation/deadline handle.

        Returns:
            Every matching pull request across all pages.

        Raises:
            DepaginationError: If a page could not be fetched.
        """
        params: Dict[str, Any] = {"state": PullRequestState(state).value}
        if head:
            params["head"] = head
        if base:
            params["base"] = base

        return await self._list(
            f"listing Pull Requests with head '{head}' and base '{base}'",
            f"/repos/{owner}/{repo}/pulls",
            PullRequest,
            params=params,
            context=context,
        )

    async def list_commits(
        self,
        owner: str,
        repo: str,
        number: int,
        context: Optional[CallContext] = None,
    ) -> List[RepositoryCommit]:
        """List the commits of a pull request."""
        return await self._list(
            f"listing commits in Pull Request '{number}'",
            f"/repos/{owner}/{repo}/pulls/{number}/commits",
            RepositoryCommit,
            context=context,
        )

    async def list_files(
        self,
        owner: str,
        repo: str,
        number: int,
        context: Optional[CallContext] = None,
    ) -> List[CommitFile]:
        """List the files changed by a pull request."""
        return await self._list(
            f"listing files in Pull Request '{number}'",
            f"/repos/{owner}/{repo}/pulls/{number}/files",
            CommitFile,
            context=context,
        )

    async def create_pull_request(
        self,
        owner: str,
        repo: str,
        head: str,
        base: str,
        title: str,
        body: str,
        context: Optional[CallContext] = None,
    ) -> PullRequest:
        """Create a pull request.

        Args:
            owner: Repository owner (user or organization).
            repo: Repository name.
            head: Head user and branch, as "user:ref-name".
            base: Base branch name, e.g. "main".
            title: Pull request title.
            body: Pull request body in markdown.
            context: Cancellation/deadline handle.

        Returns:
            The created pull request.

        Raises:
            RemoteAPIError: If GitHub rejects the request, e.g. 422 when a
                pull request for the same head already exists.
            RetriesExhaustedError: If every attempt failed transiently.
        """
        request = NewPullRequest(title=title, body=body, head=head, base=base)
        path = f"/repos/{owner}/{repo}/pulls"

        logger.info(
            "Creating pull request",
            owner=owner,
            repo=repo,
            title=title,
            head=head,
            base=base,
        )

        async def create() -> httpx.Response:
            return await self._request("POST", path, json_data=request.model_dump())

        response = await retry(
            f"creating PullRequest from '{head}' to '{base}', title: '{title}'",
            self.max_retries,
            create,
            context=context,
            policy=self.policy,
            metrics=self.metrics,
            sleep=self._sleep,
        )
        result = PullRequest.model_validate(response.json())

        logger.info(
            "Pull request created successfully",
            owner=owner,
            repo=repo,
            pr_number=result.number,
            pr_url=result.html_url,
        )
        return result
