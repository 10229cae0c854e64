"""GitHub API client for pull request listing and creation."""

from infrakit.github.client import MAX_RETRY_COUNT, GitHubClient, next_page_number
from infrakit.github.models import (
    CommitFile,
    NewPullRequest,
    PullRequest,
    PullRequestState,
    RepositoryCommit,
)

__all__ = [
    "CommitFile",
    "GitHubClient",
    "MAX_RETRY_COUNT",
    "NewPullRequest",
    "PullRequest",
    "PullRequestState",
    "RepositoryCommit",
    "next_page_number",
]
