"""Pull request models for the GitHub client.

The models keep the subset of GitHub's REST payloads the accessors return
and ignore every other field.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class PullRequestState(str, Enum):
    """State filter for listing pull requests.

    Attributes:
        OPEN: Open pull requests only.
        CLOSED: Closed (including merged) pull requests only.
        ALL: Pull requests in any state.
    """

    OPEN = "open"
    CLOSED = "closed"
    ALL = "all"


class _GitHubModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class GitUser(_GitHubModel):
    login: str
    id: Optional[int] = None


class BranchRef(_GitHubModel):
    """Head or base of a pull request."""

    ref: str
    sha: Optional[str] = None
    label: Optional[str] = None


class PullRequest(_GitHubModel):
    """A pull request as returned by the pulls endpoints."""

    number: int
    state: str
    title: str
    body: Optional[str] = None
    html_url: Optional[str] = None
    head: Optional[BranchRef] = None
    base: Optional[BranchRef] = None
    user: Optional[GitUser] = None
    merged: Optional[bool] = None
    maintainer_can_modify: Optional[bool] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class CommitDetails(_GitHubModel):
    message: str = ""
    author: Optional[Dict[str, Any]] = None


class RepositoryCommit(_GitHubModel):
    """A commit listed on a pull request."""

    sha: str
    commit: CommitDetails = Field(default_factory=CommitDetails)
    author: Optional[GitUser] = None
    html_url: Optional[str] = None


class CommitFile(_GitHubModel):
    """A file changed by a pull request."""

    filename: str
    status: Optional[str] = None
    sha: Optional[str] = None
    additions: int = 0
    deletions: int = 0
    changes: int = 0
    patch: Optional[str] = None
    previous_filename: Optional[str] = None


class NewPullRequest(_GitHubModel):
    """Request body for creating a pull request.

    Attributes:
        title: Pull request title.
        body: Pull request description in markdown.
        head: Source branch, as "user:ref-name" for cross-repository PRs.
        base: Target branch name, e.g. "main".
        maintainer_can_modify: Allow maintainers to push to the head branch.
    """

    title: str
    body: str = ""
    head: str
    base: str
    maintainer_can_modify: bool = True
