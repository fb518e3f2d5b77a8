"""GitHub App integration."""

from .client import GitHubAPIError, GitHubClient
from .models import CheckConclusion, CheckRun, CheckStatus, PullRequest, Review
from .pr_queries import get_or_query_prs_for_commit

__all__ = [
    "CheckConclusion",
    "CheckRun",
    "CheckStatus",
    "GitHubAPIError",
    "GitHubClient",
    "PullRequest",
    "Review",
    "get_or_query_prs_for_commit",
]
