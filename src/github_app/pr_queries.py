"""Lookup of the pull requests a commit belongs to."""

import structlog

from .client import GitHubClient
from .models import PullRequestRef

logger = structlog.get_logger()


async def get_or_query_prs_for_commit(
    github: GitHubClient,
    repo: str,
    sha: str,
    known: list[PullRequestRef] | None = None,
) -> list[PullRequestRef]:
    """Return the PRs for ``sha``.

    Check run payloads already list the PRs when GitHub resolved them; only
    fall back to the commits API when that list is empty (e.g. PRs from
    forks are never included there).
    """
    if known:
        return list(known)

    pulls = await github.list_pull_requests_for_commit(repo, sha)
    prs = [PullRequestRef.model_validate(pr) for pr in pulls]
    logger.debug("Queried PRs for commit", repo=repo, sha=sha, count=len(prs))
    return prs
