"""QE review gate - drives the "Kiali - PR" check run from webhook events."""

from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from src.github_app.client import GitHubClient
from src.github_app.models import (
    CheckConclusion,
    CheckRun,
    CheckStatus,
    PullRequest,
    Review,
    ReviewState,
)
from src.github_app.pr_queries import get_or_query_prs_for_commit
from src.orchestrator.config import Settings

logger = structlog.get_logger()

Handler = Callable[[dict[str, Any]], Awaitable[None]]


class CheckGate:
    """Gates pull requests on an approving review from a QE user.

    Each triggering event creates a check run. Runs created ``queued`` are
    picked up again by ``check_run.created`` and evaluated there; runs the
    gate can already decide on are created ``completed`` straight away.
    """

    LOG_FIELDS = {"behavior": "CheckGate"}

    def __init__(self, settings: Settings, github: GitHubClient):
        self.settings = settings
        self.github = github

    def handlers(self) -> dict[str, Handler]:
        """Webhook ``<event>.<action>`` keys mapped to their handler."""
        return {
            "pull_request.opened": self.on_pull_request,
            "pull_request.reopened": self.on_pull_request,
            "check_run.rerequested": self.on_check_rerequested,
            "pull_request_review.dismissed": self.on_review,
            "pull_request_review.submitted": self.on_review,
            "check_run.created": self.on_check_run_created,
        }

    # === Triggers ===

    async def on_pull_request(self, payload: dict[str, Any]) -> None:
        """Queue a check run on the head of an opened or reopened PR."""
        pr = payload["pull_request"]
        logger.debug("Queuing new PR checks", pr_number=pr["number"], **self.LOG_FIELDS)
        await self._queue_check_run(_repo(payload), pr["head"]["sha"])

    async def on_check_rerequested(self, payload: dict[str, Any]) -> None:
        """Queue a fresh check run when one of ours is re-run from the UI."""
        check_run = CheckRun.model_validate(payload["check_run"])
        if not self._is_owned(check_run):
            return

        logger.debug(
            "Queuing new PR checks (check run re-requested)",
            sha=check_run.head_sha,
            **self.LOG_FIELDS,
        )
        await self._queue_check_run(_repo(payload), check_run.head_sha)

    async def on_review(self, payload: dict[str, Any]) -> None:
        """Pass the check at once on a QE approval, else queue a new run."""
        repo = _repo(payload)
        pr = payload["pull_request"]
        head_sha = pr["head"]["sha"]
        log_fields = {"pr_number": pr["number"], **self.LOG_FIELDS}

        if (
            payload.get("action") in ("submitted", "edited")
            and payload["review"].get("state") == "approved"
            and payload["sender"]["login"] in await self.find_qe_users()
        ):
            logger.debug("Creating successful check", **log_fields)
            try:
                await self.github.create_check_run(
                    repo,
                    head_sha,
                    self.settings.check_name,
                    status=CheckStatus.COMPLETED,
                    conclusion=CheckConclusion.SUCCESS,
                )
                return
            except Exception as e:
                logger.warning(
                    "Failed to create green check run after approval, "
                    "a normal check run will be queued",
                    error=str(e),
                    **log_fields,
                )

        logger.debug("Queuing new PR checks", **log_fields)
        await self._queue_check_run(repo, head_sha)

    # === Evaluation ===

    async def on_check_run_created(self, payload: dict[str, Any]) -> None:
        """Evaluate a queued check run and complete it."""
        check_run = CheckRun.model_validate(payload["check_run"])
        log_fields = {"sha": check_run.head_sha, **self.LOG_FIELDS}

        if not self._is_owned(check_run):
            return

        if check_run.status != CheckStatus.QUEUED:
            logger.debug("Created check run is not queued, not running checks", **log_fields)
            return

        repo = _repo(payload)
        phase = "resolve PRs"
        try:
            prs = await get_or_query_prs_for_commit(
                self.github, repo, check_run.head_sha, check_run.pull_requests
            )

            phase = "check bot"
            for ref in prs:
                pr = PullRequest.model_validate(
                    await self.github.get_pull_request(repo, ref.number)
                )
                if self.settings.bot_user and pr.user.login == self.settings.bot_user:
                    logger.info(
                        "Not doing checks on PR because it is owned by the bot user",
                        pr_number=pr.number,
                        **log_fields,
                    )
                    phase = "mark bot PR ok"
                    await self._complete(repo, check_run, CheckConclusion.SUCCESS)
                    return

            phase = "mark in_progress"
            await self.github.update_check_run(
                repo, check_run.id, CheckStatus.IN_PROGRESS
            )

            phase = "resolve reviews"
            qe_users = await self.find_qe_users()
            states = await self._latest_review_states(repo, [ref.number for ref in prs])
            conclusion = decide_conclusion(qe_users, states)

            phase = "mark complete"
            await self._complete(repo, check_run, conclusion)
        except Exception as e:
            logger.exception(
                "Error performing check run",
                phase=phase,
                check_run_id=check_run.id,
                error=str(e),
                **log_fields,
            )

    async def find_qe_users(self) -> list[str]:
        """Logins whose approval passes the check."""
        return list(self.settings.qe_users)

    async def _latest_review_states(
        self,
        repo: str,
        pr_numbers: list[int],
    ) -> dict[str, str]:
        """Fold every review of ``pr_numbers`` into login -> latest state."""
        states: dict[str, str] = {}
        for number in pr_numbers:
            reviews: list[Review] = []
            async for page in self.github.iter_reviews(repo, number):
                reviews.extend(Review.model_validate(r) for r in page)
            fold_review_states(states, reviews)
        return states

    # === Helpers ===

    def _is_owned(self, check_run: CheckRun) -> bool:
        if check_run.is_owned_by(self.settings.github_app_id, self.settings.check_name):
            return True
        logger.debug(
            "Check run not owned by this behavior",
            check_run_id=check_run.id,
            **self.LOG_FIELDS,
        )
        return False

    async def _queue_check_run(self, repo: str, head_sha: str) -> None:
        try:
            await self.github.create_check_run(repo, head_sha, self.settings.check_name)
        except Exception as e:
            # No check will run for this commit until the next trigger.
            logger.error(
                "Failed to create check run",
                repo=repo,
                head_sha=head_sha,
                error=str(e),
                **self.LOG_FIELDS,
            )

    async def _complete(
        self,
        repo: str,
        check_run: CheckRun,
        conclusion: CheckConclusion,
    ) -> None:
        await self.github.update_check_run(
            repo, check_run.id, CheckStatus.COMPLETED, conclusion=conclusion
        )


def fold_review_states(states: dict[str, str], reviews: list[Review]) -> dict[str, str]:
    """Record each reviewer's latest state into ``states``.

    Reviews are ordered by ``submitted_at`` when every review carries one;
    otherwise, and between equal timestamps, the API order decides.
    """
    if all(r.submitted_at for r in reviews):
        reviews = sorted(reviews, key=lambda r: r.submitted_at)
    for review in reviews:
        if review.user is None:
            # deleted account
            continue
        states[review.user.login] = review.state
    return states


def decide_conclusion(qe_users: list[str], states: dict[str, str]) -> CheckConclusion:
    if any(states.get(user) == ReviewState.APPROVED.value for user in qe_users):
        return CheckConclusion.SUCCESS
    return CheckConclusion.FAILURE


def _repo(payload: dict[str, Any]) -> str:
    return payload["repository"]["full_name"]
