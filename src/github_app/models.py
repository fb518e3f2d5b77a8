"""Typed views over the GitHub payloads the review gate reads."""

from enum import Enum

from pydantic import BaseModel, ConfigDict


class CheckStatus(str, Enum):
    """Check run status."""
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class CheckConclusion(str, Enum):
    """Check run conclusion."""
    SUCCESS = "success"
    FAILURE = "failure"


class ReviewState(str, Enum):
    """Review states as reported by the reviews endpoint."""
    APPROVED = "APPROVED"
    CHANGES_REQUESTED = "CHANGES_REQUESTED"
    COMMENTED = "COMMENTED"
    DISMISSED = "DISMISSED"
    PENDING = "PENDING"


class GitHubModel(BaseModel):
    """Base for payload views; unknown fields are ignored."""
    model_config = ConfigDict(extra="ignore")


class User(GitHubModel):
    login: str


class App(GitHubModel):
    id: int


class PullRequestRef(GitHubModel):
    """PR reference as embedded in check runs and commit lookups."""
    number: int


class CheckRun(GitHubModel):
    """A check run as delivered in ``check_run`` webhooks."""
    id: int
    name: str
    head_sha: str
    status: str
    conclusion: str | None = None
    app: App
    pull_requests: list[PullRequestRef] = []
    started_at: str | None = None
    completed_at: str | None = None

    def is_owned_by(self, app_id: int, check_name: str) -> bool:
        """Whether this check run belongs to the given app or check.

        Either signal is enough: a run from another app with the same
        name counts as owned.
        """
        return self.app.id == app_id or self.name == check_name


class Review(GitHubModel):
    """One entry of ``GET /pulls/{number}/reviews``."""
    id: int
    user: User | None = None
    state: str
    submitted_at: str | None = None


class PullRequest(GitHubModel):
    """Full pull request as returned by ``GET /pulls/{number}``."""
    number: int
    user: User
