"""GitHub API client - check runs, pull requests, reviews."""

from collections.abc import AsyncIterator
from datetime import datetime, timezone
from typing import Any

import httpx
import jwt
import structlog

from src.orchestrator.config import Settings

from .models import CheckConclusion, CheckStatus

logger = structlog.get_logger()

PER_PAGE = 100


class GitHubAPIError(Exception):
    """GitHub answered with a status the caller did not expect."""

    def __init__(self, method: str, path: str, status_code: int, expected: int):
        self.method = method
        self.path = path
        self.status_code = status_code
        self.expected = expected
        super().__init__(
            f"{method} {path} returned {status_code}, expected {expected}"
        )


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class GitHubClient:
    """GitHub API client using App authentication."""

    def __init__(self, settings: Settings, http: httpx.AsyncClient | None = None):
        self.settings = settings
        self._http = http
        self._installation_tokens: dict[str, tuple[str, datetime]] = {}

    def _get_http(self) -> httpx.AsyncClient:
        """Lazy shared HTTP client."""
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self.settings.github_api_url,
                headers={"Accept": "application/vnd.github+json"},
            )
        return self._http

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    def _generate_jwt(self) -> str:
        """Generate JWT for GitHub App authentication."""
        now = datetime.now(timezone.utc)
        payload = {
            "iat": int(now.timestamp()) - 60,  # clock drift
            "exp": int(now.timestamp()) + 600,
            "iss": str(self.settings.github_app_id),
        }
        return jwt.encode(
            payload,
            self.settings.github_app_private_key,
            algorithm="RS256",
        )

    async def _get_installation_token(self, repo: str) -> str:
        """Get installation access token for a repository."""
        if repo in self._installation_tokens:
            token, expires = self._installation_tokens[repo]
            if datetime.now(timezone.utc) < expires:
                return token

        http = self._get_http()
        headers = {"Authorization": f"Bearer {self._generate_jwt()}"}

        resp = await http.get(f"/repos/{repo}/installation", headers=headers)
        resp.raise_for_status()
        installation_id = resp.json()["id"]

        resp = await http.post(
            f"/app/installations/{installation_id}/access_tokens",
            headers=headers,
        )
        resp.raise_for_status()
        data = resp.json()

        token = data["token"]
        expires = datetime.fromisoformat(data["expires_at"].replace("Z", "+00:00"))
        self._installation_tokens[repo] = (token, expires)
        logger.debug("Refreshed installation token", repo=repo)
        return token

    async def _send(
        self,
        method: str,
        repo: str,
        url: str,
        expected: int = 200,
        **kwargs: Any,
    ) -> httpx.Response:
        """Make an authenticated request and check its status."""
        token = await self._get_installation_token(repo)
        resp = await self._get_http().request(
            method,
            url,
            headers={"Authorization": f"Bearer {token}"},
            **kwargs,
        )
        if resp.status_code != expected:
            logger.warning(
                "Unexpected GitHub response status",
                method=method,
                url=url,
                status=resp.status_code,
                expected=expected,
            )
            raise GitHubAPIError(method, url, resp.status_code, expected)
        return resp

    async def _request(
        self,
        method: str,
        repo: str,
        path: str,
        expected: int = 200,
        **kwargs: Any,
    ) -> Any:
        resp = await self._send(
            method, repo, f"/repos/{repo}{path}", expected=expected, **kwargs
        )
        return resp.json() if resp.content else {}

    async def _paginate(
        self,
        repo: str,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> AsyncIterator[list[dict[str, Any]]]:
        """Yield each page of a list endpoint, following ``Link: rel=next``."""
        url: str | None = f"/repos/{repo}{path}"
        while url is not None:
            resp = await self._send("GET", repo, url, params=params)
            yield resp.json()
            url = resp.links.get("next", {}).get("url")
            # the next link already carries the query string
            params = None

    # === Check Runs ===

    async def create_check_run(
        self,
        repo: str,
        head_sha: str,
        name: str,
        status: CheckStatus = CheckStatus.QUEUED,
        conclusion: CheckConclusion | None = None,
    ) -> dict[str, Any]:
        """Create a new check run."""
        data: dict[str, Any] = {
            "name": name,
            "head_sha": head_sha,
            "status": status.value,
        }

        if conclusion:
            data["conclusion"] = conclusion.value
            data["completed_at"] = utc_now()

        result = await self._request(
            "POST", repo, "/check-runs", expected=201, json=data
        )
        logger.info(
            "Created check run",
            repo=repo,
            name=name,
            id=result.get("id"),
            status=status.value,
        )
        return result

    async def update_check_run(
        self,
        repo: str,
        check_run_id: int,
        status: CheckStatus,
        conclusion: CheckConclusion | None = None,
    ) -> dict[str, Any]:
        """Move an existing check run to ``status``."""
        data: dict[str, Any] = {"status": status.value}

        if status == CheckStatus.IN_PROGRESS:
            data["started_at"] = utc_now()

        if conclusion:
            data["conclusion"] = conclusion.value
            data["completed_at"] = utc_now()

        result = await self._request(
            "PATCH",
            repo,
            f"/check-runs/{check_run_id}",
            json=data,
        )
        logger.info(
            "Updated check run",
            repo=repo,
            id=check_run_id,
            status=status.value,
            conclusion=conclusion.value if conclusion else None,
        )
        return result

    # === Pull Requests ===

    async def get_pull_request(self, repo: str, pr_number: int) -> dict[str, Any]:
        """Get a single pull request."""
        return await self._request("GET", repo, f"/pulls/{pr_number}")

    async def list_pull_requests_for_commit(
        self,
        repo: str,
        sha: str,
    ) -> list[dict[str, Any]]:
        """List pull requests whose head or base contains ``sha``."""
        pulls: list[dict[str, Any]] = []
        async for page in self._paginate(
            repo, f"/commits/{sha}/pulls", params={"per_page": PER_PAGE}
        ):
            pulls.extend(page)
        return pulls

    async def iter_reviews(
        self,
        repo: str,
        pr_number: int,
    ) -> AsyncIterator[list[dict[str, Any]]]:
        """Iterate over the review pages of a pull request, oldest first."""
        async for page in self._paginate(
            repo,
            f"/pulls/{pr_number}/reviews",
            params={"per_page": PER_PAGE},
        ):
            yield page
