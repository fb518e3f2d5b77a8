"""Shared fixtures."""

import os
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set test environment variables before imports that might trigger Settings
os.environ.setdefault("GITHUB_APP_ID", "42")
os.environ.setdefault("GITHUB_APP_PRIVATE_KEY", "test")
os.environ.setdefault("GITHUB_WEBHOOK_SECRET", "test")

from src.github_app.client import GitHubClient
from src.orchestrator.config import Settings

APP_ID = 42


@pytest.fixture
def settings():
    """Create test settings."""
    return Settings(
        github_app_id=APP_ID,
        github_app_private_key="test",
        github_webhook_secret="secret",
        bot_user="kiali-bot",
        qe_users=["edgarHzg", "israel-hdez"],
    )


@pytest.fixture
def github():
    """GitHubClient double; ``reviews`` maps PR number -> list of pages."""
    client = MagicMock(spec=GitHubClient)
    client.create_check_run = AsyncMock(return_value={"id": 1})
    client.update_check_run = AsyncMock(return_value={})
    client.get_pull_request = AsyncMock(
        side_effect=lambda repo, number: {"number": number, "user": {"login": "someone"}}
    )
    client.list_pull_requests_for_commit = AsyncMock(return_value=[])
    client.reviews = {}

    async def iter_reviews(repo, number):
        for page in client.reviews.get(number, []):
            yield page

    client.iter_reviews = MagicMock(side_effect=iter_reviews)
    return client
