"""Configuration management."""

import logging

import structlog
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings from environment."""

    # GitHub App
    github_app_id: int
    github_app_private_key: str
    github_webhook_secret: str
    github_api_url: str = "https://api.github.com"

    # Account whose own PRs always pass the gate
    bot_user: str = ""

    # Review gate
    check_name: str = "Kiali - PR"
    qe_users: list[str] = ["edgarHzg", "israel-hdez"]

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


def configure_logging(settings: Settings) -> None:
    """Set up structlog output at the configured level."""
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
    )
