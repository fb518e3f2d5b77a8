"""Orchestrator - webhook service and configuration."""

from .config import Settings, configure_logging

__all__ = [
    "Settings",
    "configure_logging",
]
