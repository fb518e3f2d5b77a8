"""Main service - GitHub webhook receiver."""

import hashlib
import hmac
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import BackgroundTasks, FastAPI, Header, HTTPException, Request

from src.behaviors.check_gate import CheckGate, Handler
from src.github_app.client import GitHubClient

from .config import Settings, configure_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    settings = getattr(app.state, "settings", None) or Settings()
    configure_logging(settings)

    github = GitHubClient(settings)
    app.state.settings = settings
    app.state.check_gate = CheckGate(settings, github)
    logger.info("CheckGate behavior is initialized", check_name=settings.check_name)

    yield

    await github.aclose()
    logger.info("Shutting down")


app = FastAPI(
    title="QE Review Gate",
    description="Gates pull requests on QE approval via GitHub check runs",
    version="0.1.0",
    lifespan=lifespan,
)


def verify_webhook_signature(payload: bytes, signature: str, secret: str) -> bool:
    """Verify GitHub webhook signature."""
    if not signature.startswith("sha256="):
        return False

    expected = hmac.new(
        secret.encode(),
        payload,
        hashlib.sha256
    ).hexdigest()

    return hmac.compare_digest(f"sha256={expected}", signature)


async def run_handler(handler: Handler, key: str, payload: dict[str, Any]) -> None:
    """Run one handler; failures end here instead of in the server."""
    try:
        await handler(payload)
    except Exception:
        logger.exception("Webhook handler failed", webhook=key)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "qe-review-gate"}


@app.post("/webhook")
async def github_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    x_github_event: str = Header(...),
    x_hub_signature_256: str = Header(...),
):
    """Handle GitHub webhook events."""
    settings: Settings = request.app.state.settings

    body = await request.body()
    if not verify_webhook_signature(body, x_hub_signature_256, settings.github_webhook_secret):
        raise HTTPException(status_code=401, detail="Invalid signature")

    payload = await request.json()
    key = f"{x_github_event}.{payload.get('action')}"

    logger.info(
        "Received webhook",
        webhook=key,
        repo=payload.get("repository", {}).get("full_name"),
    )

    gate: CheckGate = request.app.state.check_gate
    handler = gate.handlers().get(key)
    if handler is None:
        logger.debug("Ignoring event", webhook=key)
        return {"status": "ignored"}

    # GitHub gives up on deliveries after 10s; evaluate after responding.
    background_tasks.add_task(run_handler, handler, key, payload)
    return {"status": "accepted"}


def cli():
    """CLI entry point."""
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    cli()
