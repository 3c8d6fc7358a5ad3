"""Route definitions for gatekeeper service."""

from fastapi import APIRouter, Request

from src.ingest.gatekeeper.models import WebhookResponse
from src.ingest.gatekeeper.webhook_handlers import handle_github_push_webhook

router = APIRouter()


# POST only: any other method on this path is answered 405 by the router
@router.post("/webhooks/github", response_model=WebhookResponse)
async def github_webhook(request: Request):
    """Process GitHub push webhook for the tracker project linked to the repository."""
    return await handle_github_push_webhook(request)
