"""Pydantic models for gatekeeper service."""

from pydantic import BaseModel


class WebhookResponse(BaseModel):
    """Webhook response model.

    Every accepted delivery answers 200 with this body; `message` tells a ping, an ignored
    event, an untracked repository and a processed push apart.
    """

    success: bool
    message: str
    project_id: str | None = None
    # Number of commits in the delivered payload, not the number stored
    processed_commits: int | None = None
