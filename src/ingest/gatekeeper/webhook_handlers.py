"""Webhook handler functions for gatekeeper service.

A push delivery flows through four stages, strictly in this order:

1. ingress: event type filtering and payload parsing
2. project resolution: repository -> tracker project (untracked repositories are ignored)
3. signature verification with the resolved project's secret
4. per commit: record the commit, then link the issues its message references

Stage 3 has to follow stage 2 because secrets are configured per project. Nothing is
written before the signature has been checked.
"""

import re

from fastapi import HTTPException, Request
from pydantic import ValidationError

from connectors.github import (
    GitHubPushEvent,
    GitHubWebhookVerifier,
    extract_github_webhook_metadata,
)
from src.database.tracker_store import (
    CommitRecord,
    StoreUnavailableError,
    TrackedProject,
    TrackerStore,
)
from src.ingest.gatekeeper.models import WebhookResponse
from src.ingest.gatekeeper.services.commit_recorder import record_commit
from src.ingest.gatekeeper.services.project_resolver import NotTracked, resolve_project
from src.ingest.gatekeeper.services.reference_linker import (
    build_reference_pattern,
    link_commit_references,
)
from src.ingest.gatekeeper.verification import SignatureOutcome, WebhookVerifier
from src.utils.config import get_issue_reference_tag
from src.utils.error_handling import ErrorCounter, record_exception_and_ignore
from src.utils.logging import LogContext, get_logger

logger = get_logger(__name__)

EVENT_HEADER = "x-github-event"
PING_EVENT = "ping"
PUSH_EVENT = "push"


def get_tracker_store(request: Request) -> TrackerStore:
    """Get the store injected at startup, or fail the request if it is not configured."""
    store: TrackerStore | None = getattr(request.app.state, "tracker_store", None)
    if store is None:
        logger.error("Tracker store is not configured, rejecting webhook")
        raise HTTPException(status_code=500, detail="Server configuration error")
    return store


def parse_push_event(body: bytes) -> GitHubPushEvent:
    try:
        return GitHubPushEvent.model_validate_json(body)
    except ValidationError as e:
        logger.warning("Invalid push payload", error_count=e.error_count())
        raise HTTPException(status_code=400, detail=f"Invalid push payload: {e}")


def verify_push_signature(
    headers: dict[str, str], body: bytes, project: TrackedProject
) -> SignatureOutcome:
    """Check the delivery signature with the project's secret, raising 401 on failure."""
    verifier: WebhookVerifier = GitHubWebhookVerifier()
    result = verifier.verify(headers, body, project.webhook_secret)

    if result.outcome is SignatureOutcome.REJECTED:
        logger.warning(f"Failed to verify {verifier.source_type} webhook: {result.error}")
        raise HTTPException(status_code=401, detail=f"Invalid signature: {result.error}")

    if result.outcome is SignatureOutcome.SKIPPED_NO_SECRET:
        logger.warning("Project has no webhook secret configured, accepting unsigned delivery")

    return result.outcome


async def record_push(
    store: TrackerStore,
    project: TrackedProject,
    event: GitHubPushEvent,
    reference_pattern: re.Pattern[str],
) -> None:
    """Record every commit of the push and link its references.

    A commit that fails to store is logged and skipped (and so is its linking); the rest
    of the push is still processed.
    """
    branch = event.branch
    commit_counter: ErrorCounter = {}
    linked_issues = 0

    for commit in event.commits:
        record: CommitRecord | None = None
        with record_exception_and_ignore(
            logger, f"Error inserting commit {commit.id}", commit_counter
        ):
            record = await record_commit(store, project, branch, commit)

        if record is None:
            continue

        linked = await link_commit_references(store, record, reference_pattern)
        linked_issues += len(linked)

    logger.info(
        "Processed push",
        branch=branch,
        received_commits=len(event.commits),
        recorded_commits=commit_counter.get("successful", 0),
        failed_commits=commit_counter.get("failed", 0),
        linked_issues=linked_issues,
    )


async def process_push_event(
    store: TrackerStore,
    event: GitHubPushEvent,
    headers: dict[str, str],
    body: bytes,
) -> WebhookResponse:
    resolution = await resolve_project(store, event.repository.full_name)
    if isinstance(resolution, NotTracked):
        return WebhookResponse(success=True, message="Ignored: Repo not tracked")

    project = resolution.project
    with LogContext(project_id=str(project.id), project_code=project.project_code):
        signature = verify_push_signature(headers, body, project)

        await record_push(
            store, project, event, build_reference_pattern(get_issue_reference_tag())
        )

        logger.info("Push webhook processed", signature=signature.value)
        return WebhookResponse(
            success=True,
            message=f"Processed {len(event.commits)} commit(s)",
            project_id=str(project.id),
            processed_commits=len(event.commits),
        )


async def handle_github_push_webhook(request: Request) -> WebhookResponse:
    """Handle a GitHub webhook delivery for the tracker."""
    store = get_tracker_store(request)

    headers = dict(request.headers)
    event_type = headers.get(EVENT_HEADER, "")

    # Sent once when the webhook is registered
    if event_type == PING_EVENT:
        return WebhookResponse(success=True, message="pong")

    # Acknowledge other events so GitHub does not retry them
    if event_type != PUSH_EVENT:
        logger.info("Ignoring github webhook event", event_type=event_type or "unknown")
        return WebhookResponse(success=True, message=f"Ignoring event: {event_type or 'unknown'}")

    body = await request.body()
    metadata = extract_github_webhook_metadata(headers, body.decode("utf-8", errors="replace"))
    tracking_context = {f"webhook_meta_{key}": value for key, value in metadata.items()}

    with LogContext(**tracking_context):
        logger.info("Received github push webhook")
        try:
            event = parse_push_event(body)
            with LogContext(repository=event.repository.full_name):
                return await process_push_event(store, event, headers, body)
        except HTTPException:
            raise
        except StoreUnavailableError as e:
            logger.error(f"Tracker database unavailable while processing webhook: {e}")
            raise HTTPException(status_code=503, detail=f"Webhook error: {e}")
        except Exception as e:
            logger.error(f"Webhook processing failed: {e}")
            raise HTTPException(status_code=500, detail=f"Webhook error: {e}")
