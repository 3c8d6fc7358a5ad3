import hashlib
import hmac
import json
import logging
from typing import Any

from src.ingest.gatekeeper.verification import BaseSigningSecretVerifier

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-hub-signature-256"
SIGNATURE_PREFIX = "sha256="

# Delivery headers copied into metadata, keyed by the name they are logged under
_HEADER_FIELDS = {
    "hook_id": ("x-github-hook-id", ""),
    "event_type": ("x-github-event", "unknown"),
    "delivery_id": ("x-github-delivery", ""),
    "user_agent": ("user-agent", ""),
}


class GitHubWebhookVerifier(BaseSigningSecretVerifier):
    """Checks GitHub's X-Hub-Signature-256 header against the project's webhook secret."""

    source_type = "github"
    verify_func = staticmethod(lambda h, b, s: verify_github_webhook(h, b, s))


def compute_github_signature(body: bytes, secret: str) -> str:
    """Signature header value GitHub sends for `body` signed with `secret`."""
    return SIGNATURE_PREFIX + hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_github_webhook(headers: dict[str, str], body: bytes, secret: str) -> None:
    """Verify the X-Hub-Signature-256 header against the raw body.

    Raises:
        ValueError: If the header is missing, malformed or does not match
    """
    signature = headers.get(SIGNATURE_HEADER)
    if not signature:
        raise ValueError(f"Missing {SIGNATURE_HEADER} header")
    if not signature.startswith(SIGNATURE_PREFIX):
        raise ValueError(f"Malformed signature, expected a {SIGNATURE_PREFIX} prefix")

    expected = compute_github_signature(body, secret)
    if not hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8")):
        raise ValueError("Signature does not match request body")


def _push_fields(payload: dict[str, Any]) -> dict[str, str | int]:
    # Ids only: repository, author and sender names stay out of the logs
    fields: dict[str, str | int] = {}
    if repository := payload.get("repository"):
        fields["repository_id"] = repository.get("id", "")
    if sender := payload.get("sender"):
        fields["sender_id"] = sender.get("id", "")
        fields["sender_type"] = sender.get("type", "")
    if isinstance(commits := payload.get("commits"), list):
        fields["commit_count"] = len(commits)
    if ref := payload.get("ref"):
        fields["ref"] = ref
    return fields


def extract_github_webhook_metadata(
    headers: dict[str, str], body_str: str
) -> dict[str, str | int]:
    """Delivery metadata attached to every log line of a webhook request.

    Never raises: a body that cannot be inspected is noted under `parse_error` or
    `extraction_error` and the header fields are still returned.
    """
    metadata: dict[str, str | int] = {"payload_size": len(body_str)}
    for key, (header, default) in _HEADER_FIELDS.items():
        metadata[key] = headers.get(header, default)

    try:
        payload = json.loads(body_str)
    except ValueError:
        metadata["parse_error"] = "Failed to parse JSON"
        return metadata

    if not isinstance(payload, dict):
        metadata["parse_error"] = "Payload is not a JSON object"
        return metadata

    try:
        metadata.update(_push_fields(payload))
    except Exception as e:
        logger.warning(f"Could not extract push metadata: {e}")
        metadata["extraction_error"] = str(e)

    return metadata
