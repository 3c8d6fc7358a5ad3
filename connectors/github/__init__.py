from connectors.github.github_models import (
    GitHubCommitAuthor,
    GitHubPushCommit,
    GitHubPushEvent,
    GitHubPushRepository,
)
from connectors.github.github_webhook_handler import (
    GitHubWebhookVerifier,
    compute_github_signature,
    extract_github_webhook_metadata,
    verify_github_webhook,
)

__all__ = [
    "GitHubCommitAuthor",
    "GitHubPushCommit",
    "GitHubPushEvent",
    "GitHubPushRepository",
    "GitHubWebhookVerifier",
    "compute_github_signature",
    "extract_github_webhook_metadata",
    "verify_github_webhook",
]
