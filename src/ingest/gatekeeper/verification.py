"""Webhook verification protocol and result types.

Signing secrets are configured per project, so a verifier is handed the secret of the
project the delivery resolved to instead of looking one up itself. A project without a
secret runs in open mode: deliveries are accepted unsigned, and the result says so
explicitly rather than pretending they were verified.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol


class SignatureOutcome(str, Enum):
    VERIFIED = "verified"
    SKIPPED_NO_SECRET = "skipped_no_secret"
    REJECTED = "rejected"


@dataclass
class VerificationResult:
    """Result of webhook verification."""

    outcome: SignatureOutcome
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.outcome is not SignatureOutcome.REJECTED


class WebhookVerifier(Protocol):
    """Protocol for webhook verification handlers."""

    source_type: str

    def verify(
        self,
        headers: dict[str, str],
        body: bytes,
        signing_secret: str | None,
    ) -> VerificationResult:
        """Verify a webhook delivery.

        Args:
            headers: HTTP headers from the webhook request (lowercase keys)
            body: Raw request body exactly as received
            signing_secret: The project's secret, or None when none is configured

        Returns:
            VerificationResult describing how the delivery was authenticated
        """
        ...


# Raises ValueError when the signature does not check out
VerifyFunc = Callable[[dict[str, str], bytes, str], None]


class BaseSigningSecretVerifier:
    """Base class for verifiers that check an HMAC-style signature with a shared secret.

    Subclasses only need to define:
    - source_type: The source identifier used in log lines (e.g., "github")
    - verify_func: The function that performs the actual verification
    """

    source_type: str
    verify_func: VerifyFunc

    def verify(
        self,
        headers: dict[str, str],
        body: bytes,
        signing_secret: str | None,
    ) -> VerificationResult:
        if not signing_secret:
            return VerificationResult(outcome=SignatureOutcome.SKIPPED_NO_SECRET)

        try:
            self.verify_func(headers, body, signing_secret)
        except ValueError as e:
            return VerificationResult(outcome=SignatureOutcome.REJECTED, error=str(e))
        return VerificationResult(outcome=SignatureOutcome.VERIFIED)
