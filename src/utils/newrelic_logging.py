"""New Relic logging integration helpers."""

from collections.abc import MutableMapping
from typing import Any

import newrelic.agent


def newrelic_error_processor(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor that reports error-level logs to New Relic.

    Uses notice_error, which picks up the exception currently being handled (if any) and is a
    no-op when the agent has not been initialized. The event dict is passed through unchanged.
    """
    if method_name in ("error", "critical", "exception"):
        newrelic.agent.notice_error()

    return event_dict
