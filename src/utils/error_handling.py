"""Per-item failure isolation for loops over commits and issue references."""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from typing import Literal, TypedDict

import newrelic.agent
import structlog

LoggerType = logging.Logger | structlog.BoundLogger


class ErrorCounter(TypedDict, total=False):
    """Outcome tally for one loop; keys appear once they are first incremented."""

    successful: int
    failed: int


def _increment(counter: ErrorCounter, key: Literal["successful", "failed"]) -> None:
    counter[key] = counter.get(key, 0) + 1


@contextmanager
def record_exception_and_ignore(
    logger: LoggerType, context: str, counter: ErrorCounter
) -> Generator[None]:
    """Run one item of a loop so that its failure does not abort the loop.

    An exception raised in the block is logged as `"<context>: <error>"`, reported to New
    Relic and counted in `counter["failed"]`; it does not propagate. A block that completes
    is counted in `counter["successful"]`.

    Example:
        counter: ErrorCounter = {}
        for commit in event.commits:
            with record_exception_and_ignore(logger, f"Error inserting commit {commit.id}", counter):
                await record_commit(store, project, branch, commit)
    """
    try:
        yield
    except Exception as e:
        logger.error(f"{context}: {e}")
        newrelic.agent.record_exception()
        _increment(counter, "failed")
    else:
        _increment(counter, "successful")
