"""Link recorded commits to the issues their messages reference.

A reference is an issue display id, `<PROJECT CODE>-<number>` (e.g. `PROJ-12`), optionally
preceded by a fixed tag such as `BUG-`. References are found anywhere in the message, including
inside branch names like `feature/PROJ-12_login`. They resolve only to issues of the commit's own
project; anything else (typos, other projects' codes, other trackers' keys) is skipped without error.
"""

import re

from src.database.tracker_store import ACTION_COMMIT_LINKED, CommitRecord, TrackerStore
from src.utils.error_handling import ErrorCounter, record_exception_and_ignore
from src.utils.logging import get_logger

logger = get_logger(__name__)


def build_reference_pattern(tag: str = "") -> re.Pattern[str]:
    """Compile the reference pattern for display ids preceded by `tag`.

    A match may not start in the middle of an uppercase run, so `XPROJ-1` is not read as
    `PROJ-1`. Digits, underscores and lowercase letters around a reference do not block it.
    """
    return re.compile(rf"(?<![A-Z]){re.escape(tag)}[A-Z][A-Z0-9]*-\d+")


def extract_issue_references(message: str, pattern: re.Pattern[str]) -> list[str]:
    """All distinct references in `message`, in order of first appearance."""
    if not message:
        return []
    return list(dict.fromkeys(match.group(0) for match in pattern.finditer(message)))


async def link_reference(store: TrackerStore, commit: CommitRecord, display_id: str) -> bool:
    """Link `commit` to the issue named by `display_id` in the commit's project.

    The activity entry is appended only when the link is new, so a redelivered push
    leaves the issue's history unchanged.

    Returns:
        False if the project has no issue with that display id, True otherwise
    """
    issue = await store.get_issue_by_display_id(commit.project_id, display_id)
    if issue is None:
        logger.debug("Reference does not match any issue", display_id=display_id)
        return False

    created = await store.link_commit_to_issue(commit.id, issue.id)
    if created:
        await store.append_activity(
            issue.id,
            ACTION_COMMIT_LINKED,
            {"commit_sha": commit.sha, "commit_url": commit.url, "message": commit.message},
        )
    logger.info(
        "Linked commit to issue",
        commit_sha=commit.sha,
        display_id=display_id,
        already_linked=not created,
    )
    return True


async def link_commit_references(
    store: TrackerStore, commit: CommitRecord, pattern: re.Pattern[str]
) -> list[str]:
    """Link `commit` to every issue its message references.

    A failure on one reference is logged and does not stop the others.

    Returns:
        Display ids that were linked
    """
    references = extract_issue_references(commit.message, pattern)
    if not references:
        return []

    linked: list[str] = []
    counter: ErrorCounter = {}
    for display_id in references:
        with record_exception_and_ignore(
            logger, f"Failed to link commit {commit.sha} to {display_id}", counter
        ):
            if await link_reference(store, commit, display_id):
                linked.append(display_id)

    if counter.get("failed"):
        logger.warning(
            "Some references could not be linked",
            commit_sha=commit.sha,
            references=len(references),
            failed=counter.get("failed", 0),
        )
    return linked
