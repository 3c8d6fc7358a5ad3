"""Persist the commits of a push as commit rows."""

from connectors.github.github_models import GitHubPushCommit
from src.database.tracker_store import CommitRecord, NewCommitRecord, TrackedProject, TrackerStore


def build_commit_record(
    project: TrackedProject, branch: str, commit: GitHubPushCommit
) -> NewCommitRecord:
    """Derive the commit row for a pushed commit.

    The counts are file counts taken straight from the push payload: additions and
    deletions are the number of added and removed files, not changed lines, and a path
    listed under more than one change type is counted once per list.
    """
    return NewCommitRecord(
        project_id=project.id,
        sha=commit.id,
        message=commit.message,
        author_name=commit.author.name,
        github_username=commit.author.username,
        branch=branch,
        files_changed=len(commit.added) + len(commit.removed) + len(commit.modified),
        additions=len(commit.added),
        deletions=len(commit.removed),
        url=commit.url,
        committed_at=commit.timestamp,
    )


async def record_commit(
    store: TrackerStore, project: TrackedProject, branch: str, commit: GitHubPushCommit
) -> CommitRecord:
    """Store a pushed commit. Redelivering the same commit returns the existing row."""
    return await store.upsert_commit(build_commit_record(project, branch, commit))
