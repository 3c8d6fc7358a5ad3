"""Repository for the tracker tables touched by the push webhook.

The webhook reads `projects` and `bugs` (owned by the tracker app) and writes
`commits`, `commit_bug_links` and `activity_log`. Writes that can be replayed by a
webhook redelivery are upserts keyed on the tables' unique constraints.
"""

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

import asyncpg

from src.clients.supabase import SupabaseDB
from src.utils.logging import get_logger

logger = get_logger(__name__)

ACTION_COMMIT_LINKED = "commit_linked"


class StoreUnavailableError(Exception):
    """The tracker database could not be reached or dropped the connection."""


# Errors that mean "try again later" rather than "this statement is wrong"
_CONNECTION_ERRORS: tuple[type[BaseException], ...] = (
    OSError,
    TimeoutError,
    asyncpg.exceptions.InterfaceError,
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.CannotConnectNowError,
    asyncpg.exceptions.TooManyConnectionsError,
)


@dataclass(frozen=True)
class TrackedProject:
    """A project linked to a GitHub repository by a tracker user."""

    id: UUID
    github_owner: str
    github_repo: str
    project_code: str
    webhook_secret: str | None = None


@dataclass(frozen=True)
class Issue:
    id: UUID
    project_id: UUID
    display_id: str


@dataclass(frozen=True)
class NewCommitRecord:
    """Column values for a commit row, before it has an id."""

    project_id: UUID
    sha: str
    message: str
    author_name: str
    github_username: str | None
    branch: str
    files_changed: int
    additions: int
    deletions: int
    url: str
    committed_at: datetime


@dataclass(frozen=True)
class CommitRecord(NewCommitRecord):
    id: UUID

    @classmethod
    def from_row(cls, row: asyncpg.Record) -> "CommitRecord":
        return cls(
            id=row["id"],
            project_id=row["project_id"],
            sha=row["sha"],
            message=row["message"],
            author_name=row["author_name"],
            github_username=row["github_username"],
            branch=row["branch"],
            files_changed=row["files_changed"],
            additions=row["additions"],
            deletions=row["deletions"],
            url=row["url"],
            committed_at=row["committed_at"],
        )


class TrackerStore(Protocol):
    """Store operations the webhook pipeline depends on."""

    async def get_project_by_repo(self, owner: str, repo: str) -> TrackedProject | None: ...

    async def upsert_commit(self, commit: NewCommitRecord) -> CommitRecord: ...

    async def get_issue_by_display_id(
        self, project_id: UUID, display_id: str
    ) -> Issue | None: ...

    async def link_commit_to_issue(self, commit_id: UUID, issue_id: UUID) -> bool: ...

    async def append_activity(
        self, issue_id: UUID, action: str, metadata: dict[str, Any]
    ) -> None: ...

    async def health_check(self) -> None: ...


_COMMIT_COLUMNS = """
    id, project_id, sha, message, author_name, github_username, branch,
    files_changed, additions, deletions, url, committed_at
"""


class PostgresTrackerStore:
    """TrackerStore backed by the tracker's Supabase Postgres database."""

    def __init__(self, db: SupabaseDB):
        self.db = db

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[asyncpg.Connection]:
        try:
            pool = await self.db.get_pool()
            async with pool.acquire() as conn:
                yield conn
        except _CONNECTION_ERRORS as e:
            raise StoreUnavailableError(f"Tracker database unavailable: {e}") from e

    async def get_project_by_repo(self, owner: str, repo: str) -> TrackedProject | None:
        """Get the project linked to owner/repo, or None unless exactly one row matches."""
        async with self._connection() as conn:
            rows = await conn.fetch(
                """
                SELECT id, github_owner, github_repo, project_code, webhook_secret
                FROM projects
                WHERE github_owner = $1 AND github_repo = $2
                LIMIT 2
                """,
                owner,
                repo,
            )

        if len(rows) != 1:
            if rows:
                logger.warning(
                    "Multiple projects linked to the same repository, ignoring push",
                    repository=f"{owner}/{repo}",
                )
            return None

        row = rows[0]
        return TrackedProject(
            id=row["id"],
            github_owner=row["github_owner"],
            github_repo=row["github_repo"],
            project_code=row["project_code"],
            webhook_secret=row["webhook_secret"] or None,
        )

    async def upsert_commit(self, commit: NewCommitRecord) -> CommitRecord:
        """Insert a commit row, or return the existing one for the same (project_id, sha)."""
        async with self._connection() as conn:
            # DO UPDATE (rather than DO NOTHING) so RETURNING yields the existing row
            row = await conn.fetchrow(
                f"""
                INSERT INTO commits (
                    project_id, sha, message, author_name, github_username, branch,
                    files_changed, additions, deletions, url, committed_at
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
                ON CONFLICT (project_id, sha) DO UPDATE SET sha = EXCLUDED.sha
                RETURNING {_COMMIT_COLUMNS}
                """,
                commit.project_id,
                commit.sha,
                commit.message,
                commit.author_name,
                commit.github_username,
                commit.branch,
                commit.files_changed,
                commit.additions,
                commit.deletions,
                commit.url,
                commit.committed_at,
            )
        return CommitRecord.from_row(row)

    async def get_issue_by_display_id(self, project_id: UUID, display_id: str) -> Issue | None:
        """Issue with `display_id` in the given project; another project's issue is never returned."""
        async with self._connection() as conn:
            rows = await conn.fetch(
                """
                SELECT id, project_id, bug_display_id
                FROM bugs
                WHERE project_id = $1 AND bug_display_id = $2
                LIMIT 2
                """,
                project_id,
                display_id,
            )
        if len(rows) != 1:
            return None
        row = rows[0]
        return Issue(
            id=row["id"], project_id=row["project_id"], display_id=row["bug_display_id"]
        )

    async def link_commit_to_issue(self, commit_id: UUID, issue_id: UUID) -> bool:
        """Link a commit to an issue. Returns False when the link already existed."""
        async with self._connection() as conn:
            result = await conn.execute(
                """
                INSERT INTO commit_bug_links (commit_id, bug_id)
                VALUES ($1, $2)
                ON CONFLICT (commit_id, bug_id) DO NOTHING
                """,
                commit_id,
                issue_id,
            )
        # asyncpg returns the command tag, e.g. "INSERT 0 1"
        return result.endswith(" 1")

    async def append_activity(self, issue_id: UUID, action: str, metadata: dict[str, Any]) -> None:
        async with self._connection() as conn:
            await conn.execute(
                """
                INSERT INTO activity_log (bug_id, action, metadata)
                VALUES ($1, $2, $3::jsonb)
                """,
                issue_id,
                action,
                json.dumps(metadata),
            )

    async def health_check(self) -> None:
        async with self._connection() as conn:
            await conn.fetchval("SELECT 1")
