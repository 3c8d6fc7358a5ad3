"""Pydantic models for GitHub push webhook payloads.

Only the fields the tracker uses are declared; everything else in the payload is ignored.
"""

from datetime import datetime

from pydantic import BaseModel

BRANCH_REF_PREFIX = "refs/heads/"


class GitHubCommitAuthor(BaseModel):
    name: str
    email: str | None = None
    # Absent when the commit email is not associated with a GitHub account
    username: str | None = None


class GitHubPushCommit(BaseModel):
    """A single commit as listed in a push event."""

    id: str
    message: str
    timestamp: datetime
    url: str
    author: GitHubCommitAuthor
    added: list[str] = []
    removed: list[str] = []
    modified: list[str] = []


class GitHubPushRepository(BaseModel):
    full_name: str
    html_url: str | None = None


class GitHubPushEvent(BaseModel):
    """Body of a `push` webhook delivery."""

    ref: str
    repository: GitHubPushRepository
    commits: list[GitHubPushCommit] = []

    @property
    def branch(self) -> str:
        """Branch name for branch pushes; other refs (e.g. tags) are returned unchanged."""
        return self.ref.removeprefix(BRANCH_REF_PREFIX)
