"""Shared fixtures: an in-memory tracker store and GitHub push payload builders."""

import json
from typing import Any
from uuid import UUID, uuid4

import pytest

from src.database.tracker_store import (
    CommitRecord,
    Issue,
    NewCommitRecord,
    StoreUnavailableError,
    TrackedProject,
)


class InMemoryTrackerStore:
    """TrackerStore fake with the same uniqueness rules as the real tables.

    Commits are unique on (project_id, sha) and links on (commit_id, issue_id). Issues are
    looked up within one project, like the bugs table query. Failures
    can be injected per commit sha or per display id, and `unavailable` makes every call
    raise StoreUnavailableError.
    """

    def __init__(self) -> None:
        self.projects: list[TrackedProject] = []
        self.issues: list[Issue] = []
        self.commits: dict[tuple[UUID, str], CommitRecord] = {}
        self.links: set[tuple[UUID, UUID]] = set()
        self.activity: list[tuple[UUID, str, dict[str, Any]]] = []
        self.calls: list[str] = []

        self.fail_commit_shas: set[str] = set()
        self.fail_issue_lookups: set[str] = set()
        self.fail_link_issue_ids: set[UUID] = set()
        self.unavailable = False

    def add_project(
        self,
        owner: str = "octo",
        repo: str = "widgets",
        project_code: str = "PROJ",
        webhook_secret: str | None = None,
    ) -> TrackedProject:
        project = TrackedProject(
            id=uuid4(),
            github_owner=owner,
            github_repo=repo,
            project_code=project_code,
            webhook_secret=webhook_secret,
        )
        self.projects.append(project)
        return project

    def add_issue(self, display_id: str, project: TrackedProject | None = None) -> Issue:
        """Add an issue to `project`, by default the most recently added project."""
        owner = project or self.projects[-1]
        issue = Issue(id=uuid4(), project_id=owner.id, display_id=display_id)
        self.issues.append(issue)
        return issue

    def _call(self, name: str) -> None:
        self.calls.append(name)
        if self.unavailable:
            raise StoreUnavailableError("Tracker database unavailable: connection refused")

    @property
    def writes(self) -> list[str]:
        return [
            call
            for call in self.calls
            if call in ("upsert_commit", "link_commit_to_issue", "append_activity")
        ]

    async def get_project_by_repo(self, owner: str, repo: str) -> TrackedProject | None:
        self._call("get_project_by_repo")
        matches = [p for p in self.projects if p.github_owner == owner and p.github_repo == repo]
        return matches[0] if len(matches) == 1 else None

    async def upsert_commit(self, commit: NewCommitRecord) -> CommitRecord:
        self._call("upsert_commit")
        if commit.sha in self.fail_commit_shas:
            raise RuntimeError(f"insert failed for {commit.sha}")

        key = (commit.project_id, commit.sha)
        if key not in self.commits:
            self.commits[key] = CommitRecord(id=uuid4(), **vars(commit))
        return self.commits[key]

    async def get_issue_by_display_id(self, project_id: UUID, display_id: str) -> Issue | None:
        self._call("get_issue_by_display_id")
        if display_id in self.fail_issue_lookups:
            raise RuntimeError(f"lookup failed for {display_id}")
        matches = [
            i for i in self.issues if i.project_id == project_id and i.display_id == display_id
        ]
        return matches[0] if len(matches) == 1 else None

    async def link_commit_to_issue(self, commit_id: UUID, issue_id: UUID) -> bool:
        self._call("link_commit_to_issue")
        if issue_id in self.fail_link_issue_ids:
            raise RuntimeError("link failed")
        key = (commit_id, issue_id)
        if key in self.links:
            return False
        self.links.add(key)
        return True

    async def append_activity(self, issue_id: UUID, action: str, metadata: dict[str, Any]) -> None:
        self._call("append_activity")
        self.activity.append((issue_id, action, metadata))

    async def health_check(self) -> None:
        self._call("health_check")

    def links_for(self, issue: Issue) -> set[UUID]:
        return {commit_id for commit_id, issue_id in self.links if issue_id == issue.id}


@pytest.fixture
def store() -> InMemoryTrackerStore:
    return InMemoryTrackerStore()


def build_commit_payload(
    sha: str,
    message: str = "Update README",
    added: list[str] | None = None,
    removed: list[str] | None = None,
    modified: list[str] | None = None,
    username: str | None = "octocat",
) -> dict[str, Any]:
    author: dict[str, Any] = {"name": "Octo Cat", "email": "octocat@example.com"}
    if username is not None:
        author["username"] = username
    return {
        "id": sha,
        "message": message,
        "timestamp": "2026-01-15T10:30:00+01:00",
        "url": f"https://github.com/octo/widgets/commit/{sha}",
        "author": author,
        "added": added or [],
        "removed": removed or [],
        "modified": modified or [],
    }


def build_push_payload(
    commits: list[dict[str, Any]] | None = None,
    full_name: str = "octo/widgets",
    ref: str = "refs/heads/main",
) -> dict[str, Any]:
    return {
        "ref": ref,
        "repository": {
            "id": 1296269,
            "full_name": full_name,
            "html_url": f"https://github.com/{full_name}",
        },
        "sender": {"id": 583231, "type": "User", "login": "octocat"},
        "commits": commits if commits is not None else [],
    }


@pytest.fixture
def make_commit():
    return build_commit_payload


@pytest.fixture
def make_push_body():
    """Build a serialized push payload; the exact bytes are what gets signed."""

    def _make(**kwargs: Any) -> bytes:
        return json.dumps(build_push_payload(**kwargs)).encode("utf-8")

    return _make
