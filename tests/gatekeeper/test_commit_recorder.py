"""Tests for commit row derivation and recording."""

from datetime import UTC, datetime

import pytest

from connectors.github import GitHubCommitAuthor, GitHubPushCommit
from src.ingest.gatekeeper.services.commit_recorder import build_commit_record, record_commit


def make_commit(sha: str = "a" * 40, **kwargs) -> GitHubPushCommit:
    defaults = {
        "id": sha,
        "message": "Fixes PROJ-1",
        "timestamp": datetime(2026, 1, 15, 9, 30, tzinfo=UTC),
        "url": f"https://github.com/octo/widgets/commit/{sha}",
        "author": GitHubCommitAuthor(name="Octo Cat", username="octocat"),
    }
    defaults.update(kwargs)
    return GitHubPushCommit(**defaults)


class TestBuildCommitRecord:
    def test_file_counts_are_plain_list_lengths(self, store):
        project = store.add_project()
        commit = make_commit(added=["a", "b"], removed=["c"], modified=["a", "d"])

        record = build_commit_record(project, "main", commit)

        # "a" is both added and modified and is counted twice
        assert record.files_changed == 5
        assert record.additions == 2
        assert record.deletions == 1

    def test_empty_lists_count_zero(self, store):
        project = store.add_project()

        record = build_commit_record(project, "main", make_commit())

        assert (record.files_changed, record.additions, record.deletions) == (0, 0, 0)

    def test_fields_are_copied(self, store):
        project = store.add_project()
        commit = make_commit()

        record = build_commit_record(project, "release/1.2", commit)

        assert record.project_id == project.id
        assert record.sha == commit.id
        assert record.message == "Fixes PROJ-1"
        assert record.author_name == "Octo Cat"
        assert record.github_username == "octocat"
        assert record.branch == "release/1.2"
        assert record.url == commit.url
        assert record.committed_at == commit.timestamp


class TestRecordCommit:
    @pytest.mark.asyncio
    async def test_recording_twice_returns_same_row(self, store):
        project = store.add_project()
        commit = make_commit()

        first = await record_commit(store, project, "main", commit)
        second = await record_commit(store, project, "main", commit)

        assert first.id == second.id
        assert len(store.commits) == 1

    @pytest.mark.asyncio
    async def test_same_sha_in_different_projects_is_distinct(self, store):
        first_project = store.add_project(repo="widgets")
        second_project = store.add_project(repo="widgets-fork")
        commit = make_commit()

        first = await record_commit(store, first_project, "main", commit)
        second = await record_commit(store, second_project, "main", commit)

        assert first.id != second.id
        assert len(store.commits) == 2
