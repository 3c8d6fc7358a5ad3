"""Map a pushed repository to the tracker project linked to it."""

from dataclasses import dataclass

from src.database.tracker_store import TrackedProject, TrackerStore
from src.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Resolved:
    project: TrackedProject


@dataclass(frozen=True)
class NotTracked:
    """No tracker project is linked to the repository. Expected for most pushes."""

    repo_full_name: str


ProjectResolution = Resolved | NotTracked


def split_repo_full_name(full_name: str) -> tuple[str, str] | None:
    """Split "owner/repo" on the first slash. Returns None if either part is empty."""
    owner, sep, repo = full_name.partition("/")
    if not sep or not owner or not repo:
        return None
    return owner, repo


async def resolve_project(store: TrackerStore, repo_full_name: str) -> ProjectResolution:
    parts = split_repo_full_name(repo_full_name)
    if parts is None:
        logger.info("Repository name is not in owner/repo form", repository=repo_full_name)
        return NotTracked(repo_full_name)

    owner, repo = parts
    project = await store.get_project_by_repo(owner, repo)
    if project is None:
        logger.info(f"No project matches repo: {repo_full_name}")
        return NotTracked(repo_full_name)

    return Resolved(project)
