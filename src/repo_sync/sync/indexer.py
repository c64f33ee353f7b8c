"""Invocation of the external zoekt indexers."""

from pathlib import Path

import structlog

from repo_sync.config.settings import Settings
from repo_sync.core.models.repository import GitRepository, LocalRepository
from repo_sync.sync.cancellation import CancellationToken
from repo_sync.sync.process import ProcessResult, run_process

logger = structlog.get_logger(__name__)

# Never indexed in local repositories: VCS metadata, dependencies, build output.
ALWAYS_EXCLUDED_DIRS: tuple[str, ...] = (
    ".git",
    ".hg",
    ".svn",
    "node_modules",
    "bower_components",
    ".venv",
    "__pycache__",
    "dist",
    "build",
    "out",
    "target",
)


def build_git_index_args(repo: GitRepository, settings: Settings) -> list[str]:
    """Arguments for indexing a bare clone; ``HEAD`` always comes first."""
    revisions = ",".join(["HEAD", *repo.branches, *repo.tags])
    return [
        settings.zoekt_git_index_binary,
        "-allow_missing_branches",
        "-index",
        settings.index_dir,
        "-file_limit",
        str(settings.max_file_size),
        "-branches",
        revisions,
        repo.path,
    ]


def build_local_index_args(repo: LocalRepository, settings: Settings) -> list[str]:
    """Arguments for indexing a working directory on disk."""
    ignore_dirs = ",".join([*ALWAYS_EXCLUDED_DIRS, *repo.excluded_paths])
    return [
        settings.zoekt_index_binary,
        "-index",
        settings.index_dir,
        "-file_limit",
        str(settings.max_file_size),
        "-ignore_dirs",
        ignore_dirs,
        repo.path,
    ]


async def index_git_repository(
    repo: GitRepository,
    settings: Settings,
    token: CancellationToken | None = None,
) -> ProcessResult:
    Path(settings.index_dir).mkdir(parents=True, exist_ok=True)
    logger.info("Indexing repository", repo=repo.id, branches=len(repo.branches), tags=len(repo.tags))
    return await run_process(build_git_index_args(repo, settings), token=token)


async def index_local_repository(
    repo: LocalRepository,
    settings: Settings,
    token: CancellationToken | None = None,
) -> ProcessResult:
    Path(settings.index_dir).mkdir(parents=True, exist_ok=True)
    logger.info("Indexing local repository", path=repo.path)
    return await run_process(build_local_index_args(repo, settings), token=token)
