"""Bare clone mirroring of remote repositories using the git CLI."""

import shutil
from pathlib import Path

import structlog

from repo_sync.core.models.repository import GitRepository
from repo_sync.sync.cancellation import CancellationToken
from repo_sync.sync.process import ProcessResult, run_process

logger = structlog.get_logger(__name__)

FETCH_ALL_BRANCHES_REFSPEC = "+refs/heads/*:refs/heads/*"


async def clone_repository(
    repo: GitRepository,
    git_binary: str = "git",
    token: CancellationToken | None = None,
) -> ProcessResult | None:
    """Bare-clone ``repo`` into ``repo.path`` unless that path already exists.

    ``git_config_metadata`` is written into the clone's config at clone
    time, followed by a fetch refspec so later fetches mirror every branch.
    A failed or cancelled clone leaves no partial directory behind.
    """
    clone_path = Path(repo.path)
    if clone_path.exists():
        logger.debug("Clone already exists, skipping", repo=repo.id, path=repo.path)
        return None

    config_args: list[str] = []
    for key, value in repo.git_config_metadata.items():
        config_args += ["--config", f"{key}={value}"]

    clone_path.parent.mkdir(parents=True, exist_ok=True)
    logger.info("Cloning repository", repo=repo.id, path=repo.path)
    try:
        result = await run_process(
            [git_binary, "clone", "--bare", *config_args, repo.clone_url, repo.path],
            token=token,
        )
        await run_process(
            [git_binary, "config", "remote.origin.fetch", FETCH_ALL_BRANCHES_REFSPEC],
            cwd=repo.path,
            token=token,
        )
    except BaseException:
        shutil.rmtree(clone_path, ignore_errors=True)
        raise
    return result


async def fetch_repository(
    repo: GitRepository,
    git_binary: str = "git",
    token: CancellationToken | None = None,
) -> ProcessResult:
    """Fetch ``origin`` into an existing clone, pruning deleted refs."""
    logger.info("Fetching repository", repo=repo.id, path=repo.path)
    return await run_process(
        [git_binary, "fetch", "origin", "--prune", "--progress"],
        cwd=repo.path,
        token=token,
    )


async def mirror_repository(
    repo: GitRepository,
    git_binary: str = "git",
    token: CancellationToken | None = None,
) -> ProcessResult:
    """Clone ``repo`` on first sight, fetch it otherwise."""
    result = await clone_repository(repo, git_binary=git_binary, token=token)
    if result is None:
        return await fetch_repository(repo, git_binary=git_binary, token=token)
    return result
