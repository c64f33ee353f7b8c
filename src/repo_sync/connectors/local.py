"""Local filesystem connector."""

from pathlib import Path

import structlog

from repo_sync.config.sources import LocalConfig
from repo_sync.core.exceptions import LocalPathNotADirectoryError, LocalPathNotFoundError
from repo_sync.core.models.repository import LocalRepository

logger = structlog.get_logger(__name__)


def resolve_path(path: str, base_dir: str | Path) -> Path:
    """Resolve ``path`` against ``base_dir`` unless it is already absolute."""
    return (Path(base_dir) / Path(path).expanduser()).resolve()


def get_local_repo_from_config(config: LocalConfig, base_dir: str | Path) -> LocalRepository:
    """Validate a configured local path and build its canonical record.

    Raises:
        LocalPathNotFoundError: The resolved path does not exist.
        LocalPathNotADirectoryError: The resolved path is not a directory.
    """
    repo_path = resolve_path(config.path, base_dir)
    details = {"path": str(repo_path), "base_dir": str(base_dir)}

    if not repo_path.exists():
        raise LocalPathNotFoundError(
            f"The local repository path '{repo_path}' referenced in {base_dir} does not exist",
            details=details,
        )
    if not repo_path.is_dir():
        raise LocalPathNotADirectoryError(
            f"The local repository path '{repo_path}' referenced in {base_dir} is not a directory",
            details=details,
        )

    logger.debug("Resolved local repository", path=str(repo_path))
    return LocalRepository(
        id=str(repo_path),
        name=repo_path.name,
        path=str(repo_path),
        excluded_paths=list(config.exclude.paths),
        watch=config.watch,
    )
