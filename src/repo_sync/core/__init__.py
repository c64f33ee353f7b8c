"""Core domain models and exceptions for repo-sync."""

from repo_sync.core.exceptions import (
    CancelledError,
    ConfigError,
    LocalPathNotADirectoryError,
    LocalPathNotFoundError,
    ProcessError,
    ProtocolError,
    RepoSyncError,
)
from repo_sync.core.models import (
    CodeHost,
    GitRepository,
    LocalRepository,
    Repository,
    RepositoryBase,
)

__all__ = [
    # Models
    "CodeHost",
    "GitRepository",
    "LocalRepository",
    "Repository",
    "RepositoryBase",
    # Exceptions
    "RepoSyncError",
    "ConfigError",
    "LocalPathNotFoundError",
    "LocalPathNotADirectoryError",
    "ProtocolError",
    "ProcessError",
    "CancelledError",
]
