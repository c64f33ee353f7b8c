"""Domain models for repo-sync."""

from repo_sync.core.models.repository import (
    CodeHost,
    GitRepository,
    LocalRepository,
    Repository,
    RepositoryBase,
)

__all__ = [
    "CodeHost",
    "GitRepository",
    "LocalRepository",
    "Repository",
    "RepositoryBase",
]
