"""Mirroring and indexing of repositories through external processes."""

from repo_sync.sync.cancellation import CancellationToken
from repo_sync.sync.git import clone_repository, fetch_repository, mirror_repository
from repo_sync.sync.indexer import (
    ALWAYS_EXCLUDED_DIRS,
    build_git_index_args,
    build_local_index_args,
    index_git_repository,
    index_local_repository,
)
from repo_sync.sync.process import ProcessResult, run_process

__all__ = [
    "ALWAYS_EXCLUDED_DIRS",
    "CancellationToken",
    "ProcessResult",
    "build_git_index_args",
    "build_local_index_args",
    "clone_repository",
    "fetch_repository",
    "index_git_repository",
    "index_local_repository",
    "mirror_repository",
    "run_process",
]
