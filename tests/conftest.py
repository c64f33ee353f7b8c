"""Pytest configuration and fixtures."""

from pathlib import Path

import pytest

from factories import GitRepositoryFactory, LocalRepositoryFactory
from repo_sync.config.settings import Settings
from repo_sync.core.models.repository import GitRepository, LocalRepository


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings rooted in a temporary data directory with telemetry off."""
    return Settings(
        _env_file=None,
        data_dir=str(tmp_path / "data"),
        telemetry_disabled=True,
        reindex_interval=3600,
    )


@pytest.fixture
def git_repository(settings: Settings) -> GitRepository:
    """A remote repository whose clone path lives under the test data dir."""
    return GitRepositoryFactory(
        name="acme/widgets",
        id="github.com/acme/widgets",
        path=str(Path(settings.repos_dir) / "github.com/acme/widgets.git"),
    )


@pytest.fixture
def local_repository(tmp_path: Path) -> LocalRepository:
    """A local repository backed by a real directory."""
    path = tmp_path / "workspace" / "notes"
    path.mkdir(parents=True)
    return LocalRepositoryFactory(path=str(path))
