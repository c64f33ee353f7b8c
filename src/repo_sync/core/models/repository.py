"""Canonical repository models."""

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class CodeHost(str, Enum):
    """Code hosting providers a remote repository can originate from."""

    GITHUB = "github"
    GITLAB = "gitlab"
    GITEA = "gitea"
    GERRIT = "gerrit"


class RepositoryBase(BaseModel):
    """Fields shared by every canonical repository."""

    id: str
    name: str
    is_stale: bool = False

    class Config:
        frozen = True


class GitRepository(RepositoryBase):
    """A repository discovered on a remote code host.

    ``path`` is the bare clone location, always ``<repos_root>/<id>.git``.
    Empty ``branches``/``tags`` mean only the default branch is indexed.
    """

    vcs: Literal["remote"] = "remote"
    code_host: CodeHost
    clone_url: str
    path: str
    is_fork: bool = False
    is_archived: bool = False
    git_config_metadata: dict[str, str] = Field(default_factory=dict)
    branches: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)


class LocalRepository(RepositoryBase):
    """A directory on the local filesystem; ``path`` doubles as ``id``."""

    vcs: Literal["local"] = "local"
    path: str
    excluded_paths: list[str] = Field(default_factory=list)
    watch: bool = True


Repository = Annotated[
    Union[GitRepository, LocalRepository],
    Field(discriminator="vcs"),
]
