"""Repository source configuration.

Sources are declared in a JSON document of the form ``{"repos": [...]}``,
each entry discriminated by its ``type``.
"""

import json
import os
from pathlib import Path
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, ValidationError

from repo_sync.core.exceptions import ConfigError


class EnvToken(BaseModel):
    """A token read from an environment variable at connector construction."""

    env: str


Token = Union[str, EnvToken]


class RevisionsConfig(BaseModel):
    """Glob patterns selecting which branches and tags get indexed."""

    branches: list[str] = Field(default_factory=list, description="Branch name patterns")
    tags: list[str] = Field(default_factory=list, description="Tag name patterns")

    class Config:
        frozen = True


class ExcludeConfig(BaseModel):
    """Predicate and name exclusions for hosted repositories."""

    forks: bool = Field(default=False, description="Drop forked repositories")
    archived: bool = Field(default=False, description="Drop archived repositories")
    repos: list[str] = Field(default_factory=list, description="Repository name patterns")

    class Config:
        frozen = True


class GitHubConfig(BaseModel):
    type: Literal["github"] = "github"
    url: str = Field(default="https://github.com", description="GitHub or GitHub Enterprise URL")
    token: Token | None = None
    orgs: list[str] = Field(default_factory=list)
    users: list[str] = Field(default_factory=list)
    repos: list[str] = Field(default_factory=list, description="owner/name identifiers")
    exclude: ExcludeConfig = Field(default_factory=ExcludeConfig)
    revisions: RevisionsConfig | None = None


class GitLabExcludeConfig(BaseModel):
    forks: bool = False
    archived: bool = False
    projects: list[str] = Field(default_factory=list, description="Project name patterns")

    class Config:
        frozen = True


class GitLabConfig(BaseModel):
    type: Literal["gitlab"] = "gitlab"
    url: str = Field(default="https://gitlab.com")
    token: Token | None = None
    all: bool = Field(default=False, description="Index every visible project (self-hosted only)")
    groups: list[str] = Field(default_factory=list)
    users: list[str] = Field(default_factory=list)
    projects: list[str] = Field(default_factory=list, description="namespace/path identifiers")
    exclude: GitLabExcludeConfig = Field(default_factory=GitLabExcludeConfig)
    revisions: RevisionsConfig | None = None


class GiteaConfig(BaseModel):
    type: Literal["gitea"] = "gitea"
    url: str = Field(default="https://gitea.com")
    token: Token | None = None
    orgs: list[str] = Field(default_factory=list)
    users: list[str] = Field(default_factory=list)
    repos: list[str] = Field(default_factory=list, description="owner/name identifiers")
    exclude: ExcludeConfig = Field(default_factory=ExcludeConfig)
    revisions: RevisionsConfig | None = None


class GerritExcludeConfig(BaseModel):
    projects: list[str] = Field(default_factory=list)

    class Config:
        frozen = True


class GerritConfig(BaseModel):
    type: Literal["gerrit"] = "gerrit"
    url: str
    projects: list[str] = Field(default_factory=list, description="Include patterns; empty means all")
    exclude: GerritExcludeConfig = Field(default_factory=GerritExcludeConfig)
    revisions: RevisionsConfig | None = None


class LocalExcludeConfig(BaseModel):
    paths: list[str] = Field(default_factory=list)

    class Config:
        frozen = True


class LocalConfig(BaseModel):
    type: Literal["local"] = "local"
    path: str
    watch: bool = True
    exclude: LocalExcludeConfig = Field(default_factory=LocalExcludeConfig)


SourceConfig = Annotated[
    Union[GitHubConfig, GitLabConfig, GiteaConfig, GerritConfig, LocalConfig],
    Field(discriminator="type"),
]


class SourcesConfig(BaseModel):
    """Top-level configuration document."""

    repos: list[SourceConfig] = Field(default_factory=list)


def resolve_token(token: Token | None) -> str | None:
    """Return the literal token, reading it from the environment if needed."""
    if token is None or isinstance(token, str):
        return token
    value = os.environ.get(token.env)
    if not value:
        raise ConfigError(
            f"Environment variable '{token.env}' referenced by a token is not set",
            details={"env": token.env},
        )
    return value


def load_sources_config(path: str | Path) -> SourcesConfig:
    """Load and validate the sources config file at ``path``."""
    config_path = Path(path).expanduser()
    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(
            f"Unable to read config file {config_path}: {exc}",
            details={"path": str(config_path)},
        ) from exc

    try:
        return SourcesConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(
            f"Invalid config file {config_path}: {exc.error_count()} validation error(s)",
            details={"path": str(config_path), "errors": exc.errors()},
        ) from exc
