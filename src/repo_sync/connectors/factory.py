"""Factory for creating code host connectors."""

import httpx

from repo_sync.config.settings import Settings
from repo_sync.config.sources import (
    GerritConfig,
    GiteaConfig,
    GitHubConfig,
    GitLabConfig,
    resolve_token,
)
from repo_sync.connectors.base import CodeHostConnector

HostConfig = GitHubConfig | GitLabConfig | GiteaConfig | GerritConfig


class ConnectorFactory:
    """Creates the connector matching a source config's ``type``."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._client = client

    def create(self, config: HostConfig) -> CodeHostConnector:
        kwargs = {
            "repos_root": self._settings.repos_dir,
            "client": self._client,
            "timeout": self._settings.http_timeout,
        }

        if config.type == "github":
            from repo_sync.connectors.github import GitHubConnector

            return GitHubConnector(config, token=resolve_token(config.token), **kwargs)
        elif config.type == "gitlab":
            from repo_sync.connectors.gitlab import GitLabConnector

            return GitLabConnector(config, token=resolve_token(config.token), **kwargs)
        elif config.type == "gitea":
            from repo_sync.connectors.gitea import GiteaConnector

            return GiteaConnector(config, token=resolve_token(config.token), **kwargs)
        elif config.type == "gerrit":
            from repo_sync.connectors.gerrit import GerritConnector

            return GerritConnector(config, **kwargs)
        else:
            raise ValueError(f"Unknown code host type: {config.type}")
