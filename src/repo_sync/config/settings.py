"""Application settings using Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="REPO_SYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # General
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Storage
    data_dir: str = "~/.repo-sync"
    config_path: str = "repo-sync.json"

    # Indexing
    max_file_size: int = 2 * 1024 * 1024  # bytes, passed as -file_limit
    reindex_interval: float = 3600  # seconds between remote resyncs
    sync_concurrency: int = 4
    zoekt_git_index_binary: str = "zoekt-git-index"
    zoekt_index_binary: str = "zoekt-index"
    git_binary: str = "git"

    # Code host HTTP
    http_timeout: float = 30.0

    # Telemetry
    telemetry_disabled: bool = False
    posthog_host: str = "https://us.i.posthog.com"
    posthog_api_key: str | None = None
    install_id: str = "unknown"

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.data_dir = str(Path(self.data_dir).expanduser())

    @property
    def repos_dir(self) -> str:
        return str(Path(self.data_dir) / "repos")

    @property
    def index_dir(self) -> str:
        return str(Path(self.data_dir) / "index")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
