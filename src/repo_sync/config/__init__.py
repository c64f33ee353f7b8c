"""Configuration for repo-sync."""

from repo_sync.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
