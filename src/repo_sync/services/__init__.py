"""Business logic services for repo-sync."""

from repo_sync.services.sync import SyncService

__all__ = ["SyncService"]
