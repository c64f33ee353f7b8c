"""repo-sync: discover, mirror and index source repositories."""

from repo_sync.version import __version__

__all__ = ["__version__"]
