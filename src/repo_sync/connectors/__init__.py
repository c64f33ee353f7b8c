"""Code host connectors producing canonical repository records."""

from repo_sync.connectors.base import CodeHostConnector, Scope
from repo_sync.connectors.factory import ConnectorFactory
from repo_sync.connectors.local import get_local_repo_from_config

__all__ = [
    "CodeHostConnector",
    "ConnectorFactory",
    "Scope",
    "get_local_repo_from_config",
]
