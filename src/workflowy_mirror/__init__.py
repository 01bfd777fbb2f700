"""Local mirror of a Workflowy outline with cached navigation and search."""

from workflowy_mirror.core.lookup.service import NodeService
from workflowy_mirror.core.path.resolver import PathResolver
from workflowy_mirror.core.sync.engine import TreeSyncEngine
from workflowy_mirror.protocols import CacheStoreProtocol, RemoteStoreProtocol

__all__ = [
    "CacheStoreProtocol",
    "NodeService",
    "PathResolver",
    "RemoteStoreProtocol",
    "TreeSyncEngine",
]
