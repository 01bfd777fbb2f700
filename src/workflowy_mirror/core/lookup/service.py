"""Two-tier node lookup with mutation passthroughs."""

import time
from typing import Any

from loguru import logger

from workflowy_mirror.core.search.searcher import make_matcher
from workflowy_mirror.core.sync.engine import TreeSyncEngine
from workflowy_mirror.core.tree.navigation import find_node, sort_children
from workflowy_mirror.models.node import (
    ROOT_ID,
    ROOT_SEGMENT,
    Node,
    PathSegment,
    SearchOptions,
    SearchResult,
    TreeView,
)
from workflowy_mirror.protocols import RemoteStoreProtocol


class NodeService:
    """Children lookup over a per-parent cache, the full mirror, then the network.

    Mutations call the remote store first. Only when that succeeds are the
    per-parent cache invalidated and the mirror patched, so reads reflect the
    change before the next sync.
    """

    def __init__(self, store: RemoteStoreProtocol, engine: TreeSyncEngine) -> None:
        self._store = store
        self.engine = engine
        self._children_cache: dict[str, list[Node]] = {}
        # Mirror generation the per-parent cache was filled against.
        self._cache_synced_at = engine.synced_at

    # --- Reads ---

    def get_cached_children(self, node_id: str) -> list[Node] | None:
        """Peek at the per-parent cache without any I/O."""
        return self._children_cache.get(node_id)

    async def get_children(self, node_id: str, force_refresh: bool = False) -> list[Node]:
        if self.engine.synced_at != self._cache_synced_at:
            # A full sync replaced the mirror since these entries were cached.
            self._children_cache.clear()
            self._cache_synced_at = self.engine.synced_at

        if not force_refresh:
            cached = self._children_cache.get(node_id)
            if cached is not None:
                return cached

            if self.engine.ensure_loaded():
                # Serves the mirror as is; a stale one is refreshed in the background.
                tree = (await self.engine.get_tree()).tree
                if node_id == ROOT_ID:
                    self._children_cache[node_id] = tree
                    return tree
                node = find_node(tree, node_id)
                if node is not None:
                    self._children_cache[node_id] = node.children
                    return node.children

        try:
            children = sort_children(await self._store.list_children(node_id))
        except Exception:
            logger.error("Failed to fetch children of {}", node_id)
            raise
        self._children_cache[node_id] = children
        return children

    def get_node(self, node_id: str) -> Node | None:
        """Look up a node in the mirror only. Never hits the network."""
        found = self.engine.find_node_by_id(node_id)
        return found[0] if found else None

    def get_path_from_node(self, node_id: str) -> list[PathSegment] | None:
        """Canonical path of a mirrored node: root segment, ancestors, the node."""
        found = self.engine.find_node_by_id(node_id)
        if found is None:
            return None
        node, ancestors = found
        if node.is_root:
            return [ROOT_SEGMENT]
        return [ROOT_SEGMENT, *ancestors, node.segment()]

    # --- Mutations ---

    async def create_node(self, parent_id: str, name: str, note: str | None = None) -> Node:
        node = await self._store.create_node(parent_id, name, note)
        self._children_cache.pop(parent_id, None)
        self.engine.add_node_to_cache(parent_id, node)
        return node

    async def delete_node(self, node_id: str) -> None:
        await self._store.delete_node(node_id)
        # The parent is not known here, so every cached children list is suspect.
        self._children_cache.clear()
        self.engine.remove_node_from_cache(node_id)

    async def update_node(self, node_id: str, **fields: Any) -> Node:
        node = await self._store.update_node(node_id, **fields)
        self._children_cache.clear()
        self.engine.update_node_in_cache(node_id, **fields)
        return node

    async def complete_node(self, node_id: str, *, completed_at: int | None = None) -> None:
        await self._store.complete_node(node_id)
        self._children_cache.clear()
        self.engine.update_node_in_cache(node_id, completed_at=completed_at or int(time.time() * 1000))

    async def uncomplete_node(self, node_id: str) -> None:
        await self._store.uncomplete_node(node_id)
        self._children_cache.clear()
        self.engine.update_node_in_cache(node_id, completed_at=None)

    async def move_node(self, node_id: str, parent_id: str, priority: int) -> Node:
        node = await self._store.move_node(node_id, parent_id, priority)
        self._children_cache.clear()
        self.engine.move_node_in_cache(node_id, parent_id, priority)
        return node

    # --- Sync passthrough ---

    async def get_tree(self, force_refresh: bool = False) -> TreeView:
        return await self.engine.get_tree(force_refresh)

    async def force_sync(self, show_progress: bool = False) -> list[Node]:
        self._children_cache.clear()
        return await self.engine.force_sync(show_progress)

    async def sync_subtree(
        self, node_id: str, path_context: list[PathSegment] | None = None
    ) -> list[Node]:
        self._children_cache.pop(node_id, None)
        return await self.engine.sync_subtree(node_id, path_context, show_progress=True)

    def is_stale(self) -> bool:
        return self.engine.is_stale

    async def search(
        self,
        query: str,
        options: SearchOptions | None = None,
        start_node_id: str = ROOT_ID,
    ) -> list[SearchResult]:
        """Search after making sure a mirror exists (stale data is fine).

        A malformed regex is rejected before any sync is started.
        """
        make_matcher(query, is_regex=options.is_regex if options else False)
        await self.engine.get_tree()
        return self.engine.search(query, options, start_node_id)
