"""Tree mirror: full sync, background refresh, partial subtree sync."""

import asyncio
import time
from collections.abc import Callable
from typing import Any

from loguru import logger

from workflowy_mirror.config import CACHE_TTL_SECONDS, PROGRESS_EVERY, SYNC_TIMEOUT_SECONDS
from workflowy_mirror.core.search.searcher import make_matcher, search_tree
from workflowy_mirror.core.tree.navigation import (
    count_nodes,
    find_node,
    find_parent,
    find_with_path,
    insert_sorted,
    sort_children,
)
from workflowy_mirror.errors import SyncError, SyncTimeoutError
from workflowy_mirror.models.node import (
    ROOT_ID,
    CacheRecord,
    Node,
    PathSegment,
    SearchOptions,
    SearchResult,
    TreeView,
)
from workflowy_mirror.protocols import CacheStoreProtocol, RemoteStoreProtocol

ProgressCallback = Callable[[int], None]


def _now_ms() -> int:
    return int(time.time() * 1000)


class _Progress:
    """Running node counter shared by all branches of one fetch."""

    def __init__(self, callback: ProgressCallback | None) -> None:
        self.count = 0
        self._callback = callback

    def add(self, n: int) -> None:
        self.count += n
        if self._callback is not None and n and self.count % PROGRESS_EVERY == 0:
            self._callback(self.count)


class TreeSyncEngine:
    """Owns the in-memory mirror of the whole outline and its persisted snapshot.

    Reads are stale-while-revalidate: a mirror older than the TTL is returned
    immediately while a background job refreshes it. At most one full sync
    (foreground or background) is in flight; later triggers join it.
    """

    def __init__(
        self,
        store: RemoteStoreProtocol,
        cache: CacheStoreProtocol,
        *,
        ttl_seconds: float = CACHE_TTL_SECONDS,
        timeout_seconds: float = SYNC_TIMEOUT_SECONDS,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self._store = store
        self._cache = cache
        self.ttl_seconds = ttl_seconds
        self.timeout_seconds = timeout_seconds
        self._on_progress = on_progress

        self._root: Node | None = None
        self._synced_at = 0
        self._sync_task: asyncio.Task[list[Node]] | None = None

        # True when the last full sync failed and the previous mirror was served instead.
        self.last_sync_fell_back = False

    # --- State ---

    @property
    def synced_at(self) -> int:
        """Epoch milliseconds of the last full sync (0 if never synced)."""
        return self._synced_at

    @property
    def in_memory_tree(self) -> list[Node] | None:
        return self._root.children if self._root is not None else None

    @property
    def root(self) -> Node | None:
        return self._root

    @property
    def background_job(self) -> "asyncio.Task[list[Node]] | None":
        """The in-flight sync task, if any."""
        return self._sync_task

    @property
    def is_stale(self) -> bool:
        if self._root is None:
            self._hydrate()
        if self._root is None:
            return True
        return self._age_exceeded()

    def _age_exceeded(self) -> bool:
        return _now_ms() - self._synced_at > self.ttl_seconds * 1000

    def ensure_loaded(self) -> bool:
        """True if a mirror is resident, hydrating it from disk if needed. Never syncs."""
        return self._hydrate()

    def _hydrate(self) -> bool:
        """Load the persisted snapshot into memory if nothing is resident."""
        if self._root is not None:
            return True
        record = self._cache.load()
        if record is None:
            return False
        self._root = Node.root(record.root)
        self._synced_at = record.synced_at
        logger.debug(
            "Loaded tree cache: {} nodes, synced at {}", count_nodes(record.root), record.synced_at
        )
        return True

    def _persist(self) -> None:
        if self._root is None:
            return
        try:
            self._cache.save(CacheRecord(synced_at=self._synced_at, root=self._root.children))
        except OSError:
            logger.warning("Failed to write tree cache", exc_info=True)

    def clear_cache(self) -> None:
        """Drop the persisted snapshot and the resident mirror."""
        self._cache.clear()
        self._root = None
        self._synced_at = 0

    # --- Reads ---

    async def get_tree(self, force_refresh: bool = False) -> TreeView:
        """Return the mirror, syncing only when there is nothing to serve."""
        root = None if force_refresh or not self._hydrate() else self._root
        if root is not None:
            stale = self._age_exceeded()
            if stale:
                self._start_background_sync()
            return TreeView(
                tree=root.children,
                stale=stale,
                syncing_in_background=self._sync_task is not None,
            )

        tree = await self._sync_blocking(show_progress=True)
        return TreeView(tree=tree, stale=self.last_sync_fell_back, syncing_in_background=False)

    async def force_sync(self, show_progress: bool = False) -> list[Node]:
        """Blocking full sync."""
        return await self._sync_blocking(show_progress=show_progress)

    async def wait_for_background(self) -> None:
        """Join the in-flight sync, if any."""
        task = self._sync_task
        if task is not None:
            await asyncio.shield(task)

    def find_node_by_id(self, node_id: str) -> tuple[Node, tuple[PathSegment, ...]] | None:
        """Find a node in the mirror.

        Returns the node and its ancestors below the root (the root sentinel
        itself is not included), or None.
        """
        if self._root is None:
            return None
        if node_id == ROOT_ID:
            return self._root, ()
        return find_with_path(self._root.children, node_id)

    def search(
        self,
        query: str,
        options: SearchOptions | None = None,
        start_node_id: str = ROOT_ID,
    ) -> list[SearchResult]:
        """Search the resident mirror. Never syncs; an empty mirror gives no results.

        Raises:
            InvalidQueryError: A regex query does not compile, even when
                there is nothing to search.
        """
        options = options or SearchOptions()
        make_matcher(query, is_regex=options.is_regex)

        root = self._root if self._hydrate() else None
        if root is None:
            return []

        start = root if start_node_id == ROOT_ID else find_node(root.children, start_node_id)
        if start is None:
            logger.debug("Search start node {} not in mirror", start_node_id)
            return []
        nodes = start.children if start.is_root else [start]
        return search_tree(nodes, query, options)

    # --- Full sync ---

    def _start_background_sync(self) -> None:
        if self._sync_task is not None:
            return
        logger.debug("Tree cache is stale, refreshing in background")
        self._sync_task = asyncio.create_task(self._run_full_sync(show_progress=False, background=True))

    async def _sync_blocking(self, *, show_progress: bool) -> list[Node]:
        if self._sync_task is None:
            self._sync_task = asyncio.create_task(
                self._run_full_sync(show_progress=show_progress, background=False)
            )
        return await asyncio.shield(self._sync_task)

    async def _run_full_sync(self, *, show_progress: bool, background: bool) -> list[Node]:
        try:
            return await self._full_sync(show_progress=show_progress, background=background)
        except Exception:
            if not background:
                raise
            logger.warning("Background sync failed, keeping cached tree", exc_info=True)
            return self._root.children if self._root is not None else []
        finally:
            self._sync_task = None

    async def _full_sync(self, *, show_progress: bool, background: bool) -> list[Node]:
        start = time.monotonic()
        progress = _Progress(self._progress_callback(show_progress and not background))

        try:
            tree = await asyncio.wait_for(
                self._fetch_tree(ROOT_ID, progress), timeout=self.timeout_seconds
            )
        except TimeoutError as e:
            return self._fall_back(
                SyncTimeoutError(f"Sync timed out after {self.timeout_seconds:g} seconds"), e
            )
        except Exception as e:
            if background:
                raise
            return self._fall_back(SyncError(f"Sync failed: {e}"), e, fatal=True)

        # The replacement tree was built off to the side; swap it in whole.
        self._root = Node.root(tree)
        self._synced_at = _now_ms()
        self.last_sync_fell_back = False
        self._persist()

        elapsed_ms = int((time.monotonic() - start) * 1000)
        log = logger.info if show_progress and not background else logger.debug
        log("Synced {} nodes in {}ms", progress.count, elapsed_ms)
        return tree

    def _fall_back(self, error: SyncError, cause: Exception, *, fatal: bool = False) -> list[Node]:
        logger.error("{}", error)
        if self._root is None or fatal:
            raise error from cause
        logger.warning("Using stale cache.")
        self.last_sync_fell_back = True
        return self._root.children

    def _progress_callback(self, show_progress: bool) -> ProgressCallback | None:
        if not show_progress:
            return None
        if self._on_progress is not None:
            return self._on_progress
        return lambda count: logger.info("Syncing... {} nodes", count)

    async def _fetch_tree(self, parent_id: str, progress: _Progress) -> list[Node]:
        """Fetch a node's descendants, one request per node, siblings concurrently."""
        children = sort_children(await self._store.list_children(parent_id))
        progress.add(len(children))
        if children:
            subtrees = await asyncio.gather(*(self._fetch_tree(c.id, progress) for c in children))
            for child, subtree in zip(children, subtrees, strict=True):
                child.children = subtree
        return children

    # --- Partial sync ---

    async def sync_subtree(
        self,
        node_id: str,
        path_context: list[PathSegment] | None = None,
        *,
        show_progress: bool = False,
    ) -> list[Node]:
        """Fetch one node's descendants and graft them into the mirror.

        The node is located by id; failing that, ``path_context`` (an absolute
        breadcrumb trail starting at the root and ending at the node) is walked
        by id, creating placeholder nodes for missing ancestors. Without either,
        this falls back to a full sync. ``synced_at`` is never changed here.
        """
        # Only an absolute trail, starting at the root, can be grafted.
        rooted = path_context if path_context and path_context[0].id == ROOT_ID else None
        if not self._hydrate() and rooted is None:
            return await self._sync_blocking(show_progress=show_progress)

        start = time.monotonic()
        progress = _Progress(self._progress_callback(show_progress))
        try:
            subtree = await self._fetch_tree(node_id, progress)
        except Exception as e:
            logger.error("Partial sync failed: {}", e)
            msg = f"Partial sync of {node_id!r} failed: {e}"
            raise SyncError(msg) from e

        base = self._root if self._root is not None else Node.root()
        target = base if node_id == ROOT_ID else find_node(base.children, node_id)
        if target is None and rooted is not None:
            target = _graft_skeleton(base, node_id, rooted)
        if target is None:
            logger.warning("Node {} not found in cache for grafting, falling back to full sync", node_id)
            return await self._sync_blocking(show_progress=show_progress)

        target.children = subtree
        self._root = base
        self._persist()

        elapsed_ms = max(1, int((time.monotonic() - start) * 1000))
        log = logger.info if show_progress else logger.debug
        log("Partially synced {} nodes in {}ms", progress.count, elapsed_ms)
        return subtree

    # --- Mirror patches after mutations ---

    def add_node_to_cache(self, parent_id: str, node: Node) -> bool:
        """Insert a freshly created node. Returns False if the parent is not mirrored."""
        found = self.find_node_by_id(parent_id)
        if found is None:
            return False
        parent = found[0]
        parent.children = insert_sorted(parent.children, node)
        self._persist()
        return True

    def remove_node_from_cache(self, node_id: str) -> Node | None:
        """Detach a node from the mirror and return it."""
        if self._root is None:
            return None
        found = find_parent(self._root, node_id)
        if found is None:
            return None
        parent, index = found
        node = parent.children[index]
        parent.children = [*parent.children[:index], *parent.children[index + 1 :]]
        self._persist()
        return node

    def update_node_in_cache(self, node_id: str, **fields: Any) -> bool:
        """Apply ``name``, ``note`` and/or ``completed_at`` to a mirrored node."""
        found = self.find_node_by_id(node_id)
        if found is None or found[0].is_root:
            return False
        node = found[0]
        for key in ("name", "note", "completed_at"):
            if key in fields:
                setattr(node, key, fields[key])
        self._persist()
        return True

    def move_node_in_cache(self, node_id: str, parent_id: str, priority: int) -> bool:
        """Re-parent a mirrored node at 0-based position ``priority``.

        The new parent's children are renumbered, as the remote store does.
        If the new parent is not mirrored the node is dropped.
        """
        node = self.remove_node_from_cache(node_id)
        if node is None:
            return False
        found = self.find_node_by_id(parent_id)
        if found is None:
            return False
        parent = found[0]
        index = max(0, min(priority, len(parent.children)))
        parent.children = [*parent.children[:index], node, *parent.children[index:]]
        for i, child in enumerate(parent.children):
            child.order = i
        self._persist()
        return True


def _graft_skeleton(root: Node, node_id: str, path_context: list[PathSegment]) -> Node | None:
    """Walk ``path_context`` below the root, creating placeholders for missing nodes.

    Matching is by id only; names in the context are used for placeholders.
    Returns the target node, or None if ``node_id`` is not in the context.
    """
    if node_id not in {s.id for s in path_context[1:]}:
        return None

    current = root
    for segment in path_context[1:]:
        node = next((c for c in current.children if c.id == segment.id), None)
        if node is None:
            last_order = current.children[-1].order if current.children else -1
            node = Node(id=segment.id, name=segment.name, order=last_order + 1)
            current.children = insert_sorted(current.children, node)
            logger.debug("Created placeholder for {} ({!r})", segment.id, segment.name)
        if segment.id == node_id:
            return node
        current = node
    return None
