"""Tests for the tree mirror and sync engine."""

import asyncio

import pytest

from tests.unit.conftest import NOW_MS, SAMPLE_NODE_COUNT, FakeClock, make_sample_tree
from tests.unit.fakes import FakeCacheStore, FakeStore
from workflowy_mirror.core.sync.engine import TreeSyncEngine
from workflowy_mirror.core.tree.navigation import find_node
from workflowy_mirror.errors import ApiError, InvalidQueryError, SyncError, SyncTimeoutError
from workflowy_mirror.models.node import ROOT_SEGMENT, CacheRecord, Node, PathSegment, SearchOptions

TEN_MINUTES_MS = 10 * 60 * 1000


def _stale_cache() -> FakeCacheStore:
    return FakeCacheStore(CacheRecord(synced_at=NOW_MS - TEN_MINUTES_MS, root=make_sample_tree()))


def _names(nodes: list[Node]) -> list[str]:
    return [n.name for n in nodes]


async def test_get_tree_with_cold_cache_blocks_on_full_sync(
    engine: TreeSyncEngine, store: FakeStore, cache: FakeCacheStore
) -> None:
    view = await engine.get_tree()

    assert _names(view.tree) == ["Projects", "Personal", "Profile"]
    assert view.stale is False
    assert view.syncing_in_background is False
    assert len(store.list_calls()) == SAMPLE_NODE_COUNT + 1
    assert cache.record is not None
    assert cache.record.synced_at == NOW_MS
    assert engine.synced_at == NOW_MS


async def test_full_sync_is_idempotent(engine: TreeSyncEngine) -> None:
    first = [n.to_dict() for n in await engine.force_sync()]
    second = [n.to_dict() for n in await engine.force_sync()]

    assert first == second


async def test_full_sync_sorts_children_by_order(cache: FakeCacheStore, clock: FakeClock) -> None:
    store = FakeStore(
        [Node(id="z", name="Last", order=9), Node(id="y", name="First", order=1)]
    )
    engine = TreeSyncEngine(store, cache)

    tree = await engine.force_sync()

    assert _names(tree) == ["First", "Last"]


async def test_concurrent_cold_reads_share_one_fetch(
    engine: TreeSyncEngine, store: FakeStore
) -> None:
    v1, v2 = await asyncio.gather(engine.get_tree(), engine.get_tree())

    assert len(store.list_calls()) == SAMPLE_NODE_COUNT + 1
    assert v1.tree is v2.tree


async def test_force_sync_advances_synced_at(engine: TreeSyncEngine, clock: FakeClock) -> None:
    await engine.force_sync()
    clock.advance(1)
    await engine.force_sync()

    assert engine.synced_at == NOW_MS + 1000


async def test_stale_mirror_is_served_and_refreshed_in_background(
    store: FakeStore, clock: FakeClock
) -> None:
    cache = _stale_cache()
    engine = TreeSyncEngine(store, cache)

    view = await engine.get_tree()

    assert view.stale is True
    assert view.syncing_in_background is True
    assert _names(view.tree) == ["Projects", "Personal", "Profile"]
    assert store.calls == []

    await engine.wait_for_background()

    assert engine.synced_at == NOW_MS
    assert engine.background_job is None
    assert cache.record is not None
    assert cache.record.synced_at == NOW_MS


async def test_stale_reads_start_only_one_background_sync(
    store: FakeStore, clock: FakeClock
) -> None:
    engine = TreeSyncEngine(store, _stale_cache())

    await engine.get_tree()
    await engine.get_tree()
    await engine.wait_for_background()

    assert len(store.list_calls()) == SAMPLE_NODE_COUNT + 1


async def test_background_sync_failure_is_swallowed(store: FakeStore, clock: FakeClock) -> None:
    engine = TreeSyncEngine(store, _stale_cache())
    store.fail_with = ApiError("boom")

    view = await engine.get_tree()
    await engine.wait_for_background()

    assert _names(view.tree) == ["Projects", "Personal", "Profile"]
    assert engine.synced_at == NOW_MS - TEN_MINUTES_MS
    assert engine.background_job is None
    assert _names(engine.in_memory_tree or []) == ["Projects", "Personal", "Profile"]


async def test_foreground_sync_failure_surfaces(engine: TreeSyncEngine, store: FakeStore) -> None:
    store.fail_with = ApiError("unauthorized")

    with pytest.raises(SyncError, match="unauthorized"):
        await engine.force_sync()
    assert engine.background_job is None


async def test_foreground_sync_failure_surfaces_even_with_mirror(
    engine: TreeSyncEngine, store: FakeStore
) -> None:
    await engine.force_sync()
    store.fail_with = ApiError("unauthorized")

    with pytest.raises(SyncError, match="unauthorized"):
        await engine.force_sync()
    assert _names(engine.in_memory_tree or []) == ["Projects", "Personal", "Profile"]
    assert not engine.last_sync_fell_back


async def test_timeout_falls_back_to_previous_mirror(
    store: FakeStore, cache: FakeCacheStore, clock: FakeClock
) -> None:
    engine = TreeSyncEngine(store, cache, timeout_seconds=0.05)
    await engine.force_sync()
    clock.advance(1)
    store.gate = asyncio.Event()

    tree = await engine.force_sync()

    assert _names(tree) == ["Projects", "Personal", "Profile"]
    assert engine.last_sync_fell_back is True
    assert engine.synced_at == NOW_MS

    view = await engine.get_tree(force_refresh=True)
    assert view.stale is True


async def test_timeout_without_mirror_is_fatal(
    store: FakeStore, cache: FakeCacheStore, clock: FakeClock
) -> None:
    engine = TreeSyncEngine(store, cache, timeout_seconds=0.05)
    store.gate = asyncio.Event()

    with pytest.raises(SyncTimeoutError):
        await engine.get_tree()
    assert engine.in_memory_tree is None


async def test_progress_is_reported_on_multiples_of_ten(clock: FakeClock) -> None:
    tree = [Node(id=f"n{i}", name=f"Node {i}", order=i) for i in range(10)]
    tree[0].children = [Node(id=f"c{i}", name=f"Child {i}", order=i) for i in range(10)]
    counts: list[int] = []
    engine = TreeSyncEngine(FakeStore(tree), FakeCacheStore(), on_progress=counts.append)

    await engine.force_sync(show_progress=True)
    await engine.force_sync(show_progress=False)

    assert counts == [10, 20]


async def test_is_stale_follows_ttl(engine: TreeSyncEngine, clock: FakeClock) -> None:
    assert engine.is_stale is True

    await engine.force_sync()
    assert engine.is_stale is False

    clock.advance(301)
    assert engine.is_stale is True


def test_is_stale_hydrates_from_disk(store: FakeStore, clock: FakeClock) -> None:
    cache = FakeCacheStore(CacheRecord(synced_at=NOW_MS - 1000, root=make_sample_tree()))
    engine = TreeSyncEngine(store, cache)

    assert engine.is_stale is False
    assert engine.in_memory_tree is not None
    assert store.calls == []


async def test_clear_cache_drops_mirror_and_record(
    engine: TreeSyncEngine, cache: FakeCacheStore
) -> None:
    await engine.force_sync()

    engine.clear_cache()

    assert engine.in_memory_tree is None
    assert cache.record is None
    assert engine.is_stale is True


# --- Partial sync ---


async def test_sync_subtree_keeps_synced_at(
    engine: TreeSyncEngine, store: FakeStore, cache: FakeCacheStore, clock: FakeClock
) -> None:
    await engine.force_sync()
    header = store.find("a2x")
    assert header is not None
    header.name = "Footer"
    store.calls.clear()
    clock.advance(60)

    subtree = await engine.sync_subtree("a2")

    assert _names(subtree) == ["Footer"]
    assert store.list_calls() == ["a2", "a2x"]
    assert engine.synced_at == NOW_MS
    assert cache.record is not None
    assert cache.record.synced_at == NOW_MS
    mirrored = find_node(engine.in_memory_tree or [], "a2x")
    assert mirrored is not None
    assert mirrored.name == "Footer"


async def test_sync_subtree_grafts_skeleton_into_empty_mirror(
    engine: TreeSyncEngine, store: FakeStore, cache: FakeCacheStore
) -> None:
    context = [ROOT_SEGMENT, PathSegment(id="a", name="Projects"), PathSegment(id="a2", name="Website")]

    subtree = await engine.sync_subtree("a2", context)

    assert [n.id for n in subtree] == ["a2x"]
    assert store.list_calls() == ["a2", "a2x"]
    tree = engine.in_memory_tree
    assert tree is not None
    assert [(n.id, n.name) for n in tree] == [("a", "Projects")]
    assert [n.id for n in tree[0].children] == ["a2"]
    assert _names(tree[0].children[0].children) == ["Header"]
    assert engine.synced_at == 0
    assert cache.record is not None
    assert cache.record.synced_at == 0


async def test_sync_subtree_adds_placeholder_under_existing_ancestor(
    engine: TreeSyncEngine, store: FakeStore
) -> None:
    await engine.force_sync()
    projects = store.find("a")
    assert projects is not None
    projects.children.append(
        Node(id="a3", name="Docs", order=2, children=[Node(id="a3x", name="Guide")])
    )
    context = [ROOT_SEGMENT, PathSegment(id="a", name="Projects"), PathSegment(id="a3", name="Docs")]

    await engine.sync_subtree("a3", context)

    mirrored_projects = find_node(engine.in_memory_tree or [], "a")
    assert mirrored_projects is not None
    assert [n.id for n in mirrored_projects.children] == ["a1", "a2", "a3"]
    assert _names(mirrored_projects.children[2].children) == ["Guide"]
    assert engine.synced_at == NOW_MS


async def test_sync_subtree_without_context_falls_back_to_full_sync(
    engine: TreeSyncEngine, store: FakeStore
) -> None:
    await engine.sync_subtree("a2")

    assert engine.synced_at == NOW_MS
    assert len(store.list_calls()) == SAMPLE_NODE_COUNT + 1


async def test_sync_subtree_with_relative_context_falls_back_to_full_sync(
    engine: TreeSyncEngine,
) -> None:
    await engine.sync_subtree("a2", [PathSegment(id="a", name="Projects")])

    assert engine.synced_at == NOW_MS
    assert _names(engine.in_memory_tree or []) == ["Projects", "Personal", "Profile"]


async def test_sync_subtree_of_unknown_node_falls_back_to_full_sync(
    engine: TreeSyncEngine, clock: FakeClock
) -> None:
    await engine.force_sync()
    clock.advance(1)

    await engine.sync_subtree("missing")

    assert engine.synced_at == NOW_MS + 1000


async def test_sync_subtree_failure_surfaces(engine: TreeSyncEngine, store: FakeStore) -> None:
    await engine.force_sync()
    store.fail_with = ApiError("gone")

    with pytest.raises(SyncError, match="gone"):
        await engine.sync_subtree("a2")


# --- Search delegation and mirror patches ---


async def test_search_never_syncs(engine: TreeSyncEngine, store: FakeStore) -> None:
    assert engine.search("header") == []
    assert store.calls == []


async def test_search_scoped_to_start_node(engine: TreeSyncEngine) -> None:
    await engine.force_sync()

    results = engine.search("header", start_node_id="a2")

    assert [r.node.id for r in results] == ["a2x"]
    assert results[0].path == (PathSegment(id="a2", name="Website"),)
    assert engine.search("header", start_node_id="nope") == []


async def test_update_node_in_cache_persists_patch(
    engine: TreeSyncEngine, cache: FakeCacheStore
) -> None:
    await engine.force_sync()
    saves = cache.saves

    assert engine.update_node_in_cache("a1", name="Hotfix") is True

    assert cache.saves == saves + 1
    assert cache.record is not None
    assert cache.record.synced_at == NOW_MS
    assert find_node(cache.record.root, "a1").name == "Hotfix"  # type: ignore[union-attr]
    assert engine.update_node_in_cache("missing", name="x") is False


async def test_move_node_in_cache_reparents(engine: TreeSyncEngine) -> None:
    await engine.force_sync()

    assert engine.move_node_in_cache("c", "b", 5) is True

    tree = engine.in_memory_tree or []
    assert _names(tree) == ["Projects", "Personal"]
    assert _names(tree[1].children) == ["Groceries", "Profile"]


async def test_move_node_in_cache_uses_position_and_renumbers(engine: TreeSyncEngine) -> None:
    await engine.force_sync()

    assert engine.move_node_in_cache("a2", "a", 0) is True

    projects = (engine.in_memory_tree or [])[0]
    assert [(n.name, n.order) for n in projects.children] == [("Website", 0), ("Bugfix release", 1)]


async def test_search_rejects_bad_regex_without_mirror(engine: TreeSyncEngine) -> None:
    with pytest.raises(InvalidQueryError):
        engine.search("([", SearchOptions(is_regex=True))


async def test_search_rejects_bad_regex_for_unknown_start(engine: TreeSyncEngine) -> None:
    await engine.force_sync()

    with pytest.raises(InvalidQueryError):
        engine.search("([", SearchOptions(is_regex=True), "no-such-node")
