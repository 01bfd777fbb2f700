"""Shared test fixtures."""

import pytest

from tests.unit.fakes import FakeCacheStore, FakeStore
from workflowy_mirror.core.lookup.service import NodeService
from workflowy_mirror.core.path.resolver import PathResolver
from workflowy_mirror.core.sync import engine as engine_module
from workflowy_mirror.core.sync.engine import TreeSyncEngine
from workflowy_mirror.models.node import Node

# Seven nodes; eight list_children calls for a full sync (root included).
SAMPLE_NODE_COUNT = 7

# Fixed "now" for the fake clock, in epoch milliseconds.
NOW_MS = 1_700_000_000_000


def make_sample_tree() -> list[Node]:
    return [
        Node(
            id="a",
            name="Projects",
            note="Active work",
            order=0,
            children=[
                Node(id="a1", name="Bugfix release", order=0),
                Node(
                    id="a2",
                    name="Website",
                    note="fix this bug",
                    order=1,
                    children=[Node(id="a2x", name="Header", order=0)],
                ),
            ],
        ),
        Node(
            id="b",
            name="Personal",
            order=1,
            children=[Node(id="b1", name="Groceries", order=0, completed_at=5)],
        ),
        Node(id="c", name="Profile", order=2),
    ]


class FakeClock:
    """Controls ``_now_ms`` in the sync engine."""

    def __init__(self, now: int = NOW_MS) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    fake = FakeClock()
    monkeypatch.setattr(engine_module, "_now_ms", fake)
    return fake


@pytest.fixture
def store() -> FakeStore:
    return FakeStore(make_sample_tree())


@pytest.fixture
def cache() -> FakeCacheStore:
    return FakeCacheStore()


@pytest.fixture
def engine(store: FakeStore, cache: FakeCacheStore, clock: FakeClock) -> TreeSyncEngine:
    return TreeSyncEngine(store, cache)


@pytest.fixture
def service(store: FakeStore, engine: TreeSyncEngine) -> NodeService:
    return NodeService(store, engine)


@pytest.fixture
def resolver(service: NodeService) -> PathResolver:
    return PathResolver(service)
