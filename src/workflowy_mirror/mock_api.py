"""In-memory sandbox store with the same interface as WorkflowyApi."""

import asyncio
import copy
import time

from loguru import logger

from workflowy_mirror.errors import ApiError
from workflowy_mirror.models.node import Node

_DAY_MS = 24 * 60 * 60 * 1000


def _default_tree() -> list[Node]:
    now = int(time.time() * 1000)
    return [
        Node(
            id="mock-projects",
            name="Projects",
            note="Active projects",
            order=0,
            children=[
                Node(
                    id="mock-project-cli",
                    name="WorkflowyCLI",
                    note="CLI tool for Workflowy",
                    order=0,
                    children=[
                        Node(id="mock-task-1", name="Add search feature", order=0),
                        Node(id="mock-task-2", name="Fix bugs", note="See bug tracker", order=1),
                        Node(id="mock-task-3", name="Write tests", order=2, completed_at=now - _DAY_MS),
                    ],
                ),
                Node(
                    id="mock-project-website",
                    name="Website Redesign",
                    order=1,
                    children=[
                        Node(id="mock-web-1", name="Design mockups", order=0),
                        Node(id="mock-web-2", name="Implement header", order=1),
                    ],
                ),
            ],
        ),
        Node(
            id="mock-personal",
            name="Personal",
            note="Personal items",
            order=1,
            children=[
                Node(id="mock-personal-1", name="Buy groceries", order=0),
                Node(id="mock-personal-2", name="Call mom", order=1, completed_at=now - _DAY_MS // 24),
            ],
        ),
        Node(id="mock-archive", name="Archive", order=2),
    ]


class MockWorkflowyApi:
    """Sandbox store. Returns deep copies so callers never share its nodes."""

    def __init__(self, *, delay: float = 0.0) -> None:
        self.delay = delay
        self.data = Node.root(_default_tree())
        self._next_id = 1
        self.calls: list[tuple[str, str]] = []
        logger.debug("Mock store ready with {} top-level nodes", len(self.data.children))

    def reset(self) -> None:
        """Restore the default outline."""
        self.data = Node.root(_default_tree())
        self._next_id = 1
        self.calls.clear()

    def get_tree(self) -> list[Node]:
        """Return the live sandbox tree (for assertions)."""
        return self.data.children

    async def list_children(self, parent_id: str) -> list[Node]:
        await self._tick("list_children", parent_id)
        parent = self._find(parent_id)
        if parent is None:
            return []
        return [_shallow_copy(c) for c in parent.children]

    async def create_node(self, parent_id: str, name: str, note: str | None = None) -> Node:
        await self._tick("create_node", parent_id)
        parent = self._require(parent_id, what="Parent node")
        node = Node(id=f"mock-new-{self._next_id}", name=name, note=note, order=0)
        self._next_id += 1
        parent.children.append(node)
        _renumber(parent.children)
        return copy.deepcopy(node)

    async def update_node(self, node_id: str, **fields: object) -> Node:
        await self._tick("update_node", node_id)
        node = self._require(node_id)
        if fields.get("name") is not None:
            node.name = str(fields["name"])
        if fields.get("note") is not None:
            node.note = str(fields["note"])
        return copy.deepcopy(node)

    async def delete_node(self, node_id: str) -> None:
        await self._tick("delete_node", node_id)
        if not _remove(self.data, node_id):
            msg = f"Node not found: {node_id}"
            raise ApiError(msg)

    async def complete_node(self, node_id: str) -> None:
        await self._tick("complete_node", node_id)
        self._require(node_id).completed_at = int(time.time() * 1000)

    async def uncomplete_node(self, node_id: str) -> None:
        await self._tick("uncomplete_node", node_id)
        self._require(node_id).completed_at = None

    async def move_node(self, node_id: str, parent_id: str, priority: int) -> Node:
        await self._tick("move_node", node_id)
        node = self._require(node_id)
        parent = self._require(parent_id, what="Parent node")
        _remove(self.data, node_id)
        parent.children.insert(max(0, min(priority, len(parent.children))), node)
        _renumber(parent.children)
        return copy.deepcopy(node)

    async def _tick(self, op: str, node_id: str) -> None:
        self.calls.append((op, node_id))
        # Always yield so concurrent callers interleave as they would over the network.
        await asyncio.sleep(self.delay)

    def _find(self, node_id: str, node: Node | None = None) -> Node | None:
        node = node or self.data
        if node.id == node_id:
            return node
        for child in node.children:
            found = self._find(node_id, child)
            if found is not None:
                return found
        return None

    def _require(self, node_id: str, *, what: str = "Node") -> Node:
        node = self._find(node_id)
        if node is None:
            msg = f"{what} not found: {node_id}"
            raise ApiError(msg)
        return node


def _shallow_copy(node: Node) -> Node:
    # list_children never returns grandchildren, like the real API.
    return Node(
        id=node.id,
        name=node.name,
        note=node.note,
        order=node.order,
        completed_at=node.completed_at,
    )


def _remove(parent: Node, node_id: str) -> bool:
    for i, child in enumerate(parent.children):
        if child.id == node_id:
            del parent.children[i]
            return True
        if _remove(child, node_id):
            return True
    return False


def _renumber(nodes: list[Node]) -> None:
    for i, node in enumerate(nodes):
        node.order = i
