"""Protocols for dependency injection in the sync engine."""

from typing import Any, Protocol, runtime_checkable

from workflowy_mirror.models.node import CacheRecord, Node


@runtime_checkable
class RemoteStoreProtocol(Protocol):
    """Protocol for the remote outline store.

    Rate limiting and retries, if any, live beneath this interface.
    """

    async def list_children(self, parent_id: str) -> list[Node]:
        """Return the direct children of a node (``"None"`` for top level)."""
        ...

    async def create_node(self, parent_id: str, name: str, note: str | None = None) -> Node:
        """Create a node under ``parent_id`` and return it."""
        ...

    async def update_node(self, node_id: str, **fields: Any) -> Node:
        """Update ``name`` and/or ``note`` of a node."""
        ...

    async def delete_node(self, node_id: str) -> None: ...

    async def complete_node(self, node_id: str) -> None: ...

    async def uncomplete_node(self, node_id: str) -> None: ...

    async def move_node(self, node_id: str, parent_id: str, priority: int) -> Node:
        """Move a node under ``parent_id`` at position ``priority``."""
        ...


@runtime_checkable
class CacheStoreProtocol(Protocol):
    """Protocol for the persisted snapshot store."""

    def load(self) -> CacheRecord | None:
        """Return the persisted record, or None if absent or unreadable."""
        ...

    def save(self, record: CacheRecord) -> None:
        """Persist the record, replacing any previous one."""
        ...

    def clear(self) -> None:
        """Remove the persisted record."""
        ...
