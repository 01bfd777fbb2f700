"""Domain models for the outline mirror."""

from dataclasses import dataclass, field
from typing import Any, Literal

# Reserved id of the synthetic root. The remote API uses the same literal.
ROOT_ID = "None"
ROOT_NAME = "/"


@dataclass
class Node:
    """A single outline node. Owns its ``children`` list exclusively."""

    id: str
    name: str
    note: str | None = None
    order: int = 0
    completed_at: int | None = None
    children: list["Node"] = field(default_factory=list)

    @classmethod
    def root(cls, children: list["Node"] | None = None) -> "Node":
        """Build the root sentinel wrapping the top-level list."""
        return cls(id=ROOT_ID, name=ROOT_NAME, children=children if children is not None else [])

    @property
    def is_root(self) -> bool:
        return self.id == ROOT_ID

    @property
    def completed(self) -> bool:
        return self.completed_at is not None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Node":
        """Parse a node as returned by the remote API.

        Nested children (``ch`` or ``children``) are parsed too when present.
        """
        order = data.get("priority", data.get("k"))
        raw_children = data.get("ch") or data.get("children") or []
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            note=data.get("note"),
            order=int(order) if order is not None else 0,
            completed_at=data.get("completedAt"),
            children=[cls.from_api(c) for c in raw_children],
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Node":
        """Parse a node from the persisted cache format."""
        return cls(
            id=data["id"],
            name=data["name"],
            note=data.get("note"),
            order=data.get("order", 0),
            completed_at=data.get("completedAt"),
            children=[cls.from_dict(c) for c in data.get("children", [])],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "note": self.note,
            "order": self.order,
            "completedAt": self.completed_at,
            "children": [c.to_dict() for c in self.children],
        }

    def segment(self) -> "PathSegment":
        return PathSegment(id=self.id, name=self.name)


@dataclass(frozen=True)
class PathSegment:
    """A single ancestor in a breadcrumb trail."""

    id: str
    name: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name}


ROOT_SEGMENT = PathSegment(id=ROOT_ID, name=ROOT_NAME)


@dataclass(frozen=True)
class CacheRecord:
    """The persisted full-tree snapshot.

    ``synced_at`` is epoch milliseconds of the last *full* sync.
    """

    synced_at: int
    root: list[Node]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CacheRecord":
        synced_at = data["syncedAt"]
        root = data["root"]
        if not isinstance(synced_at, int) or not isinstance(root, list):
            msg = f"bad cache record types: {type(synced_at)!r}, {type(root)!r}"
            raise ValueError(msg)
        return cls(synced_at=synced_at, root=[Node.from_dict(n) for n in root])

    def to_dict(self) -> dict[str, Any]:
        return {"syncedAt": self.synced_at, "root": [n.to_dict() for n in self.root]}


@dataclass(frozen=True)
class SearchOptions:
    """Options for in-memory search."""

    include_notes: bool = False
    limit: int | None = None
    is_regex: bool = False


@dataclass(frozen=True)
class SearchResult:
    """A search hit with breadcrumbs to the node's parent."""

    node: Node
    path: tuple[PathSegment, ...]
    match_field: Literal["name", "note"]
    match_content: str


@dataclass(frozen=True)
class TreeView:
    """Result of reading the mirror."""

    tree: list[Node]
    stale: bool
    syncing_in_background: bool
