"""Resolve slash-delimited path expressions to outline nodes."""

from loguru import logger

from workflowy_mirror.core.lookup.service import NodeService
from workflowy_mirror.errors import PathNotFoundError
from workflowy_mirror.models.node import ROOT_ID, ROOT_SEGMENT, Node, PathSegment


class PathResolver:
    """Walk a path one segment at a time over the node lookup layer.

    Grammar: ``/``, ``~`` and ``~/`` anchor at the root; empty and ``.``
    segments are ignored; ``..`` goes up one level (no-op at the root). Any
    other segment is matched against the children of the current node by
    1-based index, unique exact name, id, then unique case-insensitive
    name prefix.
    """

    def __init__(self, nodes: NodeService) -> None:
        self._nodes = nodes

    async def resolve_path(
        self,
        path: str,
        current_id: str = ROOT_ID,
        current_breadcrumbs: list[PathSegment] | None = None,
    ) -> Node:
        """Resolve ``path`` relative to the current location.

        Raises:
            PathNotFoundError: A segment did not resolve; nothing is applied.
        """
        node, _ = await self.walk(path, current_id, current_breadcrumbs)
        return node

    async def walk(
        self,
        path: str,
        current_id: str = ROOT_ID,
        current_breadcrumbs: list[PathSegment] | None = None,
    ) -> tuple[Node, list[PathSegment]]:
        """Resolve ``path`` and also return the canonical breadcrumbs of the result.

        ``current_breadcrumbs`` is the canonical path of the current node,
        starting with the root segment and ending with the node itself.
        """
        lookup_id = current_id
        stack = list(current_breadcrumbs) if current_breadcrumbs else [ROOT_SEGMENT]
        rest = path

        if rest == "~":
            rest = ""
            lookup_id, stack = ROOT_ID, [ROOT_SEGMENT]
        elif rest.startswith("~/"):
            rest = rest[2:]
            lookup_id, stack = ROOT_ID, [ROOT_SEGMENT]
        elif rest.startswith("/"):
            rest = rest[1:]
            lookup_id, stack = ROOT_ID, [ROOT_SEGMENT]

        segments = [s for s in rest.split("/") if s and s != "."]
        current = self._node_at(lookup_id, stack)

        for segment in segments:
            if segment == "..":
                if len(stack) > 1:
                    stack.pop()
                parent = stack[-1]
                lookup_id = parent.id
                current = self._node_at(lookup_id, stack)
                continue

            child = await self.resolve_one_level(lookup_id, segment)
            if child is None:
                logger.debug("Path {!r}: segment {!r} not found under {}", path, segment, lookup_id)
                raise PathNotFoundError(segment, path)

            current = child
            lookup_id = child.id
            stack.append(child.segment())

        return current, stack

    async def resolve_one_level(self, parent_id: str, segment: str) -> Node | None:
        """Match one segment against the children of ``parent_id``."""
        children = await self._nodes.get_children(parent_id)

        # 1. Index
        if segment.isascii() and segment.isdigit():
            index = int(segment)
            if 1 <= index <= len(children):
                return children[index - 1]

        # 2. Exact name
        exact = [c for c in children if c.name == segment]
        if len(exact) == 1:
            return exact[0]

        # 3. Id
        for child in children:
            if child.id == segment:
                return child

        # 4. Prefix
        lowered = segment.lower()
        fuzzy = [c for c in children if c.name.lower().startswith(lowered)]
        if len(fuzzy) == 1:
            return fuzzy[0]

        return None

    def _node_at(self, node_id: str, stack: list[PathSegment]) -> Node:
        """The node for a location already reached, from the mirror when possible."""
        node = self._nodes.get_node(node_id)
        if node is not None:
            return node
        if node_id == ROOT_ID:
            return Node.root()
        return Node(id=node_id, name=stack[-1].name if stack else "?")
