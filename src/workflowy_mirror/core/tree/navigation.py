"""Tree navigation: id lookup, breadcrumbs, ordering."""

from collections.abc import Iterator

from workflowy_mirror.models.node import Node, PathSegment


def sort_children(nodes: list[Node]) -> list[Node]:
    """Sort a freshly fetched children list by ``order``, in place."""
    nodes.sort(key=lambda n: n.order)
    return nodes


def find_with_path(
    nodes: list[Node],
    target_id: str,
    path: tuple[PathSegment, ...] = (),
) -> tuple[Node, tuple[PathSegment, ...]] | None:
    """Find a node by id, depth-first.

    Returns the node and its breadcrumbs from the top level to its parent
    (excludes the node itself), or None.
    """
    for node in nodes:
        if node.id == target_id:
            return node, path
        if node.children:
            found = find_with_path(node.children, target_id, (*path, node.segment()))
            if found is not None:
                return found
    return None


def find_node(nodes: list[Node], target_id: str) -> Node | None:
    found = find_with_path(nodes, target_id)
    return found[0] if found else None


def find_parent(parent: Node, target_id: str) -> tuple[Node, int] | None:
    """Return the node whose children hold ``target_id``, and the index there."""
    for i, node in enumerate(parent.children):
        if node.id == target_id:
            return parent, i
    for node in parent.children:
        found = find_parent(node, target_id)
        if found is not None:
            return found
    return None


def iter_preorder(nodes: list[Node]) -> Iterator[Node]:
    for node in nodes:
        yield node
        yield from iter_preorder(node.children)


def count_nodes(nodes: list[Node]) -> int:
    return sum(1 for _ in iter_preorder(nodes))


def insert_sorted(nodes: list[Node], node: Node) -> list[Node]:
    """Return a new list with ``node`` placed after siblings of equal or lower order."""
    index = len(nodes)
    for i, sibling in enumerate(nodes):
        if sibling.order > node.order:
            index = i
            break
    return [*nodes[:index], node, *nodes[index:]]
