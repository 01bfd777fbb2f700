"""In-memory search over the outline mirror."""

import re
from collections.abc import Callable

from workflowy_mirror.errors import InvalidQueryError
from workflowy_mirror.models.node import Node, PathSegment, SearchOptions, SearchResult


def make_matcher(query: str, *, is_regex: bool) -> Callable[[str], bool]:
    """Build a case-insensitive matcher for a plain or regex query.

    Raises:
        InvalidQueryError: ``is_regex`` is set and the pattern does not compile.
    """
    if is_regex:
        try:
            pattern = re.compile(query, re.IGNORECASE)
        except re.error as e:
            msg = f"Invalid regular expression: {query!r} ({e})"
            raise InvalidQueryError(msg) from e
        return lambda text: pattern.search(text) is not None

    needle = query.lower()
    return lambda text: needle in text.lower()


def search_tree(
    nodes: list[Node],
    query: str,
    options: SearchOptions | None = None,
    initial_path: tuple[PathSegment, ...] = (),
) -> list[SearchResult]:
    """Search nodes and their descendants, depth-first pre-order.

    Args:
        nodes: Nodes to start from (top-level list, or a single start node).
        query: Substring, or a pattern when ``options.is_regex`` is set.
        options: Notes/limit/regex options.
        initial_path: Breadcrumbs prepended to every result path.

    Returns:
        Results in discovery order; at most ``options.limit`` of them.
    """
    options = options or SearchOptions()
    matches = make_matcher(query, is_regex=options.is_regex)
    limit = options.limit if options.limit and options.limit > 0 else None
    results: list[SearchResult] = []

    def visit(level: list[Node], path: tuple[PathSegment, ...]) -> bool:
        # Returns True once the limit is reached.
        for node in level:
            name_match = matches(node.name or "")
            note_match = options.include_notes and matches(node.note or "")

            if name_match or note_match:
                results.append(
                    SearchResult(
                        node=node,
                        path=path,
                        match_field="name" if name_match else "note",
                        match_content=node.name if name_match else (node.note or ""),
                    )
                )
                if limit is not None and len(results) >= limit:
                    return True

            if node.children and visit(node.children, (*path, node.segment())):
                return True
        return False

    visit(nodes, initial_path)
    return results
