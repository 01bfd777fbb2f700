"""CLI for the outline mirror (sync, list, search)."""

import asyncio
import json
from typing import Annotated

import typer
from loguru import logger

from workflowy_mirror.config import cache_file_path, create_store, is_mock_mode
from workflowy_mirror.core.cache.store import CacheFileStore
from workflowy_mirror.core.lookup.service import NodeService
from workflowy_mirror.core.path.resolver import PathResolver
from workflowy_mirror.core.sync.engine import TreeSyncEngine
from workflowy_mirror.errors import MirrorError
from workflowy_mirror.logging_config import configure_logging
from workflowy_mirror.models.node import ROOT_ID, Node, SearchOptions, SearchResult

app = typer.Typer(help="Workflowy mirror: browse and search a cached copy of your outline.")


def build_service() -> tuple[NodeService, PathResolver]:
    """Wire the store, snapshot cache, engine and lookup layer for the current mode."""
    store = create_store()
    engine = TreeSyncEngine(store, CacheFileStore(cache_file_path()))
    nodes = NodeService(store, engine)
    return nodes, PathResolver(nodes)


def _format_node(index: int, node: Node) -> str:
    mark = "[x] " if node.completed else ""
    suffix = f"  ({len(node.children)})" if node.children else ""
    return f"{index:>3}. {mark}{node.name}{suffix}"


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    configure_logging(verbose=verbose)
    if is_mock_mode():
        logger.warning("[MOCK MODE] Using sandbox Workflowy data")


@app.command()
def sync() -> None:
    """Fetch the whole outline and refresh the local cache."""
    nodes, _ = build_service()
    try:
        tree = asyncio.run(nodes.force_sync(show_progress=True))
    except MirrorError as e:
        logger.error("{}", e)
        raise typer.Exit(1) from e
    typer.echo(f"Synced {len(tree)} top-level nodes.")


@app.command(name="ls")
def list_cmd(
    path: str = typer.Argument("/", help="Path to list (index, name, id or prefix per segment)"),
) -> None:
    """List the children of a node."""
    nodes, resolver = build_service()

    async def run() -> list[Node]:
        target = await resolver.resolve_path(path)
        return await nodes.get_children(target.id)

    try:
        children = asyncio.run(run())
    except MirrorError as e:
        typer.echo(str(e))
        raise typer.Exit(1) from e

    for i, child in enumerate(children, start=1):
        typer.echo(_format_node(i, child))


@app.command()
def find(
    query: str = typer.Argument(..., help="Search text or pattern"),
    notes: bool = typer.Option(False, "--notes", "-n", help="Also search notes"),
    regex: bool = typer.Option(False, "--regex", "-r", help="Treat query as a regular expression"),
    limit: int = typer.Option(20, "--limit", "-l", help="Max results"),
    below: Annotated[
        str | None,
        typer.Option("--below", "-b", help="Restrict to the subtree at this path"),
    ] = None,
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Search the cached outline."""
    nodes, resolver = build_service()
    options = SearchOptions(include_notes=notes, limit=limit, is_regex=regex)

    async def run() -> list[SearchResult]:
        start_id = ROOT_ID
        if below:
            start_id = (await resolver.resolve_path(below)).id
        return await nodes.search(query, options, start_id)

    try:
        results = asyncio.run(run())
    except MirrorError as e:
        typer.echo(str(e))
        raise typer.Exit(1) from e

    if output_json:
        data = [
            {
                "id": r.node.id,
                "name": r.node.name,
                "match_field": r.match_field,
                "match_content": r.match_content,
                "path": [p.to_dict() for p in r.path],
            }
            for r in results
        ]
        typer.echo(json.dumps({"results": data, "count": len(data)}, indent=2))
        return

    typer.echo(f"Found {len(results)} results:\n")
    for r in results:
        crumbs = " > ".join(p.name[:40] for p in r.path)
        typer.echo(f"  {r.node.name[:80]}")
        if r.match_field == "note":
            typer.echo(f"    note: {r.match_content[:60]}")
        typer.echo(f"    id={r.node.id}  in: {crumbs or '/'}")
        typer.echo()


@app.command()
def status() -> None:
    """Show whether the local cache is fresh."""
    nodes, _ = build_service()
    engine = nodes.engine
    if not engine.ensure_loaded():
        typer.echo("No cached tree. Run 'sync' first.")
        return
    state = "stale" if engine.is_stale else "fresh"
    typer.echo(f"Cache is {state}, last full sync at {engine.synced_at} (epoch ms)")


@app.command(name="clear-cache")
def clear_cache() -> None:
    """Delete the cached tree for the current mode."""
    nodes, _ = build_service()
    nodes.engine.clear_cache()
    typer.echo("Cache cleared.")
