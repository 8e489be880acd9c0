"""MCP server exposing tree loading, browsing and mutation tools."""

import asyncio
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger
from mcp.server.fastmcp import Context, FastMCP

from hypertree.config import DATA_FILE_ENV, DEFAULT_TREE_ID, TREE_ID_ENV, TreeOptions
from hypertree.core.importer.json_reader import load_dataset
from hypertree.core.registry import TreeHandlers
from hypertree.core.state.engine import TreeState
from hypertree.core.tree.markdown import render_view_as_markdown
from hypertree.models.node import NodeSnapshot

_POSITIONS = ("before", "children", "after")


def _not_found(tree_id: str) -> dict[str, Any]:
    return {"error": f"Tree '{tree_id}' not found. Load it with tree_load_tool first."}


def _serialize_row(row: NodeSnapshot) -> dict[str, Any]:
    return {
        "id": row.id,
        "depth": row.depth,
        "opened": row.opened,
        "selected": row.selected,
        "loading": row.loading,
        "has_children": row.has_children,
        "data": row.data,
    }


# --- Core functions (testable without MCP context) ---


def tree_load(
    handlers: TreeHandlers,
    *,
    tree_id: str,
    path: str,
    id_key: str = "id",
    children_key: str = "children",
    opened_all: bool = False,
) -> dict[str, Any]:
    """Load a JSON dataset file as tree ``tree_id``, replacing any previous one.

    Args:
        tree_id: Identifier the tree is registered under.
        path: Path of a JSON file holding one record or a list of records.
        id_key: Record field holding the node id.
        children_key: Record field holding the child records.
        opened_all: Start with every node opened.
    """
    try:
        records = load_dataset(Path(path).expanduser())
    except (FileNotFoundError, ValueError) as e:
        return {"error": str(e)}

    existing = handlers.lookup(tree_id)
    if existing is not None:
        handlers.unregister(tree_id)

    options = TreeOptions(id_key=id_key, children_key=children_key, default_opened=opened_all)
    state = TreeState(tree_id, records, options, handlers=handlers)
    logger.info("Loaded tree {} from {} ({} nodes)", tree_id, path, state.view.node_count())
    return {
        "tree_id": tree_id,
        "node_count": state.view.node_count(),
        "visible": len(state.flattened),
        "replaced": existing is not None,
    }


def tree_list(handlers: TreeHandlers) -> dict[str, Any]:
    """List loaded trees with their sizes."""
    trees = []
    for tree_id in handlers.tree_ids():
        view = handlers.lookup(tree_id)
        if view is None:
            continue
        trees.append({"tree_id": tree_id, "node_count": view.node_count(), "visible": len(view.flattened)})
    return {"trees": trees, "count": len(trees)}


def tree_view(
    handlers: TreeHandlers,
    *,
    tree_id: str,
    output_format: str = "markdown",
    label_key: str | None = None,
) -> dict[str, Any]:
    """Return the currently visible rows of a tree.

    Args:
        tree_id: Loaded tree id.
        output_format: "markdown" (outline) or "json" (one entry per row).
        label_key: Record field used as row text in markdown output.
    """
    view = handlers.lookup(tree_id)
    if view is None:
        return _not_found(tree_id)

    rows = view.snapshot()
    if output_format == "markdown":
        return {
            "tree_id": tree_id,
            "content": render_view_as_markdown(rows, label_key=label_key, show_ids=True),
            "count": len(rows),
        }
    return {"tree_id": tree_id, "rows": [_serialize_row(r) for r in rows], "count": len(rows)}


def _node_error(handlers: TreeHandlers, tree_id: str, *node_ids: str) -> dict[str, Any] | None:
    view = handlers.lookup(tree_id)
    if view is None:
        return _not_found(tree_id)
    for node_id in node_ids:
        if view.get_node_by_id(node_id) is None:
            return {"error": f"Node '{node_id}' not found in tree '{tree_id}'."}
    return None


async def tree_open(handlers: TreeHandlers, *, tree_id: str, node_id: str) -> dict[str, Any]:
    """Toggle a node open or closed."""
    error = _node_error(handlers, tree_id, node_id)
    if error:
        return error
    await handlers.ainvoke(tree_id, "set_open", node_id)
    node = handlers.lookup(tree_id).get_node_by_id(node_id)  # type: ignore[union-attr]
    return {"node_id": node_id, "opened": bool(node and node.opened)}


async def tree_open_path(handlers: TreeHandlers, *, tree_id: str, path: str) -> dict[str, Any]:
    """Open every node along a ``/``-joined id path."""
    if handlers.lookup(tree_id) is None:
        return _not_found(tree_id)
    await handlers.ainvoke(tree_id, "set_open_by_path", path)
    return tree_view(handlers, tree_id=tree_id)


async def tree_select_path(
    handlers: TreeHandlers,
    *,
    tree_id: str,
    path: str,
    select_all: bool = False,
) -> dict[str, Any]:
    """Reveal and select the node at the end of ``path``."""
    view = handlers.lookup(tree_id)
    if view is None:
        return _not_found(tree_id)
    await handlers.ainvoke(tree_id, "set_selected_by_path", path, select_all)
    selected = [str(node.id) for node in view.walk() if node.selected]
    return {"tree_id": tree_id, "selected": selected}


def tree_move(
    handlers: TreeHandlers,
    *,
    tree_id: str,
    source_id: str,
    target_id: str,
    position: str = "children",
) -> dict[str, Any]:
    """Move a node into (``children``) or next to (``before``/``after``) another."""
    if position not in _POSITIONS:
        return {"error": f"Invalid position '{position}'. Expected one of {', '.join(_POSITIONS)}."}
    error = _node_error(handlers, tree_id, source_id, target_id)
    if error:
        return error

    handlers.invoke(tree_id, "move", source_id, target_id, position)
    node = handlers.lookup(tree_id).get_node_by_id(source_id)  # type: ignore[union-attr]
    parent = node.parent if node else None
    return {
        "node_id": source_id,
        "parent_id": parent.id if parent else None,
        "path": node.path() if node else None,
    }


def tree_unload(handlers: TreeHandlers, *, tree_id: str) -> dict[str, Any]:
    """Drop a loaded tree."""
    if tree_id not in handlers:
        return _not_found(tree_id)
    handlers.unregister(tree_id)
    return {"tree_id": tree_id, "unloaded": True}


# --- MCP Server Setup ---


@dataclass
class ServerContext:
    """Shared resources for the MCP server lifetime."""

    handlers: TreeHandlers
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


@asynccontextmanager
async def server_lifespan(_server: FastMCP) -> AsyncIterator[ServerContext]:
    """Load the startup dataset, if one is configured, and drop all trees on shutdown."""
    handlers = TreeHandlers()
    data_file = os.environ.get(DATA_FILE_ENV)
    if data_file:
        tree_id = os.environ.get(TREE_ID_ENV, DEFAULT_TREE_ID)
        result = tree_load(handlers, tree_id=tree_id, path=data_file)
        if "error" in result:
            logger.warning("Startup dataset not loaded: {}", result["error"])
    try:
        yield ServerContext(handlers=handlers)
    finally:
        for tree_id in handlers.tree_ids():
            handlers.unregister(tree_id)


mcp_server = FastMCP(
    "hypertree",
    instructions="""\
Trees are loaded from JSON files and browsed as a flattened outline: only the
children of opened nodes are visible.

1. Load a dataset with tree_load_tool (or use the tree preloaded at startup).
2. Call tree_view_tool to see visible rows and their ids.
3. Open nodes with tree_open_tool, or a whole chain at once with
   tree_open_path_tool using "/"-joined ids such as "root/section/item".
4. Reorganise with tree_move_tool (position: before, children, after).
""",
    lifespan=server_lifespan,
)


def _ctx(mcp_ctx: Context) -> ServerContext:
    return mcp_ctx.request_context.lifespan_context  # type: ignore[return-value]


# --- MCP Tool Wrappers ---


@mcp_server.tool()
async def tree_load_tool(
    ctx: Context,
    tree_id: str,
    path: str,
    id_key: str = "id",
    children_key: str = "children",
    opened_all: bool = False,
) -> dict[str, Any]:
    """Load a JSON dataset file as a tree.

    Args:
        tree_id: Identifier for the tree.
        path: JSON file with one record or a list of records.
        id_key: Record field holding node ids.
        children_key: Record field holding child records.
        opened_all: Start with every node opened.
    """
    async with _ctx(ctx).lock:
        return tree_load(
            _ctx(ctx).handlers,
            tree_id=tree_id,
            path=path,
            id_key=id_key,
            children_key=children_key,
            opened_all=opened_all,
        )


@mcp_server.tool()
async def tree_list_tool(ctx: Context) -> dict[str, Any]:
    """List loaded trees."""
    return tree_list(_ctx(ctx).handlers)


@mcp_server.tool()
async def tree_view_tool(
    ctx: Context,
    tree_id: str,
    output_format: str = "markdown",
    label_key: str | None = None,
) -> dict[str, Any]:
    """Show the visible rows of a tree.

    Args:
        tree_id: Loaded tree id.
        output_format: "markdown" (outline) or "json" (structured rows).
        label_key: Record field to display instead of the id.
    """
    async with _ctx(ctx).lock:
        return tree_view(_ctx(ctx).handlers, tree_id=tree_id, output_format=output_format, label_key=label_key)


@mcp_server.tool()
async def tree_open_tool(ctx: Context, tree_id: str, node_id: str) -> dict[str, Any]:
    """Toggle a node open or closed.

    Args:
        tree_id: Loaded tree id.
        node_id: Node to toggle.
    """
    async with _ctx(ctx).lock:
        return await tree_open(_ctx(ctx).handlers, tree_id=tree_id, node_id=node_id)


@mcp_server.tool()
async def tree_open_path_tool(ctx: Context, tree_id: str, path: str) -> dict[str, Any]:
    """Open each node along a path of ids, root first.

    Args:
        tree_id: Loaded tree id.
        path: "/"-joined node ids, e.g. "a/b/c".
    """
    async with _ctx(ctx).lock:
        return await tree_open_path(_ctx(ctx).handlers, tree_id=tree_id, path=path)


@mcp_server.tool()
async def tree_select_path_tool(
    ctx: Context,
    tree_id: str,
    path: str,
    select_all: bool = False,
) -> dict[str, Any]:
    """Open the ancestors on a path and select its last node.

    Args:
        tree_id: Loaded tree id.
        path: "/"-joined node ids, e.g. "a/b/c".
        select_all: Select every node on the path.
    """
    async with _ctx(ctx).lock:
        return await tree_select_path(_ctx(ctx).handlers, tree_id=tree_id, path=path, select_all=select_all)


@mcp_server.tool()
async def tree_move_tool(
    ctx: Context,
    tree_id: str,
    source_id: str,
    target_id: str,
    position: str = "children",
) -> dict[str, Any]:
    """Move a node relative to another node.

    Args:
        tree_id: Loaded tree id.
        source_id: Node to move.
        target_id: Node to drop onto.
        position: "before", "children" (last child of target) or "after".
    """
    async with _ctx(ctx).lock:
        return tree_move(
            _ctx(ctx).handlers,
            tree_id=tree_id,
            source_id=source_id,
            target_id=target_id,
            position=position,
        )


@mcp_server.tool()
async def tree_unload_tool(ctx: Context, tree_id: str) -> dict[str, Any]:
    """Drop a loaded tree."""
    async with _ctx(ctx).lock:
        return tree_unload(_ctx(ctx).handlers, tree_id=tree_id)


def run_mcp_server() -> None:
    """Run the MCP server with stdio transport."""
    from hypertree.logging_config import configure_logging

    configure_logging(verbose=False)
    mcp_server.run(transport="stdio")
