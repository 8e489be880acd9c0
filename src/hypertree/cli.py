"""CLI for hypertree (outline preview, MCP server)."""

import asyncio
import json
from collections.abc import Callable
from pathlib import Path
from typing import Annotated, Any

import typer
from loguru import logger

from hypertree.config import DEFAULT_CHILDREN_KEY, DEFAULT_ID_KEY, TreeOptions
from hypertree.core.importer.json_reader import load_dataset
from hypertree.core.state.engine import TreeState
from hypertree.core.tree.markdown import render_view_as_markdown
from hypertree.logging_config import configure_logging

app = typer.Typer(help="hypertree: browse nested JSON records as a collapsible outline.")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    configure_logging(verbose=verbose)


def field_filter(expression: str) -> Callable[[Any], bool]:
    """Build a record predicate from ``FIELD=VALUE``."""
    name, sep, expected = expression.partition("=")
    if not sep or not name:
        msg = f"Expected FIELD=VALUE, got {expression!r}"
        raise typer.BadParameter(msg)

    def predicate(record: Any) -> bool:
        return isinstance(record, dict) and str(record.get(name)) == expected

    return predicate


async def _apply_paths(state: TreeState, open_paths: list[str], select_path: str | None) -> None:
    for path in open_paths:
        await state.set_open_by_path(path)
    if select_path:
        await state.set_selected_by_path(select_path)


@app.command()
def show(
    data_file: Path = typer.Argument(..., help="JSON file with one record or a list of records"),
    open_paths: Annotated[
        list[str] | None,
        typer.Option("--open", "-o", help="Open the nodes along a/b/c (repeatable)"),
    ] = None,
    select_path: Annotated[
        str | None,
        typer.Option("--select", "-s", help="Reveal and select the node at a/b/c"),
    ] = None,
    opened_all: bool = typer.Option(False, "--opened-all", "-a", help="Start with every node opened"),
    match: Annotated[
        str | None,
        typer.Option("--match", "-m", help="Only show FIELD=VALUE matches and their ancestors"),
    ] = None,
    label_key: Annotated[
        str | None,
        typer.Option("--label", "-l", help="Record field to display instead of the id"),
    ] = None,
    id_key: str = typer.Option(DEFAULT_ID_KEY, "--id-key", help="Record field holding node ids"),
    children_key: str = typer.Option(
        DEFAULT_CHILDREN_KEY, "--children-key", help="Record field holding child records"
    ),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Print the visible rows of a dataset as an outline."""
    try:
        records = load_dataset(data_file)
    except (FileNotFoundError, ValueError) as e:
        logger.error("{}", e)
        raise typer.Exit(1) from e

    options = TreeOptions(
        id_key=id_key,
        children_key=children_key,
        default_opened=opened_all,
        filter=field_filter(match) if match else None,
    )
    state = TreeState(data_file.stem, records, options)
    asyncio.run(_apply_paths(state, open_paths or [], select_path))

    rows = state.view.snapshot()
    if output_json:
        data = {
            "rows": [
                {
                    "id": r.id,
                    "depth": r.depth,
                    "opened": r.opened,
                    "selected": r.selected,
                    "has_children": r.has_children,
                }
                for r in rows
            ],
            "total": state.view.node_count(),
        }
        typer.echo(json.dumps(data, indent=2))
    else:
        typer.echo(render_view_as_markdown(rows, label_key=label_key), nl=False)


@app.command()
def serve() -> None:
    """Start the MCP server (stdio transport)."""
    from hypertree.mcp.server import run_mcp_server

    run_mcp_server()
