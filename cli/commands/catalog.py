# CLI command for inspecting the index catalog
import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from codectx.catalog import get_catalog_store
from codectx.errors import StorageUnavailable

console = Console()


def command(
    ctx: typer.Context,
    path: Optional[Path] = typer.Argument(None, exists=True, file_okay=False,
                                          help="Only show artifacts built for this workspace"),
):
    """List the index artifacts recorded in the catalog"""
    settings = ctx.obj
    store = get_catalog_store(settings.catalog_path)
    directory = str(path.expanduser().resolve()) if path is not None else None
    try:
        entries = asyncio.run(store.list_global_cache(directory))
    except StorageUnavailable as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if not entries:
        console.print("Catalog is empty. Run [bold]codectx index[/bold] first.")
        return

    table = Table(title=str(settings.catalog_path))
    table.add_column("Directory")
    table.add_column("Branch")
    table.add_column("Artifact")
    table.add_column("Cache key")
    for entry in entries:
        table.add_row(entry.directory, entry.branch, entry.artifact_id, entry.cache_key[:12])
    console.print(table)
