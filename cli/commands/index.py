# CLI command for building / refreshing the indexes of a workspace
import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from codectx.catalog import get_catalog_store
from codectx.embeddings import get_embeddings_provider
from codectx.errors import StorageUnavailable
from codectx.indexing import CodebaseIndexer
from codectx.retrieval import Workspace
from codectx.search import ChromaSemanticIndex, FullTextSearchIndex

console = Console()


async def _refresh(settings, path: Path, force: bool, semantic: bool):
    workspace = await Workspace.detect(path)
    embeddings = get_embeddings_provider(settings) if semantic else None
    indexer = CodebaseIndexer(
        catalog=get_catalog_store(settings.catalog_path),
        fts=FullTextSearchIndex(settings.fts_path),
        semantic=ChromaSemanticIndex(settings.embeddings_dir) if semantic else None,
        embeddings=embeddings,
        settings=settings,
    )
    return workspace, await indexer.refresh(workspace, force=force)


def command(
    ctx: typer.Context,
    path: Path = typer.Argument(Path("."), exists=True, file_okay=False, help="Workspace to index"),
    force: bool = typer.Option(False, "--force", "-f", help="Rebuild even if the cache key is unchanged"),
    semantic: bool = typer.Option(True, "--semantic/--no-semantic", help="Also build the vector index"),
):
    """Index a workspace for full-text and semantic retrieval"""
    settings = ctx.obj
    try:
        workspace, reports = asyncio.run(_refresh(settings, path, force, semantic))
    except StorageUnavailable as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    table = Table(title=f"{workspace.root} @ {workspace.branch}")
    table.add_column("Artifact")
    table.add_column("Cache key")
    table.add_column("Files", justify="right")
    table.add_column("Chunks", justify="right")
    table.add_column("Changed", justify="right")
    table.add_column("Status")
    for report in reports:
        table.add_row(
            report.artifact_id,
            report.cache_key[:12],
            str(report.files),
            str(report.chunks),
            str(len(report.changed_paths)),
            "[green]rebuilt[/green]" if report.rebuilt else "[dim]up to date[/dim]",
        )
    console.print(table)
