# CLI command for querying the indexes
import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax

from codectx.embeddings import get_embeddings_provider
from codectx.errors import RetrievalCancelled, StorageUnavailable
from codectx.retrieval import RetrievalOrchestrator, Workspace
from codectx.schema import RetrieveOption

console = Console()


async def _retrieve(settings, query: str, path: Path, options: RetrieveOption):
    workspace = await Workspace.detect(path)
    orchestrator = RetrievalOrchestrator.from_settings(
        settings, with_semantic=options.with_semantic_search
    )
    return await orchestrator.retrieve(query, workspace, get_embeddings_provider(settings), options)


def command(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="What to look for"),
    path: Path = typer.Option(Path("."), "--path", "-p", exists=True, file_okay=False,
                              help="Workspace to search"),
    directory: Optional[str] = typer.Option(None, "--dir", "-d", help="Only results under this directory"),
    language: Optional[str] = typer.Option(None, "--lang", "-l", help="Only results in this language"),
    fts: bool = typer.Option(True, "--fts/--no-fts", help="Use full-text search"),
    semantic: bool = typer.Option(True, "--semantic/--no-semantic", help="Use semantic search"),
    commits: bool = typer.Option(False, "--commits", help="Also search commit messages"),
    as_json: bool = typer.Option(False, "--json", help="Print context items as JSON"),
):
    """Retrieve context items for a query"""
    settings = ctx.obj
    options = RetrieveOption(
        filter_directory=directory,
        filter_language=language,
        with_full_text_search=fts,
        with_semantic_search=semantic,
        with_commit_message_search=commits,
    )
    try:
        items = asyncio.run(_retrieve(settings, query, path, options))
    except (StorageUnavailable, RetrievalCancelled) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if as_json:
        print(json.dumps([item.model_dump() for item in items], indent=2))
        return

    if not items:
        console.print("No results.")
        return
    for item in items:
        lexer = "diff" if item.name.startswith("commit ") else Syntax.guess_lexer(item.path, item.content)
        console.print(Panel(Syntax(item.content, lexer, line_numbers=False), title=item.name,
                            subtitle=item.description, expand=False))
