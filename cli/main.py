from pathlib import Path
import typer
from rich.console import Console
from codectx.config import get_settings
from codectx.utils.log import configure_logging

app = typer.Typer(add_completion=False, rich_markup_mode="rich")
console = Console(highlight=False)

@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
    config: Path = typer.Option(
        None, "--config", "-c", exists=True, file_okay=True, dir_okay=False,
        help="Path to .codectx.yml (overrides env)"
    ),
):
    """
    :mag: [bold cyan]codectx[/bold cyan] - code context retrieval for LLM prompts
    """
    settings = get_settings(config_path=config)
    configure_logging("DEBUG" if verbose else settings.log_level)
    ctx.obj = settings
    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())

# Sub-commands imported lazily to cut startup time
from importlib import import_module

for _cmd in ("index", "retrieve", "catalog"):
    mod = import_module(f"cli.commands.{_cmd}")
    app.command(name=_cmd)(mod.command)
