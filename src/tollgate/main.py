"""Command-line interface for Tollgate.

Mostly a debugging aid: shows how a tool call would be classified and which
actions are known.
"""

import asyncio

import click
from rich.console import Console
from rich.table import Table
from rich import box

from tollgate import __version__
from tollgate.approval import (
    Classification,
    LayeredClassifier,
    classify_deterministic,
    default_registry,
)
from tollgate.approval.channel import RISK_COLORS
from tollgate.config import get_settings
from tollgate.logging import get_logger, setup_logging

logger = get_logger("tollgate.main")


def parse_args(pairs: tuple[str, ...]) -> dict[str, str]:
    """Turn ``key=value`` strings into an argument dict."""
    args: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected key=value, got '{pair}'", param_hint="--arg")
        args[key] = value
    return args


async def judge(tool_name: str, args: dict[str, str]) -> Classification:
    """Classify with rules and the judgment oracle, closing the oracle afterwards."""
    async with LayeredClassifier.default() as classifier:
        return await classifier.classify(tool_name, args)


def render_classification(console: Console, tool_name: str, result: Classification) -> None:
    color = RISK_COLORS[result.level]
    table = Table(box=box.SIMPLE, show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Tool", tool_name)
    table.add_row("Level", f"[{color}]{result.level.value}[/{color}]")
    table.add_row("Reason", result.reason)
    table.add_row("Source", "rules" if result.deterministic else "judgment")
    console.print(table)


@click.group()
@click.option("--debug", "-d", is_flag=True, help="Enable debug logging")
@click.option("--no-color", is_flag=True, help="Disable colored output")
@click.pass_context
def cli(ctx: click.Context, debug: bool, no_color: bool):
    """Tollgate - authorization pipeline for agent tool calls."""
    settings = get_settings()
    setup_logging(
        level="DEBUG" if debug else settings.tollgate_log_level,
        log_file=settings.tollgate_log_file,
    )
    logger.debug("Settings loaded", settings=settings.model_dump_safe())
    ctx.ensure_object(dict)
    ctx.obj["console"] = Console(no_color=no_color, highlight=False)


@cli.command()
@click.argument("tool_name")
@click.option("--command", "-c", default=None, help="Value of the 'command' argument")
@click.option("--path", "-p", default=None, help="Value of the 'path' argument")
@click.option("--arg", "-a", "extra", multiple=True, help="Extra argument as key=value")
@click.option("--rules-only", is_flag=True, help="Do not consult the judgment oracle")
@click.pass_context
def classify(
    ctx: click.Context,
    tool_name: str,
    command: str | None,
    path: str | None,
    extra: tuple[str, ...],
    rules_only: bool,
):
    """Show how a tool call would be classified."""
    console: Console = ctx.obj["console"]
    args = parse_args(extra)
    if command is not None:
        args["command"] = command
    if path is not None:
        args["path"] = path

    if rules_only:
        result = classify_deterministic(tool_name, args)
        if result is None:
            console.print("[yellow]No rule matched; this call would go to the judgment oracle.[/yellow]")
            return
    else:
        result = asyncio.run(judge(tool_name, args))

    render_classification(console, tool_name, result)


@cli.command()
@click.pass_context
def actions(ctx: click.Context):
    """List the built-in actions and their typical risk level."""
    console: Console = ctx.obj["console"]
    table = Table(title="Known actions", box=box.ROUNDED)
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    table.add_column("Default level")

    for action in default_registry().list_actions():
        color = RISK_COLORS[action.default_level]
        table.add_row(action.name, action.description, f"[{color}]{action.default_level.value}[/{color}]")

    console.print(table)


@cli.command()
def version():
    """Show version information."""
    click.echo(f"Tollgate version {__version__}")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
