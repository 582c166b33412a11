"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from workshop_emu import __version__
from workshop_emu.api.client import WorkshopAPIClient
from workshop_emu.core.notifications import ConsoleNotificationBridge
from workshop_emu.core.orchestrator import DownloadOrchestrator
from workshop_emu.core.registry import ItemRegistry
from workshop_emu.exceptions import InvalidItemIdError, WorkshopEmuError
from workshop_emu.models.config import EmuConfig
from workshop_emu.models.result import InstallResult
from workshop_emu.storage.config_manager import ConfigManager
from workshop_emu.utils.path import parse_item_reference

from .formatters import (
    print_config,
    print_install_summary,
    print_items_table,
    print_validation_table,
)

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("workshop_emu")

app = typer.Typer(
    name="workshop-emu",
    help=(
        "Subscribe to, download and install workshop items on demand. Use"
        " 'workshop-emu <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "workshop-emu"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
):
    """Workshop item installer CLI"""
    if version:
        console.print(
            f"[bold]workshop-emu[/bold] version [cyan]{__version__}[/cyan]"
        )
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("workshop_emu").setLevel(log_level)

    if show_config:
        if not CONFIG_FILE.is_file():
            console.print(
                "[red]✗ Config file not found.[/] Run [cyan]workshop-emu init[/cyan]"
                " first."
            )
            raise typer.Exit(code=1)
        config_manager = ConfigManager(CONFIG_FILE)
        config = config_manager.load_config()
        print_config(CONFIG_FILE, config.model_dump(exclude={"config_path"}))
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    items_path: Path | None = typer.Option(
        None,
        "--items-path",
        "-p",
        help="Directory that holds installed items (default: <config dir>/items).",
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration file."
    ),
):
    """Create a configuration file with default settings."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    config_manager = ConfigManager(CONFIG_FILE)
    settings = {}
    if items_path:
        settings["items_path"] = str(items_path.expanduser().resolve())
    config_manager.save_new_config(settings)
    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    console.print("Ready! Try: [cyan]workshop-emu install <ITEM ID or URL>[/cyan]")


def _read_refs_from_stdin() -> list[str]:
    """Reads item IDs or URLs from stdin, one per line."""
    if sys.stdin.isatty():
        console.print(
            "[yellow]⚠️  No input detected on stdin. Please pipe item IDs or"
            " redirect a file.[/yellow]"
        )
        raise typer.Exit(code=1)

    refs = []
    console.print("[dim]Reading item references from stdin...[/dim]")
    try:
        for line in sys.stdin:
            line = line.strip()
            if line and not line.startswith("#"):
                refs.append(line)
    except KeyboardInterrupt:
        console.print("\n[yellow]⚠️  Input interrupted.[/yellow]")
        raise typer.Exit(code=1) from None

    return refs


def resolve_item_ids(refs: list[str]) -> list[int]:
    """
    Turns item references into unique item IDs, preserving order.

    Raises:
        InvalidItemIdError: If no reference resolves to an item ID.
    """
    item_ids = []
    for ref in refs:
        item_id = parse_item_reference(ref)
        if item_id is None:
            log.warning(f"[yellow]Skipping invalid item reference: {ref}[/yellow]")
            continue
        item_ids.append(item_id)

    if not item_ids:
        raise InvalidItemIdError("No valid item IDs were provided.")
    return list(dict.fromkeys(item_ids))


def _load_config(cli_options: dict | None = None) -> EmuConfig:
    return ConfigManager(CONFIG_FILE).load_config(cli_options)


def _build_registry(
    config: EmuConfig, api_client: WorkshopAPIClient
) -> ItemRegistry:
    orchestrator = DownloadOrchestrator(config, api_client)
    return ItemRegistry(config, orchestrator, ConsoleNotificationBridge(console))


@app.command(name="install")
def install_command(
    refs: list[str] | None = typer.Argument(  # noqa: B008
        None, help="Item IDs or workshop URLs containing '?id=<number>'."
    ),
    workers: int | None = typer.Option(
        None,
        "-w",
        "--workers",
        help="Number of simultaneous installs (overrides the config).",
    ),
    stall_timeout: float | None = typer.Option(
        None,
        "--stall-timeout",
        help="Seconds without job progress before an install is abandoned.",
    ),
    stdin: bool = typer.Option(
        False, "--stdin", help="Read item references from standard input."
    ),
):
    """Download and install workshop items."""
    if stdin:
        refs = (refs or []) + _read_refs_from_stdin()
    if not refs:
        console.print(
            "[red]✗ No items provided.[/red] "
            "Use: [cyan]workshop-emu install <ID>[/cyan] or [cyan]--stdin[/cyan]"
        )
        raise typer.Exit(code=1)

    cli_options = {
        key: value
        for key, value in {
            "max_concurrent_installs": workers,
            "stall_timeout": stall_timeout,
        }.items()
        if value is not None
    }

    try:
        item_ids = resolve_item_ids(refs)
        config = _load_config(cli_options)
    except WorkshopEmuError as e:
        console.print(f"[bold red]Error: {e}[/bold red]")
        raise typer.Exit(code=1) from e

    async def _install_async() -> dict[int, InstallResult]:
        api_client = WorkshopAPIClient(config)
        try:
            registry = _build_registry(config, api_client)
            console.print(
                f"[bold cyan]Installing {len(item_ids)} item(s)...[/bold cyan]"
            )
            results = await asyncio.gather(
                *(registry.install(item_id) for item_id in item_ids)
            )
            return dict(zip(item_ids, results))
        finally:
            await api_client.close()

    results = asyncio.run(_install_async())
    print_install_summary(results)
    if not all(result.success for result in results.values()):
        raise typer.Exit(code=1)


@app.command(name="remove")
def remove_command(
    refs: list[str] = typer.Argument(  # noqa: B008
        ..., help="Item IDs or workshop URLs to unsubscribe from."
    ),
):
    """Unsubscribe from items and delete their local files."""
    try:
        item_ids = resolve_item_ids(refs)
        config = _load_config()
    except WorkshopEmuError as e:
        console.print(f"[bold red]Error: {e}[/bold red]")
        raise typer.Exit(code=1) from e

    async def _remove_async():
        api_client = WorkshopAPIClient(config)
        try:
            registry = _build_registry(config, api_client)
            for item_id in item_ids:
                if await registry.unsubscribe(item_id):
                    console.print(f"[green]✓ Removed item {item_id}.[/green]")
                else:
                    console.print(f"[yellow]○ Item {item_id} is not installed.[/yellow]")
        finally:
            await api_client.close()

    asyncio.run(_remove_async())


@app.command(name="list")
def list_command():
    """List installed items."""
    try:
        config = _load_config()
    except WorkshopEmuError as e:
        console.print(f"[bold red]Error: {e}[/bold red]")
        raise typer.Exit(code=1) from e

    registry = _build_registry(config, WorkshopAPIClient(config))
    print_items_table(registry.items())


@app.command()
def validate():
    """Validate the current configuration."""
    try:
        config = _load_config()
        print_validation_table(config)
    except WorkshopEmuError as e:
        console.print(f"[red]✗ Configuration is invalid: {e}[/red]")
        raise typer.Exit(code=1) from e
