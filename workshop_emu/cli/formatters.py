"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from workshop_emu.models.config import EmuConfig
from workshop_emu.models.item import Item, ItemState
from workshop_emu.models.result import InstallResult

STATE_STYLES = {
    ItemState.NONE: "dim",
    ItemState.SUBSCRIBED: "cyan",
    ItemState.INSTALLING: "yellow",
    ItemState.INSTALLED: "green",
}


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ConfigurationError": [
            "• Run `workshop-emu init` to create a configuration file.",
            "• Run `workshop-emu validate` to see which setting is rejected.",
        ],
        "InvalidItemIdError": [
            "• Pass a numeric item ID or a workshop URL containing `?id=<number>`.",
        ],
        "ClientResponseError": [
            "• The download service returned an error.",
            "• The service might be temporarily unavailable.",
            "• Please try again in a few minutes.",
        ],
        "TimeoutError": [
            "• A request to the download service timed out.",
            "• Check your internet connection.",
            "• Raise `request_timeout` in the configuration file.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    suggestion_text = Text("\n".join(suggestions))

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(suggestion_text)

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration."""
    console = Console()
    content = "\n".join(f"{key} = {value}" for key, value in config_data.items())
    console.print(
        Panel(
            content,
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_validation_table(config: EmuConfig):
    """Displays a summary of the current settings."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    table.add_row("Items Path:", f"[dim]{config.items_path}[/dim]")
    table.add_row("Service:", config.api_base_url)
    table.add_row("Download Format:", config.download_format)
    table.add_row("Stall Timeout:", f"{config.stall_timeout:g}s")
    table.add_row("Request Timeout:", f"{config.request_timeout:g}s")
    table.add_row("Poll Interval:", f"{config.poll_interval:g}s")
    table.add_row("Max Concurrent Installs:", str(config.max_concurrent_installs))

    console.print(
        Panel(
            table,
            title="[bold green]✓ Validated Settings[/bold green]",
            border_style="green",
        )
    )


def print_items_table(items: list[Item]):
    """Displays every known item with its state and install path."""
    console = Console()
    if not items:
        console.print("[yellow]No installed items found.[/yellow]")
        return

    table = Table(box=box.SIMPLE_HEAVY, header_style="bold cyan")
    table.add_column("Item ID", justify="right")
    table.add_column("State")
    table.add_column("Path", style="dim")

    for item in items:
        style = STATE_STYLES.get(item.state, "white")
        table.add_row(
            str(item.id), f"[{style}]{item.state.value}[/{style}]", str(item.path)
        )

    console.print(table)
    console.print(f"[dim]{len(items)} item(s)[/dim]")


def print_install_summary(results: dict[int, InstallResult]):
    """Displays the outcome of every install requested in this session."""
    console = Console()
    table = Table(box=box.ROUNDED, header_style="bold cyan", title="Install Summary")
    table.add_column("Item ID", justify="right")
    table.add_column("Result")
    table.add_column("App ID", justify="right")
    table.add_column("Details", style="dim")

    succeeded = 0
    for item_id, result in results.items():
        if result.success:
            succeeded += 1
            outcome = "[green]✓ installed[/green]"
            details = str(result.path) if result.path else ""
        else:
            outcome = "[red]✗ failed[/red]"
            details = result.failure.value if result.failure else ""
        table.add_row(str(item_id), outcome, str(result.app_id or "-"), details)

    console.print(table)
    failed = len(results) - succeeded
    summary_style = "green" if not failed else "yellow"
    console.print(
        f"[{summary_style}]{succeeded} installed, {failed} failed.[/{summary_style}]"
    )
