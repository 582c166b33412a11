"""
The outbound interface through which the registry reports lifecycle events
to the host integration layer.
"""

from typing import Optional, Protocol

from rich.console import Console


class NotificationBridge(Protocol):
    """Implemented by whatever presents the registry to the host application."""

    def notify_subscribed(self, item_id: int) -> None: ...

    def notify_download_result(
        self, item_id: int, success: bool, app_id: Optional[int]
    ) -> None: ...


class NullNotificationBridge:
    """Discards every notification."""

    def notify_subscribed(self, item_id: int) -> None:
        pass

    def notify_download_result(
        self, item_id: int, success: bool, app_id: Optional[int]
    ) -> None:
        pass


class ConsoleNotificationBridge:
    """Reports lifecycle events on a Rich console. Used by the CLI."""

    def __init__(self, console: Console):
        self.console = console

    def notify_subscribed(self, item_id: int) -> None:
        self.console.print(f"[cyan]○ Subscribed to item {item_id}.[/cyan]")

    def notify_download_result(
        self, item_id: int, success: bool, app_id: Optional[int]
    ) -> None:
        owner = f" [dim](app {app_id})[/dim]" if app_id else ""
        if success:
            self.console.print(
                f"[green]✓ Install successful for item {item_id}.[/green]{owner}"
            )
        else:
            self.console.print(f"[red]✗ Install error for item {item_id}.[/red]{owner}")
