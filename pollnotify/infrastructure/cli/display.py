from datetime import datetime, timezone
from typing import Any, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from pollnotify.domain.interfaces.user_interface import UserInterface
from pollnotify.domain.models.farcaster import APIMessage, Userdata
from pollnotify.domain.models.notification import DispatchResult


def _format_ts(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


class ConsoleDisplay(UserInterface):
    """Concrete implementation of UserInterface using the rich library for console output."""

    def __init__(self, console: Console = None):
        self._console = console or Console()

    @property
    def console(self) -> Console:
        return self._console

    def display_info(self, info_message: str, **kwargs: Any) -> None:
        self.console.print(f"[cyan]{info_message}[/cyan]")

    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        self.console.print(f"[yellow]Warning:[/yellow] {warning_message}")

    def display_error(self, error_message: str, **kwargs: Any) -> None:
        self.console.print(f"[bold red]Error:[/bold red] {error_message}")

    def display_userdata(self, userdata: Userdata) -> None:
        lines = [
            f"[bold]FID:[/bold] {userdata.fid}",
            f"[bold]Custody:[/bold] {userdata.custody_address or '-'}",
            f"[bold]Verifications:[/bold] {', '.join(userdata.verification_addresses) or '-'}",
            f"[bold]Signers:[/bold] {', '.join(userdata.signers) or '-'}",
        ]
        self.console.print(Panel("\n".join(lines), title=f"@{userdata.username}", title_align="left"))

    def display_mentions(self, mentions: List[APIMessage], last_timestamp: int) -> None:
        if not mentions:
            self.display_info("No new mentions.")
        else:
            table = Table(title=f"Mentions ({len(mentions)})")
            table.add_column("Time", style="dim")
            table.add_column("Author FID", justify="right")
            table.add_column("Hash", style="dim")
            table.add_column("Text")
            for mention in mentions:
                table.add_row(_format_ts(mention.timestamp), str(mention.author), mention.hash, mention.content)
            self.console.print(table)
        self.display_info(f"Resume from timestamp {last_timestamp}")

    def display_dispatch_result(self, result: DispatchResult) -> None:
        if result.skipped:
            self.display_error(f"Dispatch cycle skipped: {result.first_error}")
            return
        summary = f"Fetched {result.fetched}, delivered {result.delivered}, failed {result.failed}."
        if result.ok:
            self.console.print(f"[green]{summary}[/green]")
        else:
            self.console.print(f"[yellow]{summary}[/yellow]")
            self.display_error(str(result.first_error))
