"""Plain line-per-event output for running without the dashboard."""

from rich.console import Console

from core.request_types import Exchange
from ui.log_utils import submit_log, write_cli_log, write_exchange_log


class ConsoleLog:
    """Print each proxy event as one line and mirror it to the log files."""

    def __init__(self, console: Console | None = None):
        self._console = console or Console()

    def on_request(self, exchange: Exchange) -> None:
        self._console.print(
            f"[cyan]->[/cyan] {exchange.method} {exchange.path} "
            f"[dim]=> {exchange.upstream_url}[/dim]"
        )
        submit_log(write_cli_log, "REQUEST", f"{exchange.method} {exchange.path}", id=exchange.id)

    def on_response(self, exchange: Exchange) -> None:
        style = "red" if exchange.status_code >= 500 else "green"
        self._console.print(
            f"[{style}]<-[/{style}] {exchange.status_code} {exchange.method} {exchange.path} "
            f"[dim]{exchange.elapsed_ms:.0f}ms[/dim]"
        )
        submit_log(write_exchange_log, exchange)

    def on_error(self, exchange: Exchange, message: str) -> None:
        self._console.print(f"[red]![/red] {exchange.method} {exchange.path}: {message}")
        submit_log(write_cli_log, "ERROR", message[:200], id=exchange.id, path=exchange.path)
        submit_log(write_exchange_log, exchange, error=message)

    def on_stream_error(self, exchange: Exchange, message: str) -> None:
        self._console.print(f"[red]![/red] stream cut for {exchange.path}: {message}")
        submit_log(write_cli_log, "TRUNCATED", message[:200], id=exchange.id)
        submit_log(write_exchange_log, exchange, error=message)

    def on_unmatched(self, method: str, path: str) -> None:
        self._console.print(f"[yellow]?[/yellow] unmatched route {method} {path}")
        submit_log(write_cli_log, "UNMATCHED", f"{method} {path}")
