"""Real-time CLI dashboard for proxy monitoring."""

from datetime import datetime
from threading import Lock

from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from core.config import Config
from core.request_types import Exchange
from ui.log_utils import submit_log, write_cli_log, write_exchange_log

console = Console()


class ExchangeInfo:
    """Info about a single proxied request."""

    def __init__(self, exchange: Exchange):
        self.id = exchange.id
        self.method = exchange.method
        self.path = exchange.path[:60] + "..." if len(exchange.path) > 60 else exchange.path
        self.route = exchange.prefix
        self.status_code = exchange.status_code
        self.elapsed_ms = exchange.elapsed_ms
        self.truncated = exchange.truncated
        self.timestamp = datetime.now()


class Dashboard:
    """Real-time dashboard showing per-route traffic and recent errors."""

    def __init__(self, config: Config):
        self.config = config
        self._lock = Lock()
        self._recent: list[ExchangeInfo] = []
        self._max_recent = 10
        self._request_count = {route.prefix: 0 for route in config.routes}
        self._unmatched_count = 0
        self._in_flight = 0
        self._errors: list[str] = []
        self._live: Live | None = None

    def start(self) -> "Dashboard":
        """Start the live dashboard."""
        self._live = Live(
            self._build_layout(),
            console=console,
            refresh_per_second=4,
            screen=False,
        )
        self._live.start()
        return self

    def stop(self) -> None:
        """Stop the live dashboard."""
        if self._live:
            self._live.stop()

    def on_request(self, exchange: Exchange) -> None:
        with self._lock:
            self._request_count[exchange.prefix] = self._request_count.get(exchange.prefix, 0) + 1
            self._in_flight += 1
            self._refresh()
        submit_log(
            write_cli_log,
            "REQUEST",
            f"{exchange.method} {exchange.path}",
            id=exchange.id,
            upstream=exchange.upstream_url,
        )

    def on_response(self, exchange: Exchange) -> None:
        with self._lock:
            self._in_flight -= 1
            self._remember(exchange)
            self._refresh()
        submit_log(
            write_cli_log,
            "RESPONSE",
            f"{exchange.status_code} {exchange.method} {exchange.path}",
            id=exchange.id,
        )
        submit_log(write_exchange_log, exchange)

    def on_error(self, exchange: Exchange, message: str) -> None:
        """Log a failed forward."""
        with self._lock:
            self._in_flight -= 1
            self._remember(exchange)
            self._push_error(f"{exchange.method} {exchange.path}: {message}")
            self._refresh()
        submit_log(write_cli_log, "ERROR", message[:200], id=exchange.id, path=exchange.path)
        submit_log(write_exchange_log, exchange, error=message)

    def on_stream_error(self, exchange: Exchange, message: str) -> None:
        with self._lock:
            for info in self._recent:
                if info.id == exchange.id:
                    info.truncated = True
            self._push_error(f"truncated {exchange.path}: {message}")
            self._refresh()
        submit_log(write_cli_log, "TRUNCATED", message[:200], id=exchange.id, path=exchange.path)
        submit_log(write_exchange_log, exchange, error=message)

    def on_unmatched(self, method: str, path: str) -> None:
        with self._lock:
            self._unmatched_count += 1
            self._refresh()
        submit_log(write_cli_log, "UNMATCHED", f"{method} {path}")

    def _remember(self, exchange: Exchange) -> None:
        self._recent.insert(0, ExchangeInfo(exchange))
        self._recent = self._recent[: self._max_recent]

    def _push_error(self, text: str) -> None:
        truncated = text[:70] + "..." if len(text) > 70 else text
        self._errors.insert(0, truncated)
        self._errors = self._errors[:3]

    def _refresh(self) -> None:
        """Refresh the display."""
        if self._live:
            self._live.update(self._build_layout())

    def _build_layout(self) -> Layout:
        """Build the dashboard layout."""
        layout = Layout()

        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="body"),
            Layout(name="footer", size=5),
        )

        layout["header"].update(self._build_header())
        layout["body"].update(self._build_exchanges_panel())
        layout["footer"].update(self._build_footer())

        return layout

    def _build_header(self) -> Panel:
        """Build header with stats."""
        stats = Text()
        stats.append("Peloton API Proxy", style="bold cyan")
        for prefix, count in self._request_count.items():
            stats.append("  |  ")
            stats.append(f"{prefix}: {count}", style="blue")
        stats.append("  |  ")
        stats.append(f"unmatched: {self._unmatched_count}", style="yellow")
        stats.append("  |  ")
        stats.append(f"in flight: {self._in_flight}", style="magenta")
        stats.append("  |  ")
        stats.append(f"Port: {self.config.proxy.port}", style="dim")

        return Panel(stats, style="cyan")

    def _build_exchanges_panel(self) -> Panel:
        """Build the recent exchanges table."""
        if self._recent:
            table = Table(show_header=True, header_style="bold", expand=True, box=None)
            table.add_column("Time", style="dim", width=8)
            table.add_column("Route", width=8)
            table.add_column("Method", width=7)
            table.add_column("Path", ratio=3)
            table.add_column("Status", width=6)
            table.add_column("ms", width=8, justify="right")

            for info in self._recent:
                failed = info.status_code is None or info.status_code >= 500
                status_style = "red" if failed else "green"
                status = str(info.status_code) if info.status_code else "ERR"
                table.add_row(
                    info.timestamp.strftime("%H:%M:%S"),
                    info.route,
                    info.method,
                    info.path + (" [red](cut)[/red]" if info.truncated else ""),
                    f"[{status_style}]{status}[/{status_style}]",
                    f"{info.elapsed_ms:.0f}",
                )

            content = table
        else:
            content = Text("Waiting for requests...", style="dim")

        return Panel(content, title="[blue]Recent requests[/blue]", border_style="blue")

    def _build_footer(self) -> Panel:
        """Build footer with errors and help."""
        if self._errors:
            error_text = Text()
            for err in self._errors:
                error_text.append("! ", style="red bold")
                error_text.append(err + "\n", style="red")
            content = error_text
        else:
            upstream = self.config.upstream
            content = Text(
                f"Forwarding to {upstream.scheme}://{upstream.host} "
                f"on http://{self.config.proxy.host}:{self.config.proxy.port}",
                style="dim",
            )

        return Panel(content, title="[dim]Status[/dim]", border_style="dim")
