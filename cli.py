"""CLI entry point for pelo-proxy."""

import sys
from datetime import datetime

from rich.console import Console
from rich.table import Table

from app import create_app
from core.config import CONFIG_FILE, Config, load_config
from core.exceptions import ConfigurationError
from core.router import RouteTable, build_target
from ui.console_log import ConsoleLog
from ui.dashboard import Dashboard
from ui.log_utils import clear_logs, shutdown_log_executor, write_cli_log

console = Console()


def main():
    """Main CLI entry point."""
    config = load_config()
    use_dashboard = config.proxy.dashboard

    # Handle CLI arguments
    if len(sys.argv) > 1:
        arg = sys.argv[1]

        if arg == "--config":
            console.print(f"[bold]Config:[/bold] {CONFIG_FILE}")
            return

        if arg == "--routes":
            _print_routes(config)
            return

        if arg == "--no-dashboard":
            use_dashboard = False

        elif arg in ("--help", "-h"):
            _print_help()
            return

        else:
            console.print(f"[red][ERROR][/red] Unknown option: {arg}")
            _print_help()
            sys.exit(2)

    observer = Dashboard(config) if use_dashboard else ConsoleLog(console)
    try:
        app = create_app(config, observer)
    except ConfigurationError as e:
        console.print(f"[red][ERROR][/red] {e}")
        console.print(f"[dim]Edit {CONFIG_FILE} and fix the routes section[/dim]")
        sys.exit(1)

    # Clear previous logs
    clear_logs()

    import uvicorn

    uvicorn_config = uvicorn.Config(
        app,
        host=config.proxy.host,
        port=config.proxy.port,
        log_level="warning",
        timeout_keep_alive=config.limits.keep_alive_timeout,
    )
    server = uvicorn.Server(uvicorn_config)

    if isinstance(observer, Dashboard):
        observer.start()
    start_time = datetime.now()
    write_cli_log(
        "STARTUP",
        "Proxy started",
        port=config.proxy.port,
        upstream=build_target(config).base_url,
    )
    try:
        server.run()
    finally:
        duration = datetime.now() - start_time
        write_cli_log("SHUTDOWN", "Proxy stopped", duration=str(duration))
        shutdown_log_executor()
        if isinstance(observer, Dashboard):
            observer.stop()


def _print_routes(config: Config):
    """Print the route table."""
    try:
        table = RouteTable.from_config(config)
    except ConfigurationError as e:
        console.print(f"[red][ERROR][/red] {e}")
        sys.exit(1)

    target = build_target(config)
    view = Table(title=f"Routes -> {target.base_url}")
    view.add_column("Prefix", style="bold")
    view.add_column("Example")
    view.add_column("Forced headers")
    for route in table.routes:
        example = route.prefix + "/example"
        view.add_row(
            route.prefix,
            f"{example} -> {target.url_for(route.path_rewrite(example))}",
            ", ".join(f"{k}: {v}" for k, v in route.forced_headers.items()),
        )
    console.print(view)


def _print_help():
    """Print help message."""
    help_text = """
[bold cyan]Peloton API Proxy[/bold cyan]

Forwards /api/* and /auth/* to the Peloton API with browser-friendly cookies.

[bold]Usage:[/bold]
    pelo-proxy                  Start with live dashboard
    pelo-proxy --no-dashboard   Start with one log line per request
    pelo-proxy --routes         Show the route table
    pelo-proxy --config         Show config location
    pelo-proxy --help           Show this help
"""
    console.print(help_text)


if __name__ == "__main__":
    main()
