"""Main CLI application - ties all commands together.

This is the entry point for the flitevault CLI.
"""

from typing import Annotated

import typer

from flitevault.cli.common import ELECTRIC_PURPLE, NEON_CYAN, console
from flitevault.cli.snapshot import backup, inspect, restore
from flitevault.config import settings
from flitevault.logging import configure_logging

app = typer.Typer(
    name="flitevault",
    help="FliteVault - snapshot export and restore for the b4flite crew portal",
    add_completion=False,
    no_args_is_help=True,
)

app.command("backup")(backup)
app.command("restore")(restore)
app.command("inspect")(inspect)


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", "-h", help="Host to bind to"),
    port: int | None = typer.Option(None, "--port", "-p", help="Port to listen on"),
) -> None:
    """Start the admin HTTP API."""
    import uvicorn

    from flitevault.api.app import create_api_app

    host = host or settings.server_host
    port = port or settings.server_port
    console.print(
        f"[{ELECTRIC_PURPLE}]Starting FliteVault API[/{ELECTRIC_PURPLE}] "
        f"[{NEON_CYAN}]http://{host}:{port}/docs[/{NEON_CYAN}]"
    )
    config = uvicorn.Config(
        create_api_app(),
        host=host,
        port=port,
        log_level="warning",
        access_log=False,
    )
    uvicorn.Server(config).run()


@app.callback()
def main_callback(
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Show debug logging")
    ] = False,
    json_logs: Annotated[bool, typer.Option("--json-logs", help="Emit JSON log lines")] = False,
) -> None:
    """Configure logging before any command runs."""
    configure_logging(
        service_name="cli",
        level="DEBUG" if verbose else settings.log_level,
        json_output=json_logs,
    )


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
