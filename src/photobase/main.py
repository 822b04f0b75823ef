"""
Photobase - CLI Entry Point.

Usage:
    photobase serve          Start the HTTP API
    photobase maintenance    Run scheduled maintenance once
    photobase health         Check configuration
    photobase db             Check the SQL channel
    photobase tables         List accessible tables
    photobase procedures     List RPC procedures
"""

import asyncio
import json
import logging

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="photobase",
    help="Photobase - data access layer for the photo booking and album service.",
    add_completion=False,
)
console = Console()


def _configure_logging() -> None:
    from photobase.config import settings

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def health() -> None:
    """Check system health and configuration."""
    from photobase.config import get_settings

    console.print("\n[bold]Photobase Health Check[/bold]\n")

    try:
        settings = get_settings()
        console.print("[green]OK[/green] Configuration loaded")
        console.print(f"   Environment: {settings.photobase_env}")
        console.print(f"   Log level: {settings.log_level}")

        if settings.sql_endpoint.startswith(("http://", "https://")):
            console.print("[green]OK[/green] SQL endpoint configured")
        else:
            console.print("[red]FAIL[/red] SQL endpoint missing or invalid")

        if settings.supabase_url and settings.supabase_service_role_key:
            console.print("[green]OK[/green] Supabase storage and auth configured")
        else:
            console.print("[yellow]WARN[/yellow] Supabase not configured: tokens and asset deletion unavailable")

        if settings.cron_secret:
            console.print("[green]OK[/green] Cron secret configured")
        else:
            console.print("[dim]INFO[/dim] Cron secret not set, /api/cron/maintenance is disabled")

        console.print("\n[green]All checks passed![/green]")

    except Exception as e:
        console.print(f"\n[red]FAIL Configuration error: {e}[/red]")
        console.print("[dim]Make sure you have a .env file with SQL_ENDPOINT and SQL_DATABASE.[/dim]")
        raise typer.Exit(1)


@app.command()
def version() -> None:
    """Show version information."""
    from photobase import __version__

    console.print(f"Photobase version {__version__}")


@app.command()
def serve(
    port: int = typer.Option(8000, "--port", "-p", help="Port to run on"),
    reload: bool = typer.Option(False, "--reload", "-r", help="Enable auto-reload for development"),
) -> None:
    """Start the HTTP API server."""
    import os

    import uvicorn

    _configure_logging()
    actual_port = int(os.environ.get("PORT", port))

    console.print("\n[bold green]Photobase API[/bold green]")
    console.print(f"Starting server on http://localhost:{actual_port}")
    console.print("[dim]Press Ctrl+C to stop[/dim]\n")

    uvicorn.run(
        "photobase.web.app:app",
        host="0.0.0.0",
        port=actual_port,
        reload=reload,
    )


@app.command()
def maintenance() -> None:
    """Run scheduled maintenance once, as the system identity."""
    from photobase.identity import CallerIdentity
    from photobase.rpc import execute_rpc

    _configure_logging()
    result = asyncio.run(execute_rpc("run_maintenance_tasks", {}, CallerIdentity.system()))

    if result.error:
        console.print(f"[red]FAIL[/red] {result.error.message}")
        raise typer.Exit(1)

    console.print("[green]OK[/green] Maintenance complete")
    console.print_json(json.dumps(result.data, default=str))


@app.command()
def db() -> None:
    """Check the SQL channel."""
    from photobase.db import executor

    console.print("\n[bold]SQL Channel Check[/bold]\n")

    try:
        value = asyncio.run(executor.fetch_scalar("SELECT 1 AS value"))
        if value != 1:
            raise RuntimeError(f"unexpected result: {value!r}")
        console.print("[green]OK[/green] SQL endpoint reachable")
    except Exception as e:
        console.print(f"[red]FAIL SQL channel check failed: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def tables() -> None:
    """List the tables the query engine may reference."""
    from photobase.db.metadata import allowed_tables, get_metadata
    from photobase.query.permissions import TABLE_RULES

    table = Table(title="Accessible tables")
    table.add_column("Table")
    table.add_column("Primary key")
    table.add_column("Columns", justify="right")
    table.add_column("Non-admin access")

    for name in allowed_tables():
        metadata = get_metadata(name)
        rule = TABLE_RULES.get(name)
        if rule is None:
            access = "[dim]admin only[/dim]"
        elif rule.rpc_only:
            access = f"rpc: {rule.rpc_only}"
        else:
            access = ", ".join(sorted(rule.actions))
        table.add_row(
            name,
            f"{metadata.primary_key or '-'} ({metadata.primary_key_kind})",
            str(len(metadata.columns)),
            access,
        )

    console.print(table)


@app.command()
def procedures() -> None:
    """List the RPC catalog."""
    from photobase.rpc import PROCEDURES, procedure_names
    from photobase.rpc.registry import PROCEDURE_ACCESS

    console.print("\n[bold]RPC Procedures[/bold]\n")
    for name in procedure_names():
        doc = (PROCEDURES[name].__doc__ or "").strip().splitlines()
        summary = doc[0] if doc else ""
        label = f"{name} [dim]({PROCEDURE_ACCESS[name]})[/dim]"
        console.print(f"  • {label}: {summary}" if summary else f"  • {label}")

    console.print(f"\n[dim]Total: {len(PROCEDURES)} procedures[/dim]")


if __name__ == "__main__":
    app()
