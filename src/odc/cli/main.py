"""
CLI for the OData connector.

Commands:
    odc auth KEY - Validate and store an API key
    odc reset - Forget stored credentials and configuration
    odc tables - List tables published by the service
    odc configure TABLE - Select a table and cache TTL
    odc schema - Show fields of the selected table
    odc data [FIELD...] - Print rows of the selected table
    odc purge - Remove expired entries from the local cache
    odc config - Show current configuration
    odc version - Print version
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Annotated, Optional, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from odc import __version__
from odc.cache.kv_cache import SQLiteKVCache
from odc.config import Settings, clear_settings_cache, get_settings
from odc.connector.properties import PropertyStore
from odc.connector.service import Connector
from odc.logging import setup_logging
from odc.result import Err, Result

T = TypeVar("T")

app = typer.Typer(
    name="odc",
    help="OData connector - browse and cache tables from an OData service",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)


def _get_settings_safe() -> Settings | None:
    """Get settings, returning None if configuration is invalid."""
    try:
        clear_settings_cache()
        return get_settings()
    except Exception:
        return None


def _load_settings() -> Settings:
    settings = _get_settings_safe()
    if settings is None:
        error_console.print(
            "[red]Error:[/red] Configuration is invalid. "
            "Run 'odc config' to see what's wrong."
        )
        raise typer.Exit(1)
    settings.ensure_directories()
    setup_logging(settings.LOG_LEVEL, log_file=settings.CACHE_DIR / "odc.log")
    return settings


def _run(handler: Callable[[Connector], Awaitable[T]]) -> T:
    """Run a connector handler against the persistent cache and properties."""
    settings = _load_settings()

    async def runner() -> T:
        backend = SQLiteKVCache(
            settings.cache_db_path,
            max_entry_bytes=settings.CACHE_MAX_ENTRY_BYTES,
            max_ttl_seconds=settings.CACHE_MAX_TTL_SECONDS,
        )
        await backend.init()
        try:
            connector = Connector(
                settings=settings,
                properties=PropertyStore(settings.properties_path),
                backend=backend,
            )
            return await handler(connector)
        finally:
            await backend.close()

    return asyncio.run(runner())


def _unwrap(result: Result[T]) -> T:
    """Return the Ok value or print the error and exit."""
    if isinstance(result, Err):
        error_console.print(f"[red]Error:[/red] {result.message}")
        if result.debug and get_settings().DEBUG:
            error_console.print(f"[dim]{result.debug}[/dim]")
        raise typer.Exit(1)
    return result.value


@app.command()
def auth(
    key: Annotated[str, typer.Argument(help="API key for the OData service")],
    url: Annotated[
        Optional[str],
        typer.Option("--url", "-u", help="OData service root URL"),
    ] = None,
) -> None:
    """Validate and store an API key."""

    async def handler(connector: Connector) -> Result[None]:
        if url:
            connector.set_service_url(url)
        return await connector.set_credentials(key)

    _unwrap(_run(handler))
    console.print("[green]Credentials stored.[/green]")


@app.command()
def reset() -> None:
    """Forget stored credentials and configuration."""
    settings = _load_settings()
    PropertyStore(settings.properties_path).delete_all()
    console.print("[yellow]Authentication reset.[/yellow]")


@app.command()
def tables() -> None:
    """List tables published by the service."""
    names = _unwrap(_run(lambda connector: connector.configure()))
    for name in names:
        console.print(name)


@app.command()
def configure(
    table: Annotated[str, typer.Argument(help="Table (entity set) to use")],
    ttl: Annotated[
        Optional[int],
        typer.Option("--ttl", "-t", help="Cache TTL in minutes (0-60)"),
    ] = None,
) -> None:
    """Select a table and how long its data is cached."""
    _unwrap(_run(lambda connector: connector.configure(table, ttl)))
    console.print(f"[green]Using table[/green] {table}")


@app.command()
def schema() -> None:
    """Show fields of the selected table."""
    fields = _unwrap(_run(lambda connector: connector.get_schema()))

    table = Table(title="Fields", show_header=True)
    table.add_column("Field", style="cyan")
    table.add_column("Concept")
    table.add_column("Type", style="green")
    for field in fields:
        table.add_row(field.id, field.concept_type.value, field.data_type.value)
    console.print(table)


@app.command()
def data(
    fields: Annotated[
        Optional[list[str]],
        typer.Argument(help="Fields to include (default: all)"),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Maximum rows to print"),
    ] = 20,
) -> None:
    """Print rows of the selected table."""

    async def handler(connector: Connector) -> Result[dict]:
        field_ids = fields
        if not field_ids:
            result = await connector.get_schema()
            if isinstance(result, Err):
                return result
            field_ids = [f.id for f in result.value]
        return await connector.get_data(field_ids)

    response = _unwrap(_run(handler))

    table = Table(show_header=True)
    for field in response["schema"]:
        table.add_column(field["name"])
    for row in response["rows"][:limit]:
        table.add_row(*(str(v) for v in row["values"]))
    console.print(table)
    console.print(f"[dim]{len(response['rows'])} rows[/dim]")


@app.command()
def purge() -> None:
    """Remove expired entries from the local cache."""
    settings = _load_settings()

    async def runner() -> int:
        backend = SQLiteKVCache(settings.cache_db_path)
        await backend.init()
        try:
            return await backend.purge_expired()
        finally:
            await backend.close()

    removed = asyncio.run(runner())
    console.print(f"Removed {removed} expired cache entries.")


@app.command()
def config() -> None:
    """Show current configuration with the API key redacted."""
    console.print()
    settings = _get_settings_safe()
    if settings is None:
        error_console.print("[red]Configuration is invalid or incomplete.[/red]")
        error_console.print(
            "Check that CACHE_MAX_CHUNK_LENGTH <= CACHE_MAX_ENTRY_BYTES, "
            "DEFAULT_CACHE_TTL_MINUTES <= MAX_CACHE_TTL_MINUTES and "
            "MAX_CACHE_TTL_MINUTES * 60 <= CACHE_MAX_TTL_SECONDS."
        )
        raise typer.Exit(1)

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    for key, value in settings.redacted_display().items():
        display_value = str(value) if value is not None else "[dim]not set[/dim]"
        table.add_row(key, display_value)
    console.print(table)
    console.print()


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"odata-connector version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
