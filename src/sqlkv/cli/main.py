"""
CLI for sqlkv.

Commands:
    sqlkv get KEY - Print a record
    sqlkv set KEY VALUE - Store a value (JSON, or a plain string)
    sqlkv list [PREFIX] - List records under a prefix
    sqlkv delete KEY - Delete a record
    sqlkv delete-all [PREFIX] - Delete every record under a prefix
    sqlkv populate FILE --key TEMPLATE - Bulk-load a JSON array
    sqlkv sync - Sync the embedded replica
    sqlkv config - Show current configuration
    sqlkv version - Print version
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated, Any, Awaitable, Callable, TypeVar

import orjson
import typer
from rich.console import Console
from rich.table import Table

from sqlkv import __version__
from sqlkv.config import Settings, clear_settings_cache, get_settings
from sqlkv.exceptions import SqlKVError
from sqlkv.logging import setup_logging
from sqlkv.query import scan_prefix
from sqlkv.session import KVSession, open_kv
from sqlkv.types import OrderBy, Record

app = typer.Typer(
    name="sqlkv",
    help="sqlkv - key-value store on SQLite",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)

T = TypeVar("T")


def _get_settings_safe() -> Settings | None:
    """Get settings, returning None if configuration is invalid."""
    try:
        clear_settings_cache()
        return get_settings()
    except Exception:
        return None


def _require_settings() -> Settings:
    settings = _get_settings_safe()
    if settings is None:
        error_console.print(
            "[red]Error:[/red] Configuration is invalid. "
            "Run 'sqlkv config' to see what's missing."
        )
        raise typer.Exit(1)
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    return settings


def _run(fn: Callable[[KVSession], Awaitable[T]]) -> T:
    """Open a session from settings, run ``fn`` with it, and close it."""
    settings = _require_settings()

    async def runner() -> T:
        kv = await open_kv(settings.KV_URL, settings.to_kv_config())
        async with kv:
            return await fn(kv)

    try:
        return asyncio.run(runner())
    except SqlKVError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


def _parse_value(raw: str) -> Any:
    """Parse VALUE as JSON, falling back to the literal string."""
    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError:
        return raw


def _format_value(value: Any) -> str:
    if isinstance(value, bytes):
        return f"<{len(value)} bytes>"
    return orjson.dumps(value).decode("utf-8")


def _print_record(record: Record) -> None:
    table = Table(show_header=False, box=None)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("key", record.key)
    table.add_row("value", _format_value(record.value))
    table.add_row("created_at", record.created_at.isoformat())
    table.add_row("updated_at", record.updated_at.isoformat())
    console.print(table)


@app.command()
def get(
    key: Annotated[str, typer.Argument(help="Key to look up")],
) -> None:
    """Print the record stored under KEY."""
    record = _run(lambda kv: kv.get(key))
    if record is None:
        error_console.print(f"[yellow]Not found:[/yellow] {key}")
        raise typer.Exit(1)
    _print_record(record)


@app.command("set")
def set_(
    key: Annotated[str, typer.Argument(help="Key to set")],
    value: Annotated[str, typer.Argument(help="JSON value (plain text is stored as a string)")],
) -> None:
    """Store VALUE under KEY. The JSON literal null deletes the key."""
    record = _run(lambda kv: kv.set(key, _parse_value(value)))
    if record is None:
        console.print(f"[dim]Deleted[/dim] {key}")
        return
    _print_record(record)


@app.command("list")
def list_(
    prefix: Annotated[str, typer.Argument(help="Key prefix (empty lists everything)")] = "",
    limit: Annotated[int, typer.Option("--limit", "-l", min=0, help="Maximum records")] = 100,
    offset: Annotated[int, typer.Option("--offset", "-o", min=0, help="Records to skip")] = 0,
    reverse: Annotated[bool, typer.Option("--reverse", "-r", help="Descending order")] = False,
    order_by: Annotated[
        OrderBy, typer.Option("--order-by", "-s", help="Column to order by")
    ] = OrderBy.KEY,
    exact: Annotated[
        bool, typer.Option("--exact", "-e", help="Include a key equal to PREFIX")
    ] = False,
) -> None:
    """List records whose key starts with PREFIX."""
    result = _run(
        lambda kv: kv.list(
            prefix,
            limit=limit,
            offset=offset,
            reverse=reverse,
            order_by=order_by,
            include_exact_match=exact,
        )
    )

    table = Table(title=f"{prefix or '*'}", show_header=True)
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")
    table.add_column("Updated", style="dim")
    for record in result.data:
        table.add_row(record.key, _format_value(record.value), record.updated_at.isoformat())

    console.print(table)
    console.print(
        f"[dim]Showing {len(result.data)} of {result.meta.total} "
        f"(offset {result.meta.offset})[/dim]"
    )


@app.command()
def delete(
    key: Annotated[str, typer.Argument(help="Key to delete")],
) -> None:
    """Delete KEY. Deleting a missing key succeeds."""
    _run(lambda kv: kv.delete(key))
    console.print(f"[dim]Deleted[/dim] {key}")


@app.command("delete-all")
def delete_all(
    prefix: Annotated[str, typer.Argument(help="Key prefix (empty deletes EVERYTHING)")] = "",
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
) -> None:
    """Delete every record under PREFIX. Cannot be undone."""
    target = f"keys under '{scan_prefix(prefix)}'" if prefix else "ALL keys"
    if not yes and not typer.confirm(f"Delete {target}?"):
        raise typer.Abort()

    _run(lambda kv: kv.delete_all(prefix))
    console.print(f"[dim]Deleted[/dim] {target}")


@app.command()
def populate(
    file: Annotated[Path, typer.Argument(help="JSON file containing an array of objects")],
    key: Annotated[
        str,
        typer.Option(
            "--key", "-k", help="Key template, e.g. 'repos_by_fork_count:{forks_count}:{id}'"
        ),
    ],
) -> None:
    """Bulk-load the objects in FILE, one record per object, in one transaction."""
    if not file.exists():
        error_console.print(f"[red]Error:[/red] File not found: {file}")
        raise typer.Exit(1)

    try:
        items = orjson.loads(file.read_bytes())
    except orjson.JSONDecodeError as e:
        error_console.print(f"[red]Error:[/red] Invalid JSON in {file}: {e}")
        raise typer.Exit(1)

    if not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
        error_console.print("[red]Error:[/red] FILE must contain a JSON array of objects")
        raise typer.Exit(1)

    try:
        keyed = [(key.format(**item), item) for item in items]
    except (KeyError, IndexError) as e:
        error_console.print(f"[red]Error:[/red] Key template field missing: {e}")
        raise typer.Exit(1)

    async def load(kv: KVSession) -> int:
        async def write(tx: KVSession) -> int:
            for item_key, item in keyed:
                await tx.set(item_key, item)
            return len(keyed)

        return await kv.transaction(write)

    count = _run(load)
    console.print(f"[green]Loaded {count} records[/green] from {file}")


@app.command()
def sync() -> None:
    """Sync the embedded replica from the primary database."""
    _run(lambda kv: kv.sync())
    console.print("[dim]Synced[/dim]")


@app.command()
def config() -> None:
    """Show current configuration with the auth token redacted."""
    console.print()
    console.print("[bold]sqlkv Configuration[/bold]")
    console.print()

    settings = _get_settings_safe()

    if settings is None:
        error_console.print("[red]Configuration is invalid or incomplete.[/red]")
        error_console.print()
        error_console.print("Required environment variables:")
        error_console.print("  - KV_URL (database path, ':memory:' or file: URI)")
        error_console.print()
        error_console.print("Create a .env file or set environment variables.")
        raise typer.Exit(1)

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for name, value in settings.redacted_display().items():
        display_value = str(value) if value is not None else "[dim]not set[/dim]"
        table.add_row(name, display_value)

    console.print(table)
    console.print()


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"sqlkv version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
