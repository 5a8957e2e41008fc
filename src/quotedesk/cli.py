"""Click-based CLI for quotedesk.

Thin wrapper around library modules. Every command delegates to
``QuoteService`` or the store; nothing here knows about providers.
"""

from __future__ import annotations

import asyncio
import json
import logging

import click
from rich.console import Console
from rich.table import Table

console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code."""
    return asyncio.run(coro)


def _configure_logging(verbose: bool, default_level: int = logging.WARNING) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else default_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from quotedesk.core import load_config

        ctx.obj["config"] = load_config(config_path=ctx.obj.get("config_path"))
    return ctx.obj["config"]


async def _create_store_async(config):
    """Create and initialize storage from config."""
    from quotedesk.storage import create_store

    return await create_store(config.storage)


def _create_service(config, store):
    """Wire the quote service against the real upstream adapters."""
    from quotedesk.quotes import QuoteService

    return QuoteService.from_config(config, store)


def _with_service(ctx: click.Context, operation):
    """Open the store, run ``operation(service)``, and always close the store.

    Library errors are reported on stderr and turned into exit code 1.
    """
    from quotedesk.core.exceptions import QuoteDeskError

    async def _run(config):
        store = await _create_store_async(config)
        try:
            return await operation(_create_service(config, store))
        finally:
            await store.close()

    try:
        return _run_async(_run(_load_config(ctx)))
    except QuoteDeskError as exc:
        console.print(f"[red]{type(exc).__name__}: {exc}[/red]")
        raise SystemExit(1)


def _echo_json(payload) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


def _fmt(value, suffix: str = "") -> str:
    if value is None:
        return "N/A"
    if isinstance(value, float):
        return f"{value:,.2f}{suffix}"
    return f"{value}{suffix}"


def _price_table(title: str, price) -> Table:
    """Render a PriceSnapshot-shaped object as a two-column table."""
    table = Table(title=title)
    table.add_column("Field", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Current", _fmt(price.current))
    table.add_row("Change", _fmt(price.change))
    table.add_row("Change %", _fmt(price.change_percent, "%"))
    table.add_row("Open", _fmt(price.open))
    table.add_row("High", _fmt(price.high))
    table.add_row("Low", _fmt(price.low))
    table.add_row("Previous close", _fmt(price.previous_close))
    table.add_row("Currency", _fmt(price.currency))
    table.add_row("Source", price.source)
    return table


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="QUOTEDESK_CONFIG",
    default=None,
    help="Path to quotedesk.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable verbose output.",
)
@click.version_option(package_name="quotedesk")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """quotedesk: stock quotes with a cached instrument registry."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = console


# ---------------------------------------------------------------------------
# quote
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("symbol")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print JSON.")
@click.pass_context
def quote(ctx: click.Context, symbol: str, as_json: bool) -> None:
    """Fetch a live quote for SYMBOL (e.g. AAPL, LLOY.L)."""
    _configure_logging(ctx.obj["verbose"])

    async def _op(service):
        return await service.get_quote(symbol)

    result = _with_service(ctx, _op)
    if as_json:
        _echo_json(result.model_dump(mode="json", by_alias=True))
        return

    title = f"{result.symbol}" + (f" ({result.name})" if result.name else "")
    console.print(_price_table(title, result))


# ---------------------------------------------------------------------------
# register
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("symbol")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print JSON.")
@click.pass_context
def register(ctx: click.Context, symbol: str, as_json: bool) -> None:
    """Register SYMBOL (Yahoo Finance form) in the instrument registry."""
    _configure_logging(ctx.obj["verbose"])

    async def _op(service):
        return await service.register(symbol)

    registration = _with_service(ctx, _op)
    if as_json:
        price = registration.price
        _echo_json(
            {
                "stockId": registration.stock_id,
                "stock": registration.instrument.model_dump(mode="json", by_alias=True),
                "price": price.model_dump(mode="json", by_alias=True) if price else None,
                "created": registration.created,
            }
        )
        return

    verb = "Registered" if registration.created else "Already registered"
    console.print(
        f"[green]✓[/green] {verb} [bold]{registration.instrument.name}[/bold] "
        f"as {registration.stock_id}"
    )
    if registration.price is None:
        console.print("[yellow]No price available yet.[/yellow]")
    else:
        console.print(_price_table("Price", registration.price.snapshot))


# ---------------------------------------------------------------------------
# price
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("stock_id")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print JSON.")
@click.pass_context
def price(ctx: click.Context, stock_id: str, as_json: bool) -> None:
    """Show the cached price for a registered STOCK_ID, refreshing if stale."""
    _configure_logging(ctx.obj["verbose"])

    async def _op(service):
        return await service.get_stock_price(stock_id)

    result = _with_service(ctx, _op)
    if as_json:
        _echo_json(
            {
                "stockId": result.instrument.id,
                "name": result.instrument.name,
                "symbol": result.instrument.primary_symbol,
                **result.price.model_dump(mode="json", by_alias=True),
            }
        )
        return

    snapshot = result.price.snapshot
    table = _price_table(
        f"{result.instrument.name} ({result.instrument.primary_symbol})", snapshot
    )
    table.add_section()
    table.add_row("Updated", snapshot.updated_at.isoformat())
    table.add_row("From cache", "yes" if result.price.from_cache else "no")
    if result.price.stale:
        table.add_row("Stale", "[yellow]yes[/yellow]")
    console.print(table)


# ---------------------------------------------------------------------------
# search
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("query")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print JSON.")
@click.pass_context
def search(ctx: click.Context, query: str, as_json: bool) -> None:
    """Search symbols by ticker or company name."""
    _configure_logging(ctx.obj["verbose"])

    async def _op(service):
        return await service.search(query)

    results = _with_service(ctx, _op)
    if as_json:
        _echo_json([m.model_dump(mode="json") for m in results])
        return

    if not results:
        console.print(f"[yellow]No matches for '{query}'.[/yellow]")
        return

    table = Table(title=f"Matches for '{query}'")
    table.add_column("Symbol", style="bold")
    table.add_column("Description")
    table.add_column("Type")
    table.add_column("Exchange")
    for match in results:
        table.add_row(
            match.symbol,
            match.description or "",
            match.type or "",
            match.exchange or "",
        )
    console.print(table)


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--host", type=str, default=None, help="Bind address (default: config).")
@click.option("--port", "-p", type=int, default=None, help="Port number (default: config).")
@click.option("--reload", is_flag=True, default=False, help="Auto-reload on code changes.")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None, reload: bool) -> None:
    """Start the REST API server."""
    import uvicorn

    _configure_logging(ctx.obj["verbose"], default_level=logging.INFO)
    config = _load_config(ctx)
    host = host or config.api.host
    port = port or config.api.port

    console.print(f"Starting quotedesk API on [bold]{host}:{port}[/bold]")
    console.print(f"API docs: http://{host}:{port}/docs")

    uvicorn.run(
        "quotedesk.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show storage status and registry coverage."""
    _configure_logging(ctx.obj["verbose"])
    config = _load_config(ctx)

    async def _run():
        store = await _create_store_async(config)
        try:
            return await store.get_statistics()
        finally:
            await store.close()

    stats = _run_async(_run())

    table = Table(title="quotedesk Status")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Storage backend", config.storage.backend.value)
    table.add_row("Database path", config.storage.sqlite_path)
    table.add_row(
        "Finnhub key", "configured" if config.providers.finnhub_api_key else "missing"
    )
    table.add_row("Cache max age", f"{config.cache.max_age_seconds}s")
    table.add_section()
    table.add_row("Registered stocks", str(stats["instruments"]))
    table.add_row("Cached prices", str(stats["snapshots"]))

    console.print(table)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
