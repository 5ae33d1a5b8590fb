"""CLI interface for the tradeflux bot."""

from __future__ import annotations

import asyncio
import importlib
import logging
import signal

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="tradeflux",
    help="Polling trading bot — exchange updates in, strategy and position rules out.",
    add_completion=False,
)
console = Console()


def _configure_logging(level: str = "INFO", fmt: str | None = None) -> None:
    """Set up root logger with the specified level."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=fmt or "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


async def _run_trading(settings) -> None:
    """Run the trading engine with graceful shutdown on signals."""
    from tradeflux.core.engine import TradingEngine

    engine = TradingEngine(settings)
    loop = asyncio.get_running_loop()
    stop_requested = asyncio.Event()

    def _shutdown():
        console.print("\n[yellow]Shutdown signal received, stopping...[/]")
        stop_requested.set()

    # Register signal handlers (not available on Windows for all signals)
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _shutdown)
        except NotImplementedError:
            pass

    await engine.start()
    try:
        await stop_requested.wait()
    finally:
        await engine.stop()


@app.command()
def run(
    profile: str = typer.Option("dry", help="Config profile (default/dry/live)"),
    dry: bool | None = typer.Option(None, "--dry/--live", help="Override the execution mode"),
    strategy_module: str = typer.Option(
        "tradeflux.strategy.simple", help="Module that registers the strategy"
    ),
    log_level: str | None = typer.Option(None, help="Log level"),
) -> None:
    """Start the trading bot."""
    from tradeflux.config.settings import load_settings
    from tradeflux.core.errors import ConfigurationError

    settings = load_settings(profile)
    if dry is not None:
        settings.exchange.dry = dry
    _configure_logging(log_level or settings.logging.level, settings.logging.format)

    importlib.import_module(strategy_module)

    console.print(f"[bold green]Starting trading bot[/] (profile={profile})")
    console.print(f"  Exchange: {settings.exchange.name}")
    console.print(f"  Mode: {'dry' if settings.exchange.dry else 'live'}")
    console.print(f"  Currency pairs: {', '.join(settings.strategy.currency_pairs)}")

    try:
        asyncio.run(_run_trading(settings))
    except ConfigurationError as e:
        console.print(f"[bold red]Configuration error:[/] {e.message}")
        if e.hint:
            console.print(f"  {e.hint}")
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        pass

    console.print("[green]Bot stopped.[/]")


async def _load_positions(db_path: str):
    """Rebuild persisted positions with their trades."""
    from tradeflux.data.database import Database
    from tradeflux.data.migrations import run_migrations
    from tradeflux.data.repository import Repository

    await run_migrations(db_path)
    async with Database(db_path) as db:
        repo = Repository(db)
        trades = {
            t.trade_id: t for t in await repo.find_all_trades_ordered_by_timestamp_ascending()
        }
        records = await repo.find_all_positions_ordered_for_restore()

    return [record.to_position(trades) for record in records]


@app.command()
def positions(
    profile: str = typer.Option("dry", help="Config profile"),
) -> None:
    """List the positions saved in the database."""
    from tradeflux.config.constants import PositionStatus
    from tradeflux.config.settings import load_settings

    settings = load_settings(profile)
    items = asyncio.run(_load_positions(settings.database.path))
    if not items:
        console.print("[yellow]No position saved yet.[/]")
        return

    table = Table(title="Positions", show_header=True)
    table.add_column("Id", style="cyan", justify="right")
    table.add_column("Pair", style="cyan")
    table.add_column("Status")
    table.add_column("Amount", justify="right")
    table.add_column("Rules")
    table.add_column("Lowest", justify="right")
    table.add_column("Highest", justify="right")
    table.add_column("Gain", style="green", justify="right")

    for p in items:
        gain = p.gain
        table.add_row(
            str(p.position_id),
            str(p.currency_pair),
            p.status.value,
            str(p.amount),
            p.rules.describe(),
            str(p.lowest_price) if p.lowest_price is not None else "-",
            str(p.highest_price) if p.highest_price is not None else "-",
            f"{gain.percentage:.2f} % ({gain.amount})"
            if p.status == PositionStatus.CLOSED
            else "-",
        )
    console.print(table)


async def _load_trades(db_path: str):
    from tradeflux.data.database import Database
    from tradeflux.data.migrations import run_migrations
    from tradeflux.data.repository import Repository

    await run_migrations(db_path)
    async with Database(db_path) as db:
        return await Repository(db).find_all_trades_ordered_by_timestamp_ascending()


@app.command()
def trades(
    profile: str = typer.Option("dry", help="Config profile"),
) -> None:
    """List the trades saved in the database."""
    from tradeflux.config.settings import load_settings

    settings = load_settings(profile)
    items = asyncio.run(_load_trades(settings.database.path))
    if not items:
        console.print("[yellow]No trade saved yet.[/]")
        return

    table = Table(title="Trades", show_header=True)
    table.add_column("Timestamp", style="dim")
    table.add_column("Trade", style="cyan")
    table.add_column("Order", style="cyan")
    table.add_column("Side")
    table.add_column("Pair")
    table.add_column("Amount", justify="right")
    table.add_column("Price", justify="right")
    table.add_column("Fee", justify="right")
    for t in items:
        table.add_row(
            t.timestamp.isoformat(),
            t.trade_id,
            t.order_id,
            t.side.value,
            str(t.currency_pair),
            str(t.amount),
            str(t.price),
            str(t.fee),
        )
    console.print(table)


@app.command()
def migrate(
    profile: str = typer.Option("default", help="Config profile"),
) -> None:
    """Initialize or migrate the database schema."""
    from tradeflux.config.settings import load_settings
    from tradeflux.data.migrations import run_migrations

    settings = load_settings(profile)
    console.print(f"[bold]Running migrations[/] → {settings.database.path}")
    asyncio.run(run_migrations(settings.database.path))
    console.print("[green]Migrations complete.[/]")


if __name__ == "__main__":
    app()
