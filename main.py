#!/usr/bin/env python3
"""
Cross-Exchange Arbitrage Bot

Continuously simulates exchange prices, detects spreads between exchanges
and automatically executes the most profitable routes.

Usage:
    python main.py run          # Start the engine
    python main.py status       # Show journal performance
    python main.py history      # Show trade history
    python main.py config       # Show configuration
"""

import asyncio
import signal
import sys
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich import box

from arbitrage_bot.config import get_config
from arbitrage_bot.logger import setup_logging, get_logger
from arbitrage_bot.engine.arbitrage_system import ArbitrageSystem
from arbitrage_bot.database import get_database
from arbitrage_bot.models import TradeStatus
from arbitrage_bot.notifications import NotificationService

# Initialize
app = typer.Typer(
    name="arbitrage-bot",
    help="Cross-Exchange Arbitrage Trading Bot",
    add_completion=False,
)
console = Console()
logger = None


def setup():
    """Initialize logging and configuration."""
    global logger
    setup_logging()
    logger = get_logger("main")


async def _run_system(system: ArbitrageSystem, start_bot: bool, duration: Optional[float]) -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops lack signal handlers; Ctrl+C still raises
            pass

    async with system:
        if start_bot:
            await system.controller.start()

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=duration)
        except asyncio.TimeoutError:
            pass

        console.print("\n[yellow]Shutting down gracefully...[/yellow]")


@app.command()
def run(
    start_bot: bool = typer.Option(False, "--start-bot", help="Start automatic execution immediately"),
    duration: Optional[float] = typer.Option(None, "--duration", "-d", help="Stop after this many seconds"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
):
    """
    Start the price feed, opportunity scanner and (optionally) the bot.

    Runs until interrupted or until --duration elapses.
    """
    config = get_config()
    if debug:
        config.development.debug_mode = True
        config.monitoring.log_level = "DEBUG"
    setup()

    console.print(Panel.fit(
        "[bold green]📈 Cross-Exchange Arbitrage Bot[/bold green]\n\n"
        f"Exchanges: [cyan]{', '.join(config.market.exchange_names)}[/cyan]\n"
        f"Trading Pairs: [cyan]{', '.join(config.market.pair_symbols)}[/cyan]\n"
        f"Min Profit Margin: [cyan]{config.default_settings.min_profit_margin}%[/cyan]\n"
        f"Max Position: [cyan]${config.default_settings.max_position_size}[/cyan]\n"
        f"Auto Execution: [yellow]{'ON' if start_bot else 'OFF'}[/yellow]",
        title="Configuration",
        border_style="green",
    ))

    journal = get_database() if config.database.enable_trade_journal else None
    notifier = NotificationService(config)
    system = ArbitrageSystem(config=config, journal=journal, notifier=notifier)

    try:
        asyncio.run(_run_system(system, start_bot, duration))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")

        async def report():
            async with NotificationService(config) as service:
                await service.notify_error(str(e), component="engine")

        asyncio.run(report())
        if debug:
            raise
        raise typer.Exit(1)


@app.command()
def status():
    """Show performance recorded in the trade journal."""
    setup()

    db = get_database()
    summary = db.get_performance_summary()
    today = db.get_daily_stats()

    # Overall performance table
    table = Table(title="📊 Performance Summary", box=box.ROUNDED)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Total Trades", str(summary.get("total_trades", 0)))
    table.add_row("Success Rate", f"{summary.get('success_rate', 0):.1%}")
    table.add_row("Total Profit", f"${summary.get('total_profit', 0):.2f}")
    table.add_row("Avg Profit/Trade", f"${summary.get('avg_profit_per_trade', 0):.2f}")
    table.add_row("Total Volume", f"${summary.get('total_volume', 0):,.2f}")

    console.print(table)

    # Today's stats
    if today:
        console.print()
        today_table = Table(title=f"📅 Today ({today['date']})", box=box.ROUNDED)
        today_table.add_column("Metric", style="cyan")
        today_table.add_column("Value", style="green")

        today_table.add_row("Trades", str(today.get("total_trades", 0)))
        today_table.add_row("Success Rate", f"{today.get('success_rate', 0):.1%}")
        today_table.add_row("Profit", f"${today.get('net_profit', 0):.2f}")
        today_table.add_row("Volume", f"${today.get('total_volume', 0):,.2f}")

        console.print(today_table)
    else:
        console.print("[dim]No trades today[/dim]")


@app.command()
def history(
    limit: int = typer.Option(20, "--limit", "-n", help="Number of trades to show"),
    status_filter: Optional[str] = typer.Option(
        None, "--status", "-s", help="Filter by status (pending/completed/failed)"
    ),
):
    """Show recent trade history."""
    setup()

    trade_status = None
    if status_filter:
        try:
            trade_status = TradeStatus(status_filter.lower())
        except ValueError:
            console.print(f"[red]Unknown status: {status_filter}[/red]")
            raise typer.Exit(1)

    trades = get_database().get_trades(status=trade_status, limit=limit)

    if not trades:
        console.print("[dim]No trades found[/dim]")
        return

    table = Table(title="📜 Trade History", box=box.ROUNDED)
    table.add_column("Time", style="dim")
    table.add_column("Trade", style="cyan")
    table.add_column("Amount", justify="right")
    table.add_column("Buy", justify="right")
    table.add_column("Sell", justify="right")
    table.add_column("Profit", justify="right")
    table.add_column("Status", style="dim")

    for trade in trades:
        profit = trade["profit"]
        profit_style = "green" if profit >= 0 else "red"

        table.add_row(
            trade["executed_at"].strftime("%m/%d %H:%M:%S") if trade["executed_at"] else "",
            trade["trade_id"],
            f"{trade['amount']:.6f}",
            f"{trade['buy_price']:.4f}",
            f"{trade['sell_price']:.4f}",
            f"[{profit_style}]${profit:+.2f}[/{profit_style}]",
            trade["status"],
        )

    console.print(table)


@app.command()
def config():
    """Show current configuration."""
    setup()

    cfg = get_config()
    defaults = cfg.default_settings

    console.print(Panel.fit(
        f"[bold]Engine[/bold]\n"
        f"  Price Feed Interval: {cfg.engine.price_feed_interval_seconds}s\n"
        f"  Scan Interval: {cfg.engine.scan_interval_seconds}s\n"
        f"  Execution Interval: {cfg.engine.execution_interval_seconds}s\n"
        f"  Opportunity TTL: {cfg.engine.opportunity_ttl_seconds}s\n"
        f"  Execution Batch Size: {cfg.engine.execution_batch_size}\n\n"
        f"[bold]Default Bot Settings[/bold]\n"
        f"  Min Profit Margin: {defaults.min_profit_margin}%\n"
        f"  Max Position Size: ${defaults.max_position_size}\n"
        f"  Slippage Tolerance: {defaults.slippage_tolerance}%\n"
        f"  Gas Limit: {defaults.gas_limit}\n"
        f"  Stop Loss: {defaults.stop_loss}%\n"
        f"  Daily Loss Limit: ${defaults.daily_loss_limit}\n"
        f"  Auto Pause On Loss: {'Yes' if defaults.auto_pause_on_loss else 'No'}\n\n"
        f"[bold]Market[/bold]\n"
        f"  Exchanges: {', '.join(cfg.market.exchange_names)}\n"
        f"  Trading Pairs: {', '.join(cfg.market.pair_symbols)}\n\n"
        f"[bold]Mode[/bold]\n"
        f"  Trade Journal: {cfg.database.database_path if cfg.database.enable_trade_journal else 'disabled'}\n"
        f"  Debug Mode: {'Yes' if cfg.development.debug_mode else 'No'}",
        title="⚙️ Configuration",
        border_style="blue",
    ))


@app.command()
def version():
    """Show version information."""
    from arbitrage_bot import __version__

    console.print(Panel.fit(
        f"[bold]Cross-Exchange Arbitrage Bot[/bold]\n"
        f"Version: {__version__}\n"
        f"Python: {sys.version.split()[0]}",
        border_style="blue",
    ))


if __name__ == "__main__":
    app()
