"""Operator console: rich tables for bot statistics and recent trades."""
from collections import deque
from datetime import datetime, timezone
from typing import Deque, Optional
from rich.console import Console
from rich.table import Table

from crossarb.core.event_bus import EventBus
from crossarb.events import OpportunityDetected, Topic, TradeCompleted
from crossarb.models import Opportunity, TradeResult


class StatsConsole:
    """Passive observer that renders bot statistics on demand."""

    def __init__(self, console: Optional[Console] = None, recent_trades: int = 10):
        """Initialise console."""
        self.console = console or Console()
        self.recent_trades: Deque[TradeResult] = deque(maxlen=recent_trades)
        self.last_opportunity: Optional[Opportunity] = None
        self.opportunities_seen = 0
        self.start_time = datetime.now(timezone.utc)

    def attach(self, bus: EventBus):
        bus.subscribe(Topic.ARBITRAGE_OPPORTUNITY, self.on_opportunity)
        bus.subscribe(Topic.TRADE_COMPLETE, self.on_trade_complete)

    def on_opportunity(self, event: OpportunityDetected):
        self.last_opportunity = event.opportunity
        self.opportunities_seen += 1

    def on_trade_complete(self, event: TradeCompleted):
        self.recent_trades.append(event.result)

    def create_stats_table(self, stats: dict) -> Table:
        """Create statistics table."""
        table = Table(title="Bot Statistics", show_header=False, padding=(0, 2))

        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right", style="yellow")

        runtime = datetime.now(timezone.utc) - self.start_time
        table.add_row("Runtime", str(runtime).split(".")[0])
        table.add_row("Mode", "DRY RUN" if stats.get('dry_run', True) else "LIVE")
        table.add_row("Trading", "[red]PAUSED[/]" if stats.get('paused') else "[green]ACTIVE[/]")

        prices = stats.get('prices', {})
        for chain, price in prices.items():
            table.add_row(f"{chain.title()} Price", f"${price:.6f}" if price else "-")

        detector = stats.get('detector', {})
        spread = detector.get('current_spread')
        table.add_row(
            "Current Spread",
            f"{spread['spread_percentage']:.4f}%" if spread else "-"
        )
        table.add_row("Opportunities", str(detector.get('opportunity_count', 0)))
        table.add_row("Skipped", str(detector.get('skipped_count', 0)))

        executor = stats.get('executor', {})
        table.add_row("Total Trades", str(executor.get('total_trades', 0)))
        table.add_row("Successful", str(executor.get('successful_trades', 0)))
        table.add_row("Failed", str(executor.get('failed_trades', 0)))
        table.add_row("Total Profit", f"${executor.get('total_profit', 0):.2f}")
        table.add_row("Avg Profit", f"${executor.get('avg_profit', 0):.2f}")

        errors = stats.get('errors', {})
        table.add_row("Errors", str(errors.get('total_errors', 0)))

        return table

    def create_trades_table(self) -> Table:
        """Create table of recent trades."""
        table = Table(title="Recent Trades", show_header=True, header_style="bold magenta")

        table.add_column("Time", style="cyan")
        table.add_column("Route", width=25)
        table.add_column("Size $", justify="right")
        table.add_column("Net $", justify="right")
        table.add_column("Status", justify="center")

        for trade in reversed(self.recent_trades):
            opp = trade.opportunity
            status_color = "green" if trade.success else "red"
            status = "OK" if trade.success else "FAILED"
            if trade.manual:
                status += " (manual)"

            table.add_row(
                trade.completed_at.strftime("%H:%M:%S"),
                f"{opp.buy_venue.value} → {opp.sell_venue.value}",
                f"{opp.trade_size_usd:.2f}",
                f"[{status_color}]{trade.net_profit_usd:.2f}[/]",
                f"[{status_color}]{status}[/]",
            )

        return table

    def print_stats(self, stats: dict):
        self.console.print(self.create_stats_table(stats))
        if self.recent_trades:
            self.console.print(self.create_trades_table())
