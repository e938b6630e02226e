"""
Application Layer: Console Report
Renders vendors, wallets and gem bags using 'rich' library.
"""
import datetime
from typing import Iterable, List, Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from bazaar.application.gem_distribution import GemDistribution
from bazaar.application.ledger import CurrencyLedger
from bazaar.application.ports import IActorDirectory
from bazaar.domain import Vendor


class ReportService:
    """
    Static tables for the GM console, plus a short activity log.
    """

    MAX_LOGS = 10

    def __init__(self, ledger: CurrencyLedger, actors: IActorDirectory, console: Optional[Console] = None) -> None:
        self.ledger = ledger
        self.actors = actors
        self.console = console or Console()
        self.logs: List[str] = []

    def add_log(self, message: str, level: str = "INFO") -> None:
        timestamp = datetime.datetime.now().strftime("%H:%M:%S")
        color = "green"
        if level == "WARNING": color = "yellow"
        if level == "ERROR": color = "red"

        self.logs.append(f"[{color}][{timestamp}] {message}[/{color}]")
        if len(self.logs) > self.MAX_LOGS:
            self.logs.pop(0)

    def vendor_table(self, vendors: Iterable[Vendor]) -> Table:
        fmt = self.ledger.format_currency
        table = Table(box=box.SIMPLE, expand=True)
        table.add_column("Vendor", style="cyan", no_wrap=True)
        table.add_column("Item", style="white")
        table.add_column("Price", justify="right", style="green")
        table.add_column("Stock", justify="right")

        vendors = list(vendors)
        for vendor in vendors:
            name = vendor.name if vendor.active else f"{vendor.name} [dim](closed)[/dim]"
            if not vendor.items:
                table.add_row(name, "[dim]No items[/dim]", "", "")
            for item in vendor.items:
                stock = "∞" if item.is_unlimited else str(item.quantity)
                table.add_row(name, item.name, fmt(item.price), stock)
                name = ""
            if vendor is not vendors[-1]:
                table.add_section()

        if not vendors:
            table.add_row("No vendors yet", "", "", "")
        return table

    async def wallet_table(self, holder_ids: Iterable[str]) -> Table:
        fmt = self.ledger.format_currency
        table = Table(box=box.SIMPLE, expand=True)
        table.add_column("Holder", style="cyan")
        table.add_column("Balance", justify="right", style="green")
        table.add_column("Coins", style="white")

        for holder_id in holder_ids:
            name = self.actors.get_user_name(holder_id) or self.actors.get_actor_name(holder_id) or holder_id
            balance = await self.ledger.get_balance(holder_id)
            coins = await self.ledger.get_coin_breakdown(holder_id)
            breakdown = ", ".join(f"{c['count']}x {c['name']}" for c in coins if c["count"] > 0)
            table.add_row(name, fmt(balance), breakdown or "-")
        return table

    def gem_table(self, distribution: GemDistribution) -> Table:
        table = Table(
            title=f"Gems for {distribution.actor_name}" if distribution.actor_name else None,
            box=box.SIMPLE,
        )
        table.add_column("Gem", style="magenta")
        table.add_column("Qty", justify="right")
        table.add_column("Value", justify="right", style="green")

        for gem in distribution.gems:
            table.add_row(gem.label, str(gem.quantity), f"{(gem.total_value * gem.quantity).normalize():f}")
        table.add_section()
        table.add_row(
            "[bold]Total[/bold]",
            str(distribution.total_gems),
            f"{distribution.actual_value.normalize():f} ({distribution.accuracy}%)",
        )
        return table

    def log_panel(self) -> Panel:
        return Panel(Text.from_markup("\n".join(self.logs)), title="Activity Log", border_style="grey50")

    def print_vendors(self, vendors: Iterable[Vendor]) -> None:
        self.console.print(Panel(self.vendor_table(vendors), title="Vendors", border_style="blue"))

    async def print_wallets(self, holder_ids: Iterable[str]) -> None:
        self.console.print(Panel(await self.wallet_table(holder_ids), title="Wallets", border_style="green"))
